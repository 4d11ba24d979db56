"""
HTTP client construction and cooperative cancellation.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .errors import TransportError

T = TypeVar("T")

HttpClientFactory = Callable[[], httpx.AsyncClient]

DEFAULT_HEADERS = {"Accept": "application/json, application/jsonp, text/html"}


class RequestCancelled(Exception):
    """Raised internally when the caller's cancel signal fires mid request."""


def default_http_client(timeout: float = 100.0) -> httpx.AsyncClient:
    """Client with redirects enabled and JSON preferred."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=DEFAULT_HEADERS,
    )


def is_cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


async def send_cancellable(request: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """Await ``request`` unless ``cancel`` fires first.

    Raises :class:`RequestCancelled` when the signal wins; the in-flight
    request is cancelled and awaited before returning.
    """
    if cancel is None:
        return await request

    request_task = asyncio.ensure_future(request)
    if cancel.is_set():
        request_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await request_task
        raise RequestCancelled()

    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        request_task.cancel()
        cancel_task.cancel()
        raise

    if request_task in done:
        cancel_task.cancel()
        return request_task.result()

    request_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await request_task
    raise RequestCancelled()


def validate_url(url: str) -> httpx.URL:
    """Parse an absolute http(s) URL or raise :class:`TransportError`."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise TransportError(f"Not a valid url: {url}") from exc

    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise TransportError(f"Not a valid url: {url}")
    return parsed


def set_referer(client: Optional[httpx.AsyncClient], referer: Optional[str]) -> None:
    """Set the ``Referer`` header on ``client``; the referer must be an absolute URL."""
    if client is None or not referer or not referer.strip():
        return

    referer = referer.strip()
    try:
        parsed = httpx.URL(referer)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise TransportError(f"Not a valid url for referrer: {referer}") from exc

    if not parsed.scheme or not parsed.host:
        raise TransportError(f"Not a valid url for referrer: {referer}")
    client.headers["Referer"] = referer


def raise_for_status(response: httpx.Response) -> None:
    """Turn a non-2xx response into :class:`TransportError`."""
    if response.is_success:
        return
    raise TransportError(
        f"HTTP {response.status_code} from {response.request.url}",
        status_code=response.status_code,
        details={"url": str(response.request.url)},
    )
