"""
Shared fixtures: a fake ArcGIS site served through httpx.MockTransport.
"""

import inspect
import json
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import httpx
import pytest

from arcgis_gateway.config import GatewaySettings

Handler = Callable[[httpx.Request], Any]


def request_params(request: httpx.Request) -> Dict[str, str]:
    """Parameters from the querystring (GET) or the url encoded form body (POST)."""
    if request.method == "GET":
        return dict(request.url.params)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(request.content.decode("utf-8"), keep_blank_values=True))
    if content_type.startswith("multipart/form-data"):
        return _multipart_fields(request)
    return {}


def _multipart_fields(request: httpx.Request) -> Dict[str, str]:
    boundary = request.headers["content-type"].split("boundary=", 1)[1].encode()
    fields = {}
    for part in request.content.split(b"--" + boundary):
        head, _, body = part.partition(b"\r\n\r\n")
        if b'name="' not in head or b"filename=" in head:
            continue
        name = head.split(b'name="', 1)[1].split(b'"', 1)[0].decode()
        fields[name] = body.rstrip(b"\r\n").decode("utf-8")
    return fields


class FakeArcGIS:
    """Routes requests by method and path to canned responses and records them."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        status_code: int = 200,
        handler: Optional[Handler] = None,
    ) -> None:
        if handler is None:
            text = body if isinstance(body, str) else json.dumps(body if body is not None else {})

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, text=text, headers={"content-type": "application/json"})

        self.routes[(method.upper(), path)] = handler

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="Not Found")

        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def client_factory(self) -> Callable[[], httpx.AsyncClient]:
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


def json_response(body: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=body)


@pytest.fixture
def fake_server():
    """Fake ArcGIS site."""
    return FakeArcGIS()


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return GatewaySettings(_env_file=None)


@pytest.fixture
def gateway_kwargs(fake_server, settings):
    """Constructor arguments wiring a gateway or provider to the fake site."""
    return {"http_client_factory": fake_server.client_factory(), "settings": settings}
