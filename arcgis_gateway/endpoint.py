"""
Endpoint resolution.

An endpoint holds a canonical relative path for one server resource. Each
endpoint kind owns a single prefix (``rest/services/``, ``admin/`` or
``sharing/rest/``) and normalises any input so the prefix appears exactly once.
"""

from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import urlsplit

SERVICES_PREFIX = "rest/services/"
ADMIN_PREFIX = "admin/"
SHARING_PREFIX = "sharing/rest/"

_ROOT_SUFFIXES = ("/rest/admin/services", "/rest/services", "/admin", "/tokens")


class Endpoint(Protocol):
    """Anything that can be resolved against a root URL."""

    @property
    def relative_url(self) -> str: ...

    def build_absolute_url(self, root_url: str) -> str: ...


def as_root_url(root_url: str) -> str:
    """Normalise a server URL to ``scheme://host[:port]/site/``."""
    if not root_url or not root_url.strip():
        raise ValueError("root_url is null.")

    root_url = root_url.strip().rstrip("/")
    for suffix in _ROOT_SUFFIXES:
        index = root_url.lower().find(suffix)
        if index > -1:
            root_url = root_url[:index]

    return root_url.replace("/rest/services", "") + "/"


def _site_fragment(root_url: str) -> str:
    """Return ``host[:port]/site`` for a root URL, without scheme or slashes."""
    parts = urlsplit(root_url)
    if not parts.netloc:
        return root_url.strip("/")
    return (parts.netloc + parts.path).strip("/")


def _resolve(root_url: str, relative_url: str) -> str:
    if not root_url or not root_url.strip():
        raise ValueError("root_url is null.")

    if "//" + _site_fragment(root_url).lower() in relative_url.lower():
        return relative_url
    return root_url.strip().strip("/") + "/" + relative_url


def _strip_prefix(root_url: str, prefix: str) -> str:
    """Drop ``prefix`` from the end of a root such as ``https://host/sharing/rest/``."""
    if not root_url or not root_url.strip():
        return root_url

    root = root_url.strip().rstrip("/")
    suffix = "/" + prefix.rstrip("/")
    if root.lower().endswith(suffix):
        return root[: -len(suffix)] + "/"
    return root_url


def _normalise(relative_path: str, prefix: str) -> str:
    if relative_path is None or not relative_path.strip():
        raise ValueError("relative_path is null.")

    try:
        parts = urlsplit(relative_path.strip())
    except ValueError as exc:
        raise ValueError(f"Not a valid relative url {relative_path}") from exc

    path = parts.path if parts.scheme and parts.netloc else relative_path.strip()
    path = path.strip("/") + "/"

    index = path.lower().rfind(prefix)
    if index > -1:
        path = path[index:]

    path = re.sub(re.escape(prefix), "", path, flags=re.IGNORECASE)
    return prefix + path.strip("/")


class _PrefixedEndpoint:
    prefix = ""

    __slots__ = ("_relative_url",)

    def __init__(self, relative_path: str):
        self._relative_url = _normalise(relative_path, self.prefix)

    @property
    def relative_url(self) -> str:
        return self._relative_url

    def build_absolute_url(self, root_url: str) -> str:
        return _resolve(_strip_prefix(root_url, self.prefix), self._relative_url)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.relative_url == self.relative_url

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._relative_url))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._relative_url!r})"


class ServerEndpoint(_PrefixedEndpoint):
    """A resource under ``rest/services/`` (map, feature, geocode services)."""

    prefix = SERVICES_PREFIX


class AdminEndpoint(_PrefixedEndpoint):
    """A resource under the server administration root."""

    prefix = ADMIN_PREFIX


class OnlineEndpoint(_PrefixedEndpoint):
    """A resource under a portal's ``sharing/rest/`` root."""

    prefix = SHARING_PREFIX


class AbsoluteEndpoint:
    """A fully qualified URL, used verbatim."""

    __slots__ = ("_url",)

    def __init__(self, url: str):
        if not url or not url.strip():
            raise ValueError("url is null.")
        self._url = url.strip()

    @property
    def relative_url(self) -> str:
        return self._url

    def build_absolute_url(self, root_url: str) -> str:
        return self._url

    def __repr__(self) -> str:
        return f"AbsoluteEndpoint({self._url!r})"


class RootServerEndpoint:
    """A path relative to the site root with no canonical prefix (``rest/info``)."""

    __slots__ = ("_path",)

    def __init__(self, path: str):
        if not path or not path.strip():
            raise ValueError("path is null.")
        self._path = path.strip()

    @property
    def relative_url(self) -> str:
        return self._path

    def build_absolute_url(self, root_url: str) -> str:
        return _resolve(root_url, self._path)

    def __repr__(self) -> str:
        return f"RootServerEndpoint({self._path!r})"
