"""
Tokens and token requests.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Optional

from pydantic import Field

from .endpoint import SHARING_PREFIX
from .models import PortalResponse

if TYPE_CHECKING:
    from .token_providers import BaseTokenProvider

GENERATE_TOKEN = "generateToken"


def now_ms() -> int:
    """Current time as milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


class Token(PortalResponse):
    """An authentication token as returned by a ``generateToken`` endpoint."""

    value: Optional[str] = Field(default=None, alias="token")
    expiry: int = Field(default=0, alias="expires")
    always_use_ssl: bool = Field(default=False, alias="ssl")
    referer: Optional[str] = Field(default=None, exclude=True)

    @property
    def is_usable(self) -> bool:
        return bool(self.value and self.value.strip())

    @property
    def is_expired(self) -> bool:
        return self.is_usable and self.expiry > 0 and self.expiry <= now_ms()

    @property
    def expires_at(self) -> datetime:
        if not self.is_usable or self.expiry == 0:
            return datetime.now(timezone.utc)
        return datetime.fromtimestamp(self.expiry / 1000, tz=timezone.utc)

    def __repr__(self) -> str:
        return f"Token(expiry={self.expiry}, always_use_ssl={self.always_use_ssl}, referer={self.referer!r})"


class OAuthToken(PortalResponse):
    """OAuth ``client_credentials`` response; ``expires_in`` is in seconds."""

    value: Optional[str] = Field(default=None, alias="access_token")
    expires_in: int = Field(default=0, alias="expires_in")

    def as_token(self) -> Token:
        return Token(
            token=self.value,
            expires=now_ms() + self.expires_in * 1000,
            ssl=True,
            error=self.error,
        )


def _https(url: str) -> str:
    return url.replace("http://", "https://")


def _portal_root(root_url: str) -> str:
    return root_url.replace(SHARING_PREFIX, "").replace("sharing/", "") + SHARING_PREFIX


class GenerateToken:
    """Username/password token request.

    ``client`` and ``referer`` are coupled: a non-empty referer implies
    ``client=referer`` and clearing the client clears the referer.
    """

    def __init__(self, username: str, password: str, expiration_minutes: int = 60):
        self.username = username
        self.password = password
        self.expiration_minutes = expiration_minutes
        self.encrypted = False
        self.is_federated = False
        self.dont_force_https = False
        self._client: Optional[str] = None
        self._referer: Optional[str] = None
        self._expiration: Optional[str] = None

    @property
    def client(self) -> Optional[str]:
        return self._client

    @client.setter
    def client(self, value: Optional[str]) -> None:
        self._client = value
        if not value or not value.strip():
            self._referer = None

    @property
    def referer(self) -> Optional[str]:
        return self._referer

    @referer.setter
    def referer(self, value: Optional[str]) -> None:
        self._referer = value
        if value and value.strip():
            self._client = "referer"

    @property
    def expiration(self) -> str:
        return self._expiration or str(self.expiration_minutes)

    def encrypt(
        self,
        username: str,
        password: str,
        expiration: str = "",
        client: str = "",
        referer: str = "",
    ) -> None:
        """Replace the credential fields with their encrypted forms."""
        if not username:
            raise ValueError("username is null.")
        if not password:
            raise ValueError("password is null.")

        self.username = username
        self.password = password
        if expiration:
            self._expiration = expiration
        if client:
            self._client = client
        if referer:
            self._referer = referer
        self.encrypted = True
        self.dont_force_https = False

    @property
    def relative_url(self) -> str:
        return GENERATE_TOKEN if self.is_federated else f"tokens/{GENERATE_TOKEN}"

    def build_absolute_url(self, root_url: str) -> str:
        if not root_url or not root_url.strip():
            raise ValueError("root_url is null.")

        root = root_url if self.dont_force_https else _https(root_url)
        if self.is_federated:
            return _portal_root(root) + GENERATE_TOKEN
        return root + self.relative_url

    def to_parameters(self) -> Dict[str, str]:
        parameters = {
            "username": self.username,
            "password": self.password,
            "expiration": self.expiration,
            "f": "json",
        }
        if self._client:
            parameters["client"] = self._client
        if self._referer:
            parameters["referer"] = self._referer
        if self.encrypted:
            parameters["encrypted"] = "true"
        return parameters


class GenerateOAuthToken:
    """OAuth client credentials request."""

    grant_type = "client_credentials"

    def __init__(self, client_id: str, client_secret: str, expiration_minutes: int = 120):
        self.client_id = client_id
        self.client_secret = client_secret
        self.expiration_minutes = expiration_minutes

    def to_parameters(self) -> Dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": self.grant_type,
            "expiration": str(self.expiration_minutes),
            "f": "json",
        }


class GenerateFederatedToken:
    """Exchange of an upstream (portal) token for a server scoped token."""

    request = "getToken"

    def __init__(self, server_url: str, token_provider: "BaseTokenProvider", referer: Optional[str] = None):
        self.server_url = server_url
        self.token_provider = token_provider
        self.referer = referer
        self.federated_token: Optional[Token] = None
        self.dont_force_https = False

    def build_absolute_url(self, root_url: str) -> str:
        if not root_url or not root_url.strip():
            raise ValueError("root_url is null.")

        root = root_url if self.dont_force_https else _https(root_url)
        return _portal_root(root) + GENERATE_TOKEN

    def to_parameters(self) -> Dict[str, str]:
        parameters = {
            "serverUrl": self.server_url,
            "request": self.request,
            "token": self.federated_token.value if self.federated_token else "",
            "f": "json",
        }
        if self.referer:
            parameters["referer"] = self.referer
        return parameters
