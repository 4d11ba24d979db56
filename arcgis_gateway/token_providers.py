"""
Token providers.

A token provider owns one HTTP client and caches at most one token. Callers
ask for a token with :meth:`BaseTokenProvider.check_generate_token`; a cached
token that has not expired is returned without I/O, otherwise a new one is
requested from the provider's token endpoint.

The cached token is read and replaced without a lock. Concurrent callers that
hit an expired token may each issue a token request; the requests are
idempotent so the last response simply wins.

Token acquisition failures (transport errors, unreadable bodies, cancellation)
are logged and return ``None`` so the gateway can fall back to anonymous
access. A server ``error`` envelope raises :class:`OperationError`.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Type, TypeVar

import httpx

from .config import GatewaySettings, get_settings
from .crypto import CryptoProvider, default_crypto_provider
from .endpoint import AdminEndpoint, as_root_url
from .errors import SerializationError, TransportError
from .http import (
    HttpClientFactory,
    RequestCancelled,
    default_http_client,
    raise_for_status,
    send_cancellable,
    set_referer,
    validate_url,
)
from .logging import get_logger
from .models import PortalResponse, PublicKeyResponse
from .operations import PUBLIC_KEY
from .serializer import JsonSerializer, Serializer
from .token import (
    GenerateFederatedToken,
    GenerateOAuthToken,
    GenerateToken,
    OAuthToken,
    Token,
)

R = TypeVar("R", bound=PortalResponse)

AGO_REFERER = "https://www.arcgis.com"


class BaseTokenProvider:
    """Shared caching, transport and disposal for every token provider."""

    logger_name = "arcgis_gateway.token_provider"

    def __init__(
        self,
        root_url: str,
        *,
        user_name: Optional[str] = None,
        serializer: Optional[Serializer] = None,
        crypto_provider: Optional[CryptoProvider] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
    ) -> None:
        if not root_url or not root_url.strip():
            raise ValueError("root_url is null.")

        self.settings = settings or get_settings()
        self.root_url = as_root_url(root_url)
        self.user_name = user_name
        self.serializer: Serializer = serializer or JsonSerializer()
        self.crypto_provider = crypto_provider
        self.logger = get_logger(self.logger_name)

        factory = http_client_factory or (lambda: default_http_client(self.settings.request_timeout))
        self._client: Optional[httpx.AsyncClient] = factory()
        self._token: Optional[Token] = None

        self.logger.debug("Created token provider", provider=type(self).__name__, root_url=self.root_url)

    @property
    def token(self) -> Optional[Token]:
        """The cached token, if any."""
        return self._token

    @property
    def closed(self) -> bool:
        return self._client is None

    async def check_generate_token(self, cancel: Optional[asyncio.Event] = None) -> Optional[Token]:
        """Return the cached token or request a new one.

        Returns ``None`` when the request is cancelled, times out or fails at
        the transport level.
        """
        if self._token is not None and self._token.is_usable and not self._token.is_expired:
            return self._token

        self._reset()
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is closed")

        try:
            token = await self._generate_token(cancel)
        except (RequestCancelled, httpx.TimeoutException) as exc:
            self.logger.warning(
                "Token request cancelled (exception swallowed)",
                root_url=self.root_url,
                error_type=type(exc).__name__,
            )
            return None

        if token is not None:
            self._token = token
            self.logger.debug("Token issued", root_url=self.root_url, expires_at=token.expires_at.isoformat())
        return token

    def _reset(self) -> None:
        self._token = None

    async def _generate_token(self, cancel: Optional[asyncio.Event]) -> Optional[Token]:
        raise NotImplementedError

    async def _post_token_request(
        self,
        url: str,
        data: Dict[str, str],
        model: Type[R],
        cancel: Optional[asyncio.Event],
    ) -> Optional[R]:
        """POST a form encoded token request and parse the response.

        Cancellation and timeouts propagate to :meth:`check_generate_token`.
        """
        validate_url(url)
        self.logger.debug("Token request", url=url)

        try:
            response = await send_cancellable(self._client.post(url, data=data), cancel)
            raise_for_status(response)
        except httpx.TimeoutException:
            raise
        except (httpx.HTTPError, TransportError) as exc:
            self.logger.error("Error generating token", url=url, error=str(exc))
            return None

        try:
            result = self.serializer.parse(model, response.text)
        except SerializationError as exc:
            self.logger.warning("Unable to read token response", url=url, error=exc.message)
            return None

        result.raise_for_error()
        return result

    async def aclose(self) -> None:
        """Close the owned HTTP client; safe to call more than once."""
        client, self._client = self._client, None
        self._token = None
        if client is not None:
            await client.aclose()

    async def __aenter__(self) -> "BaseTokenProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class TokenProvider(BaseTokenProvider):
    """Username and password against the server's own ``tokens/generateToken``."""

    logger_name = "arcgis_gateway.token_provider.direct"

    def __init__(
        self,
        root_url: str,
        username: str,
        password: str,
        *,
        referer: Optional[str] = None,
        serializer: Optional[Serializer] = None,
        crypto_provider: Optional[CryptoProvider] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
    ) -> None:
        if not username or not username.strip():
            raise ValueError("username is null.")
        if not password or not password.strip():
            raise ValueError("password is null.")

        settings = settings or get_settings()
        super().__init__(
            root_url,
            user_name=username,
            serializer=serializer,
            crypto_provider=crypto_provider or default_crypto_provider(settings.encrypt_token_requests),
            http_client_factory=http_client_factory,
            settings=settings,
        )
        self._username = username
        self._password = password
        self.referer = referer
        self.is_federated = False
        self.dont_force_https = False
        self.can_access_public_key_endpoint = True
        self._public_key: Optional[PublicKeyResponse] = None

    def _reset(self) -> None:
        super()._reset()
        self._public_key = None

    def _token_request(self) -> GenerateToken:
        # A fresh request per attempt so encryption never leaks into the next one.
        request = GenerateToken(self._username, self._password, self.settings.token_expiration_minutes)
        request.referer = self.referer
        request.is_federated = self.is_federated
        request.dont_force_https = self.dont_force_https
        return request

    async def _generate_token(self, cancel: Optional[asyncio.Event]) -> Optional[Token]:
        request = self._token_request()
        referer = request.referer
        set_referer(self._client, referer)

        if self.crypto_provider is not None and self.can_access_public_key_endpoint:
            self._public_key = await self._fetch_public_key(cancel)
            if self._public_key is not None:
                exponent, modulus = self._public_key.exponent, self._public_key.modulus
                if exponent and modulus:
                    self.crypto_provider.encrypt(request, exponent, modulus)

        url = request.build_absolute_url(self.root_url).split("?")[0]
        token = await self._post_token_request(url, request.to_parameters(), Token, cancel)
        if token is None:
            return None

        token.referer = referer
        return token

    async def _fetch_public_key(self, cancel: Optional[asyncio.Event]) -> Optional[PublicKeyResponse]:
        url = AdminEndpoint(PUBLIC_KEY).build_absolute_url(self.root_url) + "?f=json"
        self.logger.debug("Public key request", url=url)

        try:
            response = await send_cancellable(self._client.get(url), cancel)
            raise_for_status(response)
        except httpx.TimeoutException:
            raise
        except (httpx.HTTPError, TransportError) as exc:
            self.can_access_public_key_endpoint = False
            self.logger.warning(
                "Public key endpoint not accessible, token requests will not be encrypted",
                url=url,
                error=str(exc),
            )
            return None

        try:
            result = self.serializer.parse(PublicKeyResponse, response.text)
        except SerializationError as exc:
            self.can_access_public_key_endpoint = False
            self.logger.warning("Unable to read public key response", url=url, error=exc.message)
            return None

        result.raise_for_error()
        return result


class ServerFederatedWithPortalTokenProvider(TokenProvider):
    """Username and password against a portal's ``sharing/rest/generateToken``."""

    logger_name = "arcgis_gateway.token_provider.portal"

    def __init__(self, root_url: str, username: str, password: str, *, referer: Optional[str] = None, **kwargs) -> None:
        super().__init__(root_url, username, password, referer=referer, **kwargs)
        self.is_federated = True
        if not referer:
            self.referer = root_url.rstrip("/") + "/rest"


class OnlineTokenProvider(TokenProvider):
    """Username and password against ArcGIS Online."""

    logger_name = "arcgis_gateway.token_provider.online"

    def __init__(self, username: str, password: str, *, referer: str = AGO_REFERER, **kwargs) -> None:
        settings = kwargs.pop("settings", None) or get_settings()
        super().__init__(settings.portal_url, username, password, referer=referer, settings=settings, **kwargs)
        self.is_federated = True
        self.can_access_public_key_endpoint = False


class AppLoginOAuthProvider(BaseTokenProvider):
    """OAuth ``client_credentials`` app login.

    ``expires_in`` in the response is relative (seconds); it is converted to
    an absolute expiry when the token is created.
    """

    logger_name = "arcgis_gateway.token_provider.oauth"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        oauth_url: Optional[str] = None,
        serializer: Optional[Serializer] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
    ) -> None:
        if not client_id or not client_id.strip():
            raise ValueError("client_id is null.")
        if not client_secret or not client_secret.strip():
            raise ValueError("client_secret is null.")

        settings = settings or get_settings()
        super().__init__(
            settings.portal_url,
            serializer=serializer,
            http_client_factory=http_client_factory,
            settings=settings,
        )
        self.oauth_url = oauth_url or settings.oauth_token_url
        self._request = GenerateOAuthToken(client_id, client_secret, settings.oauth_expiration_minutes)

    async def _generate_token(self, cancel: Optional[asyncio.Event]) -> Optional[Token]:
        result = await self._post_token_request(self.oauth_url, self._request.to_parameters(), OAuthToken, cancel)
        if result is None:
            return None
        return result.as_token()


class FederatedTokenProvider(BaseTokenProvider):
    """Exchanges an upstream (portal) token for a token scoped to ``server_url``."""

    logger_name = "arcgis_gateway.token_provider.federated"

    def __init__(
        self,
        token_provider: BaseTokenProvider,
        root_url: str,
        server_url: str,
        *,
        referer: Optional[str] = None,
        serializer: Optional[Serializer] = None,
        http_client_factory: Optional[HttpClientFactory] = None,
        settings: Optional[GatewaySettings] = None,
    ) -> None:
        if token_provider is None:
            raise ValueError("token_provider is null.")
        if not server_url or not server_url.strip():
            raise ValueError("server_url is null.")

        super().__init__(
            root_url,
            serializer=serializer,
            http_client_factory=http_client_factory,
            settings=settings,
        )
        self.token_provider = token_provider
        self.server_url = server_url
        self.referer = referer
        self.dont_force_https = False

    async def _generate_token(self, cancel: Optional[asyncio.Event]) -> Optional[Token]:
        upstream = await self.token_provider.check_generate_token(cancel)
        if upstream is None:
            self.logger.warning("No upstream token available for exchange", server_url=self.server_url)
            return None

        request = GenerateFederatedToken(self.server_url, self.token_provider, referer=self.referer)
        request.federated_token = upstream
        request.dont_force_https = self.dont_force_https
        set_referer(self._client, request.referer)

        url = request.build_absolute_url(self.root_url).split("?")[0]
        token = await self._post_token_request(url, request.to_parameters(), Token, cancel)
        if token is None:
            return None

        token.referer = request.referer
        return token

    async def aclose(self) -> None:
        await super().aclose()
        await self.token_provider.aclose()


class OnlineFederatedTokenProvider(FederatedTokenProvider):
    """Federated exchange against ArcGIS Online."""

    def __init__(self, token_provider: BaseTokenProvider, server_url: str, *, referer: str = AGO_REFERER, **kwargs) -> None:
        settings = kwargs.pop("settings", None) or get_settings()
        super().__init__(token_provider, settings.portal_url, server_url, referer=referer, settings=settings, **kwargs)
