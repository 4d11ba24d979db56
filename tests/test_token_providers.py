"""
Unit tests for the token provider family.
"""

import asyncio

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from conftest import json_response, request_params

from arcgis_gateway.crypto import RsaEncrypter
from arcgis_gateway.errors import OperationError
from arcgis_gateway.token import now_ms
from arcgis_gateway.token_providers import (
    AppLoginOAuthProvider,
    FederatedTokenProvider,
    OnlineTokenProvider,
    ServerFederatedWithPortalTokenProvider,
    TokenProvider,
)

ROOT = "http://server.example.com/arcgis"
TOKEN_PATH = "/arcgis/tokens/generateToken"
PUBLIC_KEY_PATH = "/arcgis/admin/publicKey"


def token_body(value="abc", expires_in_ms=3_600_000, ssl=False):
    return {"token": value, "expires": now_ms() + expires_in_ms, "ssl": ssl}


class TestTokenProvider:
    """Test cases for the direct username/password provider."""

    @pytest.fixture
    def provider(self, gateway_kwargs):
        """Direct provider against the fake site."""
        return TokenProvider(ROOT, "user", "pass", **gateway_kwargs)

    @pytest.mark.asyncio
    async def test_generates_and_caches(self, provider, fake_server):
        """Test that a valid token is cached and reused without I/O."""
        fake_server.add("POST", TOKEN_PATH, token_body())

        first = await provider.check_generate_token()
        second = await provider.check_generate_token()

        assert first.value == "abc"
        assert second is first
        assert len(fake_server.calls("POST", TOKEN_PATH)) == 1

    @pytest.mark.asyncio
    async def test_posts_form_over_https(self, provider, fake_server):
        """Test the token request payload and that https is forced."""
        fake_server.add("POST", TOKEN_PATH, token_body())

        await provider.check_generate_token()

        request = fake_server.calls("POST", TOKEN_PATH)[0]
        assert request.url.scheme == "https"
        assert request_params(request) == {"username": "user", "password": "pass", "expiration": "60", "f": "json"}

    @pytest.mark.asyncio
    async def test_expired_token_regenerated(self, provider, fake_server):
        """Test that an expired token triggers a new request."""
        fake_server.add("POST", TOKEN_PATH, token_body(expires_in_ms=-1000))

        await provider.check_generate_token()
        await provider.check_generate_token()

        assert len(fake_server.calls("POST", TOKEN_PATH)) == 2

    @pytest.mark.asyncio
    async def test_referer_attached(self, fake_server, gateway_kwargs):
        """Test that the referer is sent, attached to the token and set as a header."""
        provider = TokenProvider(ROOT, "user", "pass", referer="https://app.example.com", **gateway_kwargs)
        fake_server.add("POST", TOKEN_PATH, token_body())

        token = await provider.check_generate_token()

        request = fake_server.calls("POST", TOKEN_PATH)[0]
        params = request_params(request)
        assert params["client"] == "referer"
        assert params["referer"] == "https://app.example.com"
        assert request.headers["referer"] == "https://app.example.com"
        assert token.referer == "https://app.example.com"

    @pytest.mark.asyncio
    async def test_error_envelope_raises(self, provider, fake_server):
        """Test that a logical failure from the token endpoint is raised."""
        fake_server.add(
            "POST", TOKEN_PATH, {"error": {"code": 400, "message": "Unable to generate token.", "details": ["Invalid username or password."]}}
        )

        with pytest.raises(OperationError) as exc_info:
            await provider.check_generate_token()

        assert exc_info.value.server_code == 400
        assert provider.token is None

    @pytest.mark.asyncio
    async def test_http_failure_returns_none(self, provider, fake_server):
        """Test that a transport failure is logged and yields no token."""
        fake_server.add("POST", TOKEN_PATH, "boom", status_code=500)

        assert await provider.check_generate_token() is None

    @pytest.mark.asyncio
    async def test_connection_failure_returns_none(self, provider, fake_server):
        """Test that a connection error is logged and yields no token."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_server.add("POST", TOKEN_PATH, handler=refuse)

        assert await provider.check_generate_token() is None

    @pytest.mark.asyncio
    async def test_unreadable_body_returns_none(self, provider, fake_server):
        """Test that an unparseable body yields no token."""
        fake_server.add("POST", TOKEN_PATH, "<html>login</html>")

        assert await provider.check_generate_token() is None

    @pytest.mark.asyncio
    async def test_cancelled_returns_none(self, provider, fake_server):
        """Test that a cancelled request yields no token and sends nothing."""
        fake_server.add("POST", TOKEN_PATH, token_body())
        cancel = asyncio.Event()
        cancel.set()

        assert await provider.check_generate_token(cancel) is None
        assert provider.token is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, provider, fake_server):
        """Test that a timeout is treated like cancellation."""

        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake_server.add("POST", TOKEN_PATH, handler=slow)

        assert await provider.check_generate_token() is None

    def test_requires_credentials(self, gateway_kwargs):
        """Test that missing credentials are argument errors."""
        with pytest.raises(ValueError):
            TokenProvider(ROOT, "", "pass", **gateway_kwargs)
        with pytest.raises(ValueError):
            TokenProvider(ROOT, "user", " ", **gateway_kwargs)
        with pytest.raises(ValueError):
            TokenProvider("", "user", "pass", **gateway_kwargs)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, provider):
        """Test that closing twice is safe."""
        await provider.aclose()
        await provider.aclose()

        assert provider.closed


class TestEncryptedTokenRequests:
    """Test cases for the public key negotiation."""

    @pytest.fixture(scope="class")
    def private_key(self):
        """Server key pair."""
        return rsa.generate_private_key(public_exponent=65537, key_size=1024)

    @pytest.fixture
    def provider(self, gateway_kwargs):
        """Direct provider with RSA encryption enabled."""
        return TokenProvider(ROOT, "user", "pass", crypto_provider=RsaEncrypter(), **gateway_kwargs)

    @pytest.mark.asyncio
    async def test_encrypts_with_server_key(self, provider, fake_server, private_key):
        """Test that credentials are encrypted with the published key."""
        numbers = private_key.public_key().public_numbers()
        fake_server.add("GET", PUBLIC_KEY_PATH, {"publicKey": format(numbers.e, "x"), "modulus": format(numbers.n, "x")})
        fake_server.add("POST", TOKEN_PATH, token_body())

        token = await provider.check_generate_token()

        assert token.value == "abc"
        params = request_params(fake_server.calls("POST", TOKEN_PATH)[0])
        assert params["encrypted"] == "true"
        assert private_key.decrypt(bytes.fromhex(params["username"]), padding.PKCS1v15()) == b"user"
        assert private_key.decrypt(bytes.fromhex(params["password"]), padding.PKCS1v15()) == b"pass"

    @pytest.mark.asyncio
    async def test_unreachable_key_endpoint_falls_back(self, provider, fake_server):
        """Test that an unreachable key endpoint is never retried and requests go unencrypted."""
        fake_server.add("GET", PUBLIC_KEY_PATH, "forbidden", status_code=403)
        fake_server.add("POST", TOKEN_PATH, token_body(expires_in_ms=-1000))

        await provider.check_generate_token()
        await provider.check_generate_token()

        assert provider.can_access_public_key_endpoint is False
        assert len(fake_server.calls("GET", PUBLIC_KEY_PATH)) == 1
        params = request_params(fake_server.calls("POST", TOKEN_PATH)[1])
        assert params["username"] == "user"
        assert "encrypted" not in params

    @pytest.mark.asyncio
    async def test_key_endpoint_error_envelope_raises(self, provider, fake_server):
        """Test that a logical failure from the key endpoint is raised."""
        fake_server.add("GET", PUBLIC_KEY_PATH, {"error": {"code": 499, "message": "Token Required"}})

        with pytest.raises(OperationError):
            await provider.check_generate_token()


class TestPortalProviders:
    """Test cases for portal and ArcGIS Online providers."""

    @pytest.mark.asyncio
    async def test_server_federated_with_portal(self, fake_server, gateway_kwargs):
        """Test the portal generateToken URL and default referer."""
        provider = ServerFederatedWithPortalTokenProvider(
            "https://portal.example.com/portal/sharing/rest", "user", "pass", **gateway_kwargs
        )
        fake_server.add("POST", "/portal/sharing/rest/generateToken", token_body())

        token = await provider.check_generate_token()

        assert token.value == "abc"
        assert token.referer == "https://portal.example.com/portal/sharing/rest/rest"

    @pytest.mark.asyncio
    async def test_online_provider(self, fake_server, gateway_kwargs):
        """Test ArcGIS Online token requests skip the public key endpoint."""
        provider = OnlineTokenProvider("user", "pass", crypto_provider=RsaEncrypter(), **gateway_kwargs)
        fake_server.add("POST", "/sharing/rest/generateToken", token_body())

        token = await provider.check_generate_token()

        assert token.referer == "https://www.arcgis.com"
        request = fake_server.requests[-1]
        assert str(request.url) == "https://www.arcgis.com/sharing/rest/generateToken"
        assert not fake_server.calls("GET", "/sharing/rest/admin/publicKey")


class TestAppLoginOAuthProvider:
    """Test cases for OAuth app login."""

    @pytest.mark.asyncio
    async def test_client_credentials(self, fake_server, gateway_kwargs):
        """Test the OAuth payload and expiry conversion."""
        fake_server.add("POST", "/sharing/rest/oauth2/token", {"access_token": "app-token", "expires_in": 120})
        provider = AppLoginOAuthProvider("id", "secret", **gateway_kwargs)

        before = now_ms()
        token = await provider.check_generate_token()

        params = request_params(fake_server.requests[-1])
        assert params["grant_type"] == "client_credentials"
        assert params["client_id"] == "id"
        assert params["expiration"] == "120"
        assert token.value == "app-token"
        assert token.always_use_ssl is True
        assert before + 120_000 <= token.expiry <= now_ms() + 120_000

    @pytest.mark.asyncio
    async def test_error_envelope_raises(self, fake_server, gateway_kwargs):
        """Test that a rejected client raises."""
        fake_server.add("POST", "/sharing/rest/oauth2/token", {"error": {"code": 400, "message": "Invalid client_id"}})
        provider = AppLoginOAuthProvider("id", "secret", **gateway_kwargs)

        with pytest.raises(OperationError):
            await provider.check_generate_token()

    def test_requires_credentials(self, gateway_kwargs):
        """Test that missing client credentials are argument errors."""
        with pytest.raises(ValueError):
            AppLoginOAuthProvider("", "secret", **gateway_kwargs)


class TestFederatedTokenProvider:
    """Test cases for federated token exchange."""

    PORTAL = "https://portal.example.com/portal/sharing/rest"
    PORTAL_TOKEN_PATH = "/portal/sharing/rest/generateToken"

    def _portal(self, fake_server):
        def generate(request):
            params = request_params(request)
            if params.get("request") == "getToken":
                assert params["token"] == "portal-token"
                assert params["serverUrl"] == "https://server.example.com/arcgis/"
                return json_response(token_body("server-token"))
            return json_response(token_body("portal-token"))

        fake_server.add("POST", self.PORTAL_TOKEN_PATH, handler=generate)

    @pytest.mark.asyncio
    async def test_exchanges_upstream_token(self, fake_server, gateway_kwargs):
        """Test that the portal token is exchanged for a server token."""
        self._portal(fake_server)
        upstream = ServerFederatedWithPortalTokenProvider(self.PORTAL, "user", "pass", **gateway_kwargs)
        provider = FederatedTokenProvider(
            upstream,
            self.PORTAL,
            "https://server.example.com/arcgis/",
            referer="https://portal.example.com/portal/rest",
            **gateway_kwargs,
        )

        token = await provider.check_generate_token()

        assert token.value == "server-token"
        assert token.referer == "https://portal.example.com/portal/rest"
        assert len(fake_server.calls("POST", self.PORTAL_TOKEN_PATH)) == 2

        await provider.check_generate_token()
        assert len(fake_server.calls("POST", self.PORTAL_TOKEN_PATH)) == 2

    @pytest.mark.asyncio
    async def test_no_upstream_token(self, fake_server, gateway_kwargs):
        """Test that a failed upstream request yields no token."""
        fake_server.add("POST", self.PORTAL_TOKEN_PATH, "down", status_code=503)
        upstream = ServerFederatedWithPortalTokenProvider(self.PORTAL, "user", "pass", **gateway_kwargs)
        provider = FederatedTokenProvider(upstream, self.PORTAL, "https://server.example.com/arcgis/", **gateway_kwargs)

        assert await provider.check_generate_token() is None
        assert len(fake_server.calls("POST", self.PORTAL_TOKEN_PATH)) == 1

    @pytest.mark.asyncio
    async def test_close_closes_upstream(self, gateway_kwargs):
        """Test that closing the exchange provider closes the upstream provider."""
        upstream = ServerFederatedWithPortalTokenProvider(self.PORTAL, "user", "pass", **gateway_kwargs)
        provider = FederatedTokenProvider(upstream, self.PORTAL, "https://server.example.com/arcgis/", **gateway_kwargs)

        async with provider:
            pass

        assert provider.closed
        assert upstream.closed
