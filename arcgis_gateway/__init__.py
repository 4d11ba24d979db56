"""
Async client for ArcGIS Server and ArcGIS Online REST APIs.

This package aggregates the building blocks of the client:

- endpoint: canonical resource paths and root URL handling
- operations: the generic Operation record and per-operation constructors
- token / token_providers: tokens and the authentication strategies
- crypto: RSA encryption of token requests
- gateway: the GET/POST transport core and batched queries
- attachments: multipart attachment uploads
- errors: transport, operation and serialization failures
- config / logging / retry: settings, structured logging and caller retries
"""

from . import operations
from .attachments import AttachmentUpload, AttachmentWorker
from .config import GatewaySettings, get_settings
from .crypto import CryptoProvider, RsaEncrypter
from .endpoint import (
    AbsoluteEndpoint,
    AdminEndpoint,
    OnlineEndpoint,
    RootServerEndpoint,
    ServerEndpoint,
    as_root_url,
)
from .errors import GatewayException, OperationError, SerializationError, TransportError
from .gateway import GatewayBase, OnlineGateway, PortalGateway
from .logging import configure_logging, get_logger
from .operations import Operation
from .retry import RetryConfig, RetryError, retry_on_exception
from .serializer import JsonSerializer, Serializer
from .token import GenerateFederatedToken, GenerateOAuthToken, GenerateToken, OAuthToken, Token
from .token_providers import (
    AppLoginOAuthProvider,
    BaseTokenProvider,
    FederatedTokenProvider,
    OnlineFederatedTokenProvider,
    OnlineTokenProvider,
    ServerFederatedWithPortalTokenProvider,
    TokenProvider,
)

__all__ = [
    "operations",
    "AttachmentUpload",
    "AttachmentWorker",
    "GatewaySettings",
    "get_settings",
    "CryptoProvider",
    "RsaEncrypter",
    "AbsoluteEndpoint",
    "AdminEndpoint",
    "OnlineEndpoint",
    "RootServerEndpoint",
    "ServerEndpoint",
    "as_root_url",
    "GatewayException",
    "OperationError",
    "SerializationError",
    "TransportError",
    "GatewayBase",
    "OnlineGateway",
    "PortalGateway",
    "configure_logging",
    "get_logger",
    "Operation",
    "RetryConfig",
    "RetryError",
    "retry_on_exception",
    "JsonSerializer",
    "Serializer",
    "GenerateFederatedToken",
    "GenerateOAuthToken",
    "GenerateToken",
    "OAuthToken",
    "Token",
    "AppLoginOAuthProvider",
    "BaseTokenProvider",
    "FederatedTokenProvider",
    "OnlineFederatedTokenProvider",
    "OnlineTokenProvider",
    "ServerFederatedWithPortalTokenProvider",
    "TokenProvider",
]
