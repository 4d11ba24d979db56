"""
Error types for the ArcGIS gateway.

Transport failures, logical (server envelope) failures and serialisation
failures are kept distinct so callers can apply different retry policies.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for the gateway."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class TransportError(GatewayException):
    """HTTP level failure: DNS, TLS, connection, non-2xx status or a malformed URL."""

    def __init__(
        self,
        message: str = "Transport error",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__("TRANSPORT_ERROR", message, details)


class OperationError(GatewayException):
    """The server answered with an ``error`` envelope."""

    def __init__(
        self,
        server_code: int,
        server_message: Optional[str],
        server_details: Optional[List[str]] = None,
        description: Optional[str] = None,
    ):
        self.server_code = server_code
        self.server_message = server_message or ""
        self.server_details = list(server_details or [])
        self.description = description
        message = "Code {0}: {1}.{2}\n{3}".format(
            server_code,
            self.server_message,
            description or "",
            " ".join(self.server_details),
        ).rstrip()
        super().__init__(
            "OPERATION_ERROR",
            message,
            {
                "server_code": server_code,
                "server_message": self.server_message,
                "server_details": self.server_details,
                "description": description,
            },
        )


class SerializationError(GatewayException):
    """Response body could not be parsed into the expected model."""

    def __init__(self, message: str = "Unable to deserialize response", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)
