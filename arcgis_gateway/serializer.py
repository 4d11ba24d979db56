"""
Serializer: flattens operations into key/value parameters and parses JSON
bodies into response models.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import SerializationError

if TYPE_CHECKING:
    from .operations import Operation

T = TypeVar("T", bound=BaseModel)


class Serializer(Protocol):
    def flatten(self, operation: "Operation") -> Dict[str, str]: ...

    def parse(self, model: Type[T], body: str) -> T: ...


def to_parameter_value(value: Any) -> str:
    """Render a parameter value the way the REST API expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return str(int(value.timestamp() * 1000))
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(value, separators=(",", ":"), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonSerializer:
    """Default serializer backed by pydantic models."""

    def flatten(self, operation: "Operation") -> Dict[str, str]:
        parameters: Dict[str, str] = {"f": "json"}
        for key, value in operation.parameters.items():
            if value is None:
                continue
            parameters[key] = to_parameter_value(value)

        if operation.token:
            parameters["token"] = operation.token
        return parameters

    def parse(self, model: Type[T], body: str) -> T:
        if body is None or not body.strip():
            raise SerializationError(f"Empty response body for {model.__name__}")

        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            raise SerializationError(
                f"Unable to deserialize {model.__name__}",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc
