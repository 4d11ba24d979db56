"""
Configuration for the ArcGIS gateway.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AGO_PORTAL_URL = "https://www.arcgis.com/sharing/rest/"
AGO_OAUTH_TOKEN_URL = "https://www.arcgis.com/sharing/rest/oauth2/token"


class GatewaySettings(BaseSettings):
    """Settings shared by gateways, token providers and the attachment worker."""

    model_config = SettingsConfigDict(
        env_prefix="ARCGIS_GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="info")

    # Transport
    max_get_request_length: int = Field(default=2047, ge=1)
    request_timeout: float = Field(default=100.0, gt=0)
    max_form_value_length: int = Field(default=65519, ge=1)
    include_hypermedia: bool = Field(default=False)

    # Token requests
    token_expiration_minutes: int = Field(default=60, ge=1)
    oauth_expiration_minutes: int = Field(default=120, ge=1)
    encrypt_token_requests: bool = Field(default=False)

    # ArcGIS Online
    portal_url: str = Field(default=AGO_PORTAL_URL)
    oauth_token_url: str = Field(default=AGO_OAUTH_TOKEN_URL)


@lru_cache()
def get_settings() -> GatewaySettings:
    """Get the process wide default settings."""
    return GatewaySettings()
