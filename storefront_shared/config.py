"""
Shared configuration management for the Storefront Access Layer.
"""

from functools import lru_cache
from typing import Dict, List, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FORWARDED_COOKIES = [
    "anonymous_id",
    "anonymous_user_id",
    "fc.session",
    "cc.session",
    "ajs_anonymous_id",
    "ajs_user_id",
]


class StorefrontConfig(BaseSettings):
    """Process-wide settings, loaded from STOREFRONT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["local", "development", "production", "test"] = "local"
    service_name: str = "storefront"
    log_level: str = "info"
    json_logs: bool = True

    # Remote GraphQL API
    graphql_endpoint: str = "https://api.fynd.com/service/application/graphql"
    auth_token: SecretStr
    application_id: str = "67a9fef03076c6a7a761763f"

    # Cache
    cache_ttl_seconds: int = Field(default=300, ge=0)
    cache_max_size: int = Field(default=1000, ge=1)

    # Request handling
    request_timeout_ms: int = Field(default=3000, ge=100)
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_base_delay_ms: int = Field(default=300, ge=0)
    retry_max_delay_ms: int = Field(default=2000, ge=0)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=10, ge=1)
    circuit_reset_timeout_ms: int = Field(default=30000, ge=0)

    # Cookies forwarded to the GraphQL API and accepted back from it
    forwarded_cookies: List[str] = Field(default_factory=lambda: list(DEFAULT_FORWARDED_COOKIES))
    secure_cookies: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def auth_headers(self) -> Dict[str, str]:
        """Headers authenticating this storefront against the GraphQL API."""
        token = self.auth_token.get_secret_value()
        authorization = token if token.startswith("Bearer ") else f"Bearer {token}"
        return {
            "authorization": authorization,
            "content-type": "application/json",
        }


@lru_cache(maxsize=1)
def get_config() -> StorefrontConfig:
    """Get the process-wide configuration."""
    return StorefrontConfig()
