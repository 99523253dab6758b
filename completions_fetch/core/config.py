"""
Core configuration module for the completions fetch engine.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the COMPLETIONS_FETCH_ prefix.

Example:
    COMPLETIONS_FETCH_PROXY_URL=https://proxy.example.com
    COMPLETIONS_FETCH_RATE_LIMIT_COOLDOWN_SECONDS=10
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    All fields use the COMPLETIONS_FETCH_ prefix for environment variables.
    """

    # =========================================================================
    # Endpoint Configuration
    # =========================================================================
    proxy_url: str = Field(
        default="https://copilot-proxy.githubusercontent.com",
        description="Base URL of the completions proxy, used when the token carries no endpoint",
    )
    provider_request_id_header: str = Field(
        default="x-github-request-id",
        description="Header that identifies a response as coming from the provider",
    )

    # =========================================================================
    # HTTP Client Configuration
    # =========================================================================
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=600.0,
        description="Timeout in seconds for connect/read/write on the completions request",
    )
    max_connections: int = Field(
        default=100,
        ge=1,
        description="Maximum number of pooled connections",
    )
    max_keepalive_connections: int = Field(
        default=20,
        ge=0,
        description="Maximum number of keepalive connections",
    )

    # =========================================================================
    # Request Defaults
    # =========================================================================
    max_completion_tokens: int = Field(
        default=500,
        ge=1,
        description="Default max_tokens sent with each completion request",
    )
    disable_logprobs: bool = Field(
        default=False,
        description="Do not request token logprobs unless the caller asks explicitly",
    )
    drop_completion_reasons: list[str] = Field(
        default_factory=list,
        description="Finish reasons whose candidates are discarded instead of returned",
    )

    # =========================================================================
    # Circuit Breaker Configuration
    # =========================================================================
    rate_limit_cooldown_seconds: float = Field(
        default=10.0,
        ge=0.0,
        le=600.0,
        description="Seconds completions stay disabled after a 429 from the proxy",
    )

    # =========================================================================
    # Logging
    # =========================================================================
    log_level: str = Field(
        default="INFO",
        description="Log level for the structured logger",
    )

    model_config = {
        "env_prefix": "COMPLETIONS_FETCH_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("proxy_url")
    @classmethod
    def validate_proxy_url(cls, v: str) -> str:
        """Validate proxy URL scheme and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Proxy URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """
    Get the engine settings singleton.

    Uses functools.lru_cache to ensure only one Settings instance is created.

    Returns:
        Settings: The engine settings instance.
    """
    return Settings()
