"""Configuration for the Integration Tool Gateway."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="integration-gateway")
    service_version: str = Field(default="1.0.0")

    mcp_server_url: str = Field(default="http://localhost")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    environment: str = Field(default="development")

    project_id: str = Field(default="")
    signing_key: Optional[str] = Field(default=None)
    signing_key_path: Optional[str] = Field(default=None)

    zeus_base_url: str = Field(default="https://zeus.useparagon.com")
    proxy_base_url: str = Field(default="https://proxy.useparagon.com")
    actionkit_base_url: str = Field(default="https://actionkit.useparagon.com")
    connect_sdk_cdn_url: str = Field(default="https://cdn.useparagon.com/latest/sdk/index.js")
    http_timeout_seconds: float = Field(default=30)
    max_concurrency: int = Field(default=20)

    enable_custom_openapi_actions: bool = Field(default=False)
    enable_proxy_api_tool: bool = Field(default=False)
    enable_custom_tool: bool = Field(default=False)
    limit_to_integrations: Optional[str] = Field(default=None)
    limit_to_tools: Optional[str] = Field(default=None)
    openapi_dir: str = Field(default="openapi")

    setup_token_ttl_seconds: int = Field(default=300)
    setup_token_max_reads: int = Field(default=5)
    shutdown_timeout_seconds: float = Field(default=5)
    bootstrap_user_id: str = Field(default="integration-gateway")

    log_level: str = Field(default="INFO")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def mcp_server_domain(self) -> str:
        origin = self.mcp_server_url.rstrip("/")
        if self.is_production:
            return origin
        return f"{origin}:{self.port}"

    def integration_allowlist(self) -> Set[str]:
        return _split_list(self.limit_to_integrations)

    def tool_allowlist(self) -> Set[str]:
        return _split_list(self.limit_to_tools)


def _split_list(value: Optional[str]) -> Set[str]:
    if not value:
        return set()
    return {item.strip() for item in value.split(",") if item.strip()}


def load_signing_key(settings: Settings) -> str:
    """Return the PEM signing key, preferring ``signing_key_path`` over the inline value."""
    if settings.signing_key_path:
        try:
            raw = Path(settings.signing_key_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(
                f"Failed to read signing key file: {settings.signing_key_path}"
            ) from exc
        return raw.replace("\\n", "\n")

    if not settings.signing_key:
        raise ConfigurationError("Neither SIGNING_KEY nor SIGNING_KEY_PATH is set")

    return settings.signing_key.replace("\\n", "\n")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
