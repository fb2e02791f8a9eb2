"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token manager and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


# Nested settings are built by default_factory and only see os.environ, so the
# .env file is loaded there instead of through pydantic-settings' env_file.
_load_env_file()

_HTTP_URL = TypeAdapter(AnyHttpUrl)


class AmoCRMSettings(BaseSettings):
    """Integration credentials registered in the AmoCRM account."""

    client_id: str = Field(..., validation_alias="AMOCRM_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="AMOCRM_CLIENT_SECRET")
    redirect_uri: str = Field(..., validation_alias="AMOCRM_REDIRECT_URI")
    base_domain: Optional[str] = Field(
        None,
        validation_alias="AMOCRM_BASE_DOMAIN",
        description=(
            "Account host (e.g. example.amocrm.ru) to pin token lookups to. "
            "When omitted, the most recently stored token is used."
        ),
    )
    http_timeout: float = Field(30.0, validation_alias="AMOCRM_HTTP_TIMEOUT")
    refresh_margin_seconds: int = Field(
        0,
        ge=0,
        validation_alias="AMOCRM_REFRESH_MARGIN_SECONDS",
        description="Refresh tokens this many seconds before they expire.",
    )

    @field_validator("redirect_uri")
    @classmethod
    def _check_redirect_uri(cls, value: str) -> str:
        """Validate as a URL but keep the exact string registered in AmoCRM."""
        try:
            _HTTP_URL.validate_python(value)
        except ValidationError as exc:
            raise ValueError(f"{value!r} is not a valid http(s) URL") from exc
        return value

    @field_validator("base_domain", mode="before")
    @classmethod
    def _strip_scheme(cls, value: Optional[str]) -> Optional[str]:
        """Accept either a bare host or a full https:// URL."""
        if not value:
            return None
        host = value.strip()
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return host.rstrip("/") or None


class StorageSettings(BaseSettings):
    """Where persisted credentials live."""

    token_db_path: str = Field("data/amolink.sqlite3", validation_alias="TOKEN_DB_PATH")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    amocrm: AmoCRMSettings = Field(default_factory=AmoCRMSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AmoCRMSettings",
    "AppSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
