from __future__ import annotations

import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_VALIDATION_BYTES: int = 100


class Settings(BaseSettings):
    """
    Application configuration settings, loaded from environment variables.
    """

    debug: bool = False
    commit_sha: Optional[str] = None
    prometheus_enabled: bool = True

    host: str = "0.0.0.0"
    port: int = 8080

    # Number of leading bytes inspected before the upload is relayed.
    validation_bytes: int = Field(default=DEFAULT_VALIDATION_BYTES)
    upload_field: str = "file"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("protect_", "private_"),
    )

    @field_validator("validation_bytes")
    @classmethod
    def validate_validation_bytes(cls, v: int) -> int:
        """The prefix window must cover at least one byte."""
        if v < 1:
            raise ValueError("VALIDATION_BYTES must be >= 1")
        return v

    @field_validator("upload_field", mode="before")
    @classmethod
    def _strip_upload_field(cls, v: object) -> object:
        """Trim whitespace around the multipart field name and reject blanks."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("UPLOAD_FIELD must not be empty")
        return v


# Public accessor – manual caching to support special behaviour in tests
_CACHED_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:  # noqa: D401 – accessor helper
    """Return a **singleton** Settings instance unless running under pytest.

    Under pytest (``PYTEST_CURRENT_TEST`` present) every call builds a fresh
    instance so that tests can flip environment variables with
    ``monkeypatch`` and observe the effect immediately.
    """

    global _CACHED_SETTINGS  # noqa: PLW0603 – module-level singleton

    if "PYTEST_CURRENT_TEST" in os.environ:
        return Settings()

    if _CACHED_SETTINGS is None:
        _CACHED_SETTINGS = Settings()

    return _CACHED_SETTINGS


def _clear_settings_cache() -> None:  # noqa: D401 – helper for tests
    """Clear the internal Settings singleton (used by unit-tests)."""

    global _CACHED_SETTINGS
    _CACHED_SETTINGS = None


get_settings.cache_clear = _clear_settings_cache  # type: ignore[attr-defined]
