"""Environment-driven defaults for reconverge.

``ReconvergeSettings`` holds the knobs that callers usually do not want to
hard-code: logging, the defaults used when the convergence driver builds its
own executor, and the size of the local collection engine.

Examples:
    >>> from reconverge.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.default_break_after
    20

All fields can be set via ``RECONVERGE_*`` environment variables
(e.g. ``RECONVERGE_PARALLELISM=8``) or a ``.env`` file.

Tags:
    settings, configuration, pydantic, environment, reconverge
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconvergeSettings(BaseSettings):
    """Reconverge configuration.

    Fields
    ──────
    log_level            : structlog log level
    log_format           : ``json`` or ``console``
    default_attempt      : attempts per call for the driver's default executor
    default_break_after  : exhausted calls before the default executor trips
    parallelism          : worker threads of the local collection engine
    partitions           : partitions the local engine splits a collection into
    """

    model_config = SettingsConfigDict(
        env_prefix="RECONVERGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Default executor ─────────────────────────────────────────
    default_attempt: int = Field(default=1, ge=1)
    default_break_after: int = Field(default=20, ge=1)

    # ── Local collection engine ──────────────────────────────────
    parallelism: int = Field(default=4, ge=1)
    partitions: int = Field(default=8, ge=1)

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


@lru_cache(maxsize=1)
def get_settings() -> ReconvergeSettings:
    """Return the cached settings singleton."""
    return ReconvergeSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings (tests, config reloads)."""
    get_settings.cache_clear()


__all__ = ["ReconvergeSettings", "get_settings", "clear_settings_cache"]
