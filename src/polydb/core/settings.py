"""
Centralized settings for polydb.

Manifesto:
    One validated, cached settings object holds the handful of knobs the
    adapters need (timeouts, scan bounds, search windows, logging).  Values
    come from ``POLYDB_*`` environment variables or a ``.env`` file and are
    validated once at startup instead of being re-parsed per adapter.

Examples:
    >>> from polydb.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.redis_scan_limit
    10000

Tags:
    polydb, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PolyDBSettings(BaseSettings):
    """polydb configuration.

    All fields can be set via ``POLYDB_*`` environment variables (e.g.
    ``POLYDB_CONNECT_TIMEOUT=5``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="POLYDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(
        default=None,
        description="JSON log lines; None auto-detects (JSON when stdout is not a tty)",
    )
    service_name: str = Field(default="polydb")

    # ── Timeouts (seconds) ───────────────────────────────────────
    connect_timeout: float = Field(default=10.0, gt=0)
    query_timeout: float = Field(default=30.0, gt=0)

    # ── Engine specifics ─────────────────────────────────────────
    redis_scan_limit: int = Field(
        default=10_000,
        gt=0,
        description="Upper bound on keys/members read by client-side Redis scans",
    )
    elasticsearch_max_window: int = Field(
        default=10_000,
        gt=0,
        description="index.max_result_window; deeper pages use search_after",
    )
    elasticsearch_sql_row_limit: int = Field(
        default=100_000,
        gt=0,
        description="Upper bound on rows collected from an Elasticsearch SQL cursor",
    )
    graph_sample_size: int = Field(
        default=20,
        gt=0,
        description="Documents sampled per collection when inferring references",
    )


_settings_cache: dict[str, PolyDBSettings] = {}


def get_settings(*, _force_reload: bool = False) -> PolyDBSettings:
    """Load, validate, and cache a :class:`PolyDBSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = PolyDBSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    _settings_cache.clear()


__all__ = [
    "PolyDBSettings",
    "get_settings",
    "clear_settings_cache",
]
