"""Unified configuration schema for wp_md_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the site connection, sync timing and logging.

Usage:
    from wp_md_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = unified.site.fallbacks()
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

from .content_types import CONTENT_TYPES

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SiteSection(BaseModel):
    """WordPress connection defaults.

    All fields are optional: each site's ``.env``, environment variables
    and CLI args normally supply them.  Values here act as fallbacks
    shared by every site.
    """

    url: str | None = Field(default=None, description="WordPress site URL")
    username: str | None = Field(
        default=None, description="WordPress username"
    )
    password: str | None = Field(
        default=None, description="Application password"
    )
    content_dir: str | None = Field(
        default=None, description="Content root relative to the site dir"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        description="Read timeout for REST calls in seconds",
    )

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Return the non-None values, keyed as ``load_site_config`` expects."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class SyncSection(BaseModel):
    """Watch-mode timing and polling settings.

    Attributes:
        debounce_ms: Quiet period before a local change is pushed.
        poll_interval: Seconds between remote polls (0 disables polling).
        poll_start_delay: Seconds before the first poll.
        suppression_ms: How long a pulled file is hidden from the watcher.
        poll_types: Content types included in remote polling.
        max_parallel_requests: Concurrent blocking calls (REST requests
            and file reads) per site.
    """

    debounce_ms: int = Field(default=1000, ge=0)
    poll_interval: float = Field(default=0, ge=0)
    poll_start_delay: float = Field(default=2.0, ge=0)
    suppression_ms: int = Field(default=2000, ge=0)
    poll_types: list[str] = Field(
        default_factory=lambda: [
            name for name, ct in CONTENT_TYPES.items() if ct.pollable
        ]
    )
    max_parallel_requests: int = Field(default=4, ge=1, le=32)

    model_config = {"frozen": True}

    @field_validator("poll_types")
    @classmethod
    def _known_types(cls, value: list[str]) -> list[str]:
        unknown = [t for t in value if t not in CONTENT_TYPES]
        if unknown:
            raise ValueError(
                f"Unknown content types in poll_types: {unknown}. "
                f"Valid types: {sorted(CONTENT_TYPES)}"
            )
        return value


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            unset means the mode default.
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    site: SiteSection = Field(default_factory=SiteSection)
    sync: SyncSection = Field(default_factory=SyncSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
