"""Tests for the unified config schema."""

import pytest
from pydantic import ValidationError

from wp_md_sync.config_schema import (
    LoggingConfig,
    SiteSection,
    SyncSection,
    UnifiedConfig,
    build_config,
)
from wp_md_sync.content_types import CONTENT_TYPES


class TestDefaults:
    def test_zero_config(self):
        config = build_config({})
        assert config == UnifiedConfig()
        assert config.sync.debounce_ms == 1000
        assert config.sync.poll_interval == 0
        assert config.sync.suppression_ms == 2000
        assert config.sync.max_parallel_requests == 4
        assert config.sync.poll_types == [
            name for name, ct in CONTENT_TYPES.items() if ct.pollable
        ]
        assert "attachment" not in config.sync.poll_types
        assert config.logging.level is None
        assert config.logging.format == "text"

    def test_missing_sections_get_defaults(self):
        config = build_config({"sync": {"poll_interval": 30}})
        assert config.sync.poll_interval == 30
        assert config.site == SiteSection()


class TestSiteSection:
    def test_fallbacks_drop_unset(self):
        section = SiteSection(url="https://wp.example.com")
        assert section.fallbacks() == {
            "url": "https://wp.example.com",
            "insecure": False,
            "timeout": 60.0,
        }

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            SiteSection(timeout=0)


class TestSyncSection:
    def test_unknown_poll_type(self):
        with pytest.raises(ValidationError, match="Unknown content types"):
            SyncSection(poll_types=["page", "product"])

    @pytest.mark.parametrize(
        "field, value",
        [
            ("debounce_ms", -1),
            ("poll_interval", -5),
            ("max_parallel_requests", 0),
            ("max_parallel_requests", 33),
        ],
    )
    def test_bounds(self, field, value):
        with pytest.raises(ValidationError):
            SyncSection(**{field: value})

    def test_frozen(self):
        section = SyncSection()
        with pytest.raises(ValidationError):
            section.debounce_ms = 5


class TestLoggingConfig:
    def test_format_pattern(self):
        assert LoggingConfig(format="json").format == "json"
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")
