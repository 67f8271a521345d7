"""Lifespan management for site sessions (startup and shutdown)."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import load_site_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .exceptions import ConfigError, TransportError
from .notifier import Notifier
from .sync.session import SiteSession

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (stdout carries reports)."""
    print(msg, file=sys.stderr, flush=True)


def load_unified_config(site_dir: Path | str = ".") -> UnifiedConfig:
    """Load and validate the YAML config files that apply to *site_dir*.

    Raises:
        ConfigError: If a config file cannot be parsed or does not
            validate.
    """
    try:
        raw = load_hierarchical_config(Path(site_dir))
        return build_config(raw)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
        raise ConfigError(f"Invalid config file: {e}") from e


@asynccontextmanager
async def site_lifespan(
    site_dir: Path | str = ".",
    config_overrides: dict[str, Any] | None = None,
    unified: UnifiedConfig | None = None,
    notifier: Notifier | None = None,
    validate: bool = True,
) -> AsyncIterator[SiteSession]:
    """
    Manage one site's session startup and shutdown.

    On startup:
    - Load YAML config files (site, shared root, global) as fallbacks
    - Merge all sources via load_site_config(): CLI > env vars > site .env > YAML > defaults
    - Create the SiteSession and validate the connection
    - Fail fast if WordPress is unreachable or rejects the credentials

    On shutdown:
    - Cancel pending debounce timers and suppression windows

    Args:
        site_dir: Directory holding the site's .env and state file.
        config_overrides: Optional dict with config values from CLI (url, username, password, insecure)
        unified: Already loaded YAML config; loaded here when omitted.
        notifier: Event sink for the session.
        validate: Check the connection before yielding.

    Yields:
        The ready SiteSession.

    Raises:
        RuntimeError: If configuration is invalid or the connection fails.
    """
    site_path = Path(site_dir).resolve()
    try:
        if unified is None:
            unified = load_unified_config(site_path)
        config_files = discover_config_files(site_path)
        overrides = config_overrides or {}
        config = load_site_config(
            site_path,
            url=overrides.get("url"),
            username=overrides.get("username"),
            password=overrides.get("password"),
            insecure=overrides.get("insecure", False),
            yaml_fallbacks=unified.site.fallbacks(),
        )
        sources = [f"config file: {p}" for p in config_files[:1]]
        if overrides:
            sources.append("CLI arguments")
        sources.append("site .env / environment variables")
        logger.info("Configuration loaded from: %s", ", ".join(sources))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    session = SiteSession(config, sync=unified.sync, notifier=notifier)

    if validate:
        logger.info("[%s] Validating connection to %s", config.name, config.site_url)
        try:
            user = await session.connect()
        except TransportError as e:
            logger.error("[%s] Failed to connect: %s", config.name, e)
            _stderr_print(f"ERROR: Connection to {config.site_url} failed.")
            _stderr_print(f"  {e}")
            _stderr_print(
                "  Check WP_MD_URL, WP_MD_USER, WP_MD_APP_PASSWORD "
                "and that the REST API is enabled."
            )
            raise RuntimeError(
                f"Connection to {config.site_url} failed: {e}"
            ) from e
        logger.info("[%s] Connected as %s", config.name, user)

    try:
        yield session
    finally:
        session.close()
        logger.debug("[%s] Session closed", config.name)
