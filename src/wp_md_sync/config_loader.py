"""
Hierarchical configuration loader for wp_md_sync.

Provides convention-based config file discovery, YAML !include support,
env var interpolation, and a section-wise merge in which the project file
wins over the global one.

Usage:
    from wp_md_sync.config_loader import load_hierarchical_config

    config = load_hierarchical_config(base_dir=site_dir)
"""

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = ".wp_md"
CONFIG_NAME = "config.yml"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(
    value: str, env: Mapping[str, str | None] | None = None
) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with the value of VAR, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.

    Args:
        value: String to interpolate.
        env: Extra variables (e.g. a site's ``.env``) consulted after
            ``os.environ``.
    """
    extra = env or {}

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name) or extra.get(var_name)
        if env_val:
            return env_val
        if default is not None:
            return default
        return ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(
    obj: Any, env: Mapping[str, str | None] | None = None
) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj, env)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item, env) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    The global ``yaml.SafeLoader`` is never modified.  Each load carries an
    include stack so circular includes are reported instead of recursing.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    include_path_str: str = loader.construct_scalar(node)

    # Relative includes resolve against the including file.
    include_path = Path(include_path_str).expanduser()
    if not include_path.is_absolute():
        include_path = Path(loader.name).resolve().parent / include_path
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, include_path])
        raise ValueError(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(
        include_path, _include_stack=[*include_stack, include_path]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load a YAML file using the ``ConfigLoader`` (with ``!include``)."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files(base_dir: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``WP_MD_CONFIG`` env var (explicit single path).
        2. ``.wp_md/config.yml`` in *base_dir* (the site directory).
        3. ``.wp_md/config.yml`` in CWD, when it differs from *base_dir*
           (shared settings for a ``watch --all`` root).
        4. ``~/.config/wp_md/config.yml`` (XDG global).

    Only paths that exist on disk are returned, without duplicates.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("WP_MD_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd().resolve()
    base = base_dir.resolve() if base_dir is not None else cwd
    candidates.append(base / CONFIG_DIR / CONFIG_NAME)
    if base != cwd:
        candidates.append(cwd / CONFIG_DIR / CONFIG_NAME)

    candidates.append(Path.home() / ".config" / "wp_md" / CONFIG_NAME)

    found: list[Path] = []
    for path in candidates:
        if path.exists() and path not in found:
            found.append(path)
    return found


# ---------------------------------------------------------------------------
# 3a. Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# wp-md configuration
#
# Connection settings normally live in each site's .env file
# (written by `wp-md init`) or in environment variables:
#   WP_MD_URL, WP_MD_USER, WP_MD_APP_PASSWORD, WP_MD_CONTENT_DIR
#
# site:
#   content_dir: content
#   insecure: false
#   timeout: 60
#
# Watch-mode timing:
#
# sync:
#   debounce_ms: 1000
#   poll_interval: 30
#   suppression_ms: 2000
#   poll_types: [post, page, wp_template, wp_template_part, wp_block, wp_navigation]
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(base_dir: Path | None = None) -> Path:
    """Ensure a config file exists, writing a commented starter file if needed.

    Returns:
        Path to the highest-precedence existing config file, or to the
        newly created ``<base_dir>/.wp_md/config.yml``.
    """
    existing = discover_config_files(base_dir)
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = (base_dir or Path.cwd()) / CONFIG_DIR / CONFIG_NAME
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def _merge_sections(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Merge *override* into *base* one level deep.

    Keys inside a section (``site``, ``sync``, ``logging``) merge
    individually; any non-mapping value replaces the lower one.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_hierarchical_config(
    base_dir: Path | None = None,
    env: Mapping[str, str | None] | None = None,
) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest, merged section by
    section, then env var interpolation is applied to every string value.

    Args:
        base_dir: Site directory used for project-level discovery.
        env: Extra variables for ``${VAR}`` interpolation.

    Returns:
        The merged dict, or an empty dict when no config files exist.
    """
    paths = discover_config_files(base_dir)

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged = _merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged, env)
