"""Site configuration.

A *site* is a WordPress connection plus the local directory that holds its
``.env`` file, sync state and content root.  Connection settings are read
from CLI args, environment variables, the site's own ``.env`` file and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > site .env file > YAML config > Built-in defaults

The site ``.env`` is read with ``dotenv_values`` rather than loaded into
``os.environ`` so that several sites can be configured side by side in one
process.

Environment variables:
    WP_MD_URL: WordPress site URL (required)
    WP_MD_USER: WordPress username (required)
    WP_MD_APP_PASSWORD: Application password (required)
    WP_MD_CONTENT_DIR: Content root relative to the site dir (optional, default: content)
    WP_MD_INSECURE: Skip SSL verification (optional, default: false)
    WP_MD_TIMEOUT: Read timeout for REST calls in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import dotenv_values

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_FILE = ".env"
DEFAULT_CONTENT_DIR = "content"


@dataclass
class SiteConfig:
    name: str
    site_url: str
    username: str
    app_password: str
    site_dir: Path
    content_dir: str = DEFAULT_CONTENT_DIR
    insecure: bool = False
    timeout: float = 60.0

    @property
    def content_root(self) -> Path:
        """Absolute path of the directory holding the Markdown files."""
        return (self.site_dir / self.content_dir).resolve()


def validate_config(config: SiteConfig) -> None:
    """Validate configuration values and raise ConfigError if invalid.

    Args:
        config: SiteConfig instance to validate.

    Raises:
        ConfigError: If URL format is invalid or credentials are empty.
    """
    config.site_url = config.site_url.strip()

    if not config.site_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid site URL '{config.site_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.site_url)
    if not parsed.hostname:
        raise ConfigError(
            f"Invalid site URL '{config.site_url}': URL must include a hostname"
        )

    config.site_url = config.site_url.removesuffix("/")

    if not config.username.strip():
        raise ConfigError(
            "WordPress username cannot be empty. Set WP_MD_USER in the site .env file."
        )

    if not config.app_password.strip():
        raise ConfigError(
            "Application password cannot be empty. Set WP_MD_APP_PASSWORD in the site .env file."
        )

    if Path(config.content_dir).is_absolute() or ".." in Path(
        config.content_dir
    ).parts:
        raise ConfigError(
            f"Invalid content dir '{config.content_dir}': must be a relative path inside the site directory"
        )

    if config.timeout <= 0:
        raise ConfigError(
            f"Invalid timeout '{config.timeout}': must be a positive number of seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled for %s (insecure=True). Use only for development.",
            config.site_url,
        )


def _parse_bool(val: str | None) -> bool | None:
    """Return True/False from a string, or None if unset."""
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_site_config(
    site_dir: Path | str = ".",
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    insecure: bool = False,
    name: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> SiteConfig:
    """Load configuration for one site with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > process env var > site .env > yaml_fallbacks > built-in default

    Args:
        site_dir: Directory holding the site's ``.env`` and state file.
        url: Override site URL.
        username: Override username.
        password: Override application password.
        insecure: Skip SSL verification (CLI flag).
        name: Display name; defaults to the site directory name.
        yaml_fallbacks: Values from the YAML config ``site`` section.

    Returns:
        Validated SiteConfig instance.

    Raises:
        ConfigError: If required config (URL, username, password) is
            missing after checking all sources, or a value is invalid.
    """
    site_path = Path(site_dir).resolve()
    fb = yaml_fallbacks or {}

    env_path = site_path / ENV_FILE
    file_env = dotenv_values(env_path) if env_path.exists() else {}

    def lookup(key: str, fallback_key: str) -> str | None:
        return os.getenv(key) or file_env.get(key) or fb.get(fallback_key)

    site_url = url or lookup("WP_MD_URL", "url")
    if not site_url:
        raise ConfigError(
            f"Site URL not found for {site_path}. Run `wp-md init`, set WP_MD_URL, "
            "or pass --url."
        )

    wp_user = username or lookup("WP_MD_USER", "username")
    if not wp_user:
        raise ConfigError(
            "WordPress username not found. Set WP_MD_USER or pass --username."
        )

    app_password = password or lookup("WP_MD_APP_PASSWORD", "password")
    if not app_password:
        raise ConfigError(
            "Application password not found. Set WP_MD_APP_PASSWORD or pass --password."
        )

    content_dir = (
        lookup("WP_MD_CONTENT_DIR", "content_dir") or DEFAULT_CONTENT_DIR
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _parse_bool(
            os.getenv("WP_MD_INSECURE") or file_env.get("WP_MD_INSECURE")
        )
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    timeout_raw = lookup("WP_MD_TIMEOUT", "timeout")
    if timeout_raw is None:
        final_timeout = 60.0
    else:
        try:
            final_timeout = float(timeout_raw)
        except (TypeError, ValueError):
            raise ConfigError(
                f"Invalid WP_MD_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None

    config = SiteConfig(
        name=name or site_path.name,
        site_url=site_url.strip(),
        username=wp_user.strip(),
        app_password=app_password.strip(),
        site_dir=site_path,
        content_dir=content_dir.strip(),
        insecure=final_insecure,
        timeout=final_timeout,
    )

    validate_config(config)

    return config


def site_configured(site_dir: Path | str) -> bool:
    """Return True when *site_dir* holds a ``.env`` with a site URL."""
    env_path = Path(site_dir) / ENV_FILE
    if not env_path.exists():
        return False
    return bool(dotenv_values(env_path).get("WP_MD_URL"))


def save_site_config(config: SiteConfig) -> Path:
    """Write the site's credentials to its ``.env`` file.

    Returns:
        Path of the written file.
    """
    config.site_dir.mkdir(parents=True, exist_ok=True)
    env_path = config.site_dir / ENV_FILE
    env_path.write_text(
        "# wp-md configuration\n"
        "# Add this file to .gitignore to protect credentials\n"
        "\n"
        f"WP_MD_URL={config.site_url}\n"
        f"WP_MD_USER={config.username}\n"
        f"WP_MD_APP_PASSWORD={config.app_password}\n"
        f"WP_MD_CONTENT_DIR={config.content_dir}\n",
        encoding="utf-8",
    )
    logger.info("Saved site configuration to %s", env_path)
    return env_path


def discover_sites(root: Path | str) -> list[Path]:
    """Return sub-directories of *root* that hold a configured site.

    Hidden directories are skipped.  Used by ``wp-md watch --all``.
    """
    root_path = Path(root).resolve()
    sites: list[Path] = []
    for entry in sorted(root_path.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if site_configured(entry):
            sites.append(entry)
    return sites
