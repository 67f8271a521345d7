"""wp-md command line interface.

Subcommands:

    init         Configure a site directory (.env) and test the connection
    pull         Download content from WordPress
    push         Upload local changes to WordPress
    status       Show sync status between local files and WordPress
    watch        Bidirectional sync: watch local files, poll WordPress
    new          Create new content in WordPress and locally
    upload       Upload a file to the media library
    force-push   Push ALL local content (re-creates missing items)
    resolve      Settle a conflict in favour of one side

Exit codes: 0 on success, 1 when configuration, the state file or the
connection check fails, or when any path in a batch failed.
"""

import argparse
import asyncio
import getpass
import json
import logging
import signal
import sys
from pathlib import Path

from . import __version__
from .config import (
    SiteConfig,
    discover_sites,
    save_site_config,
    site_configured,
    validate_config,
)
from .config_loader import ensure_config
from .config_schema import UnifiedConfig
from .content_types import CONTENT_TYPES, resolve_type_names
from .core.client import WordPressClient
from .exceptions import ConfigError, StateStoreError, TransportError
from .lifespan import load_unified_config, site_lifespan
from .logger import setup_logging
from .notifier import (
    JsonLinesNotifier,
    LoggingNotifier,
    MultiNotifier,
    Notifier,
)
from .sync import (
    LocalWatcher,
    RemotePoller,
    SyncEngine,
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)
from .sync.reporter import format_conflict_diff

logger = logging.getLogger(__name__)

_TYPE_CHOICES = [*CONTENT_TYPES, "all"]


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def _overrides(args: argparse.Namespace) -> dict:
    """Build config overrides dict from CLI args."""
    config_overrides: dict = {}
    if args.url:
        config_overrides["url"] = args.url
    if args.username:
        config_overrides["username"] = args.username
    if args.password:
        config_overrides["password"] = args.password
    if args.insecure:
        config_overrides["insecure"] = True
    return config_overrides


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    """Write a site's .env after a successful connection test."""
    site_dir = Path(args.folder or args.dir).resolve()

    if site_configured(site_dir) and not args.force:
        answer = input("Configuration already exists. Overwrite? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Cancelled.")
            return 0

    url = args.url or input(
        "WordPress site URL (e.g. https://example.com): "
    ).strip()
    username = args.username or input("WordPress username: ").strip()
    password = args.password or getpass.getpass(
        "Application password (Users > Profile > Application Passwords): "
    )

    config = SiteConfig(
        name=site_dir.name,
        site_url=url,
        username=username,
        app_password=password,
        site_dir=site_dir,
        content_dir=args.content_dir,
        insecure=args.insecure,
    )
    validate_config(config)

    _stderr_print("Testing connection...")
    try:
        user = WordPressClient(config).validate_connection()
    except TransportError as e:
        _stderr_print(f"Connection failed: {e}")
        _stderr_print("Make sure:")
        _stderr_print("  1. The site URL is correct")
        _stderr_print("  2. REST API is enabled")
        _stderr_print("  3. Application password is valid")
        return 1
    _stderr_print(f"Connected as {user}")

    env_path = save_site_config(config)
    config.content_root.mkdir(parents=True, exist_ok=True)
    print(f"Credentials saved to {env_path}")
    print("(Add .env to .gitignore to protect credentials)")
    print(f"Settings: {ensure_config(site_dir)}")
    print()
    print("Next steps:")
    print(f"  wp-md -C {site_dir} pull    # Download all content")
    return 0


# ---------------------------------------------------------------------------
# One-shot batch commands
# ---------------------------------------------------------------------------


async def cmd_pull(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        report = await SyncEngine(session).pull(
            resolve_type_names(args.type), force=args.force
        )
    if args.json:
        _print_json(report_to_json(report))
    else:
        print(format_sync_report(report))
    return 0 if report.ok else 1


async def cmd_push(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        report = await SyncEngine(session).push(
            resolve_type_names(args.type),
            file_filter=args.file,
            dry_run=args.dry_run,
        )
    if args.json:
        _print_json(report_to_json(report))
    else:
        print(format_sync_report(report))
    return 0 if report.ok else 1


async def cmd_force_push(
    args: argparse.Namespace, unified: UnifiedConfig
) -> int:
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        report = await SyncEngine(session).force_push(dry_run=args.dry_run)
    if args.json:
        _print_json(report_to_json(report))
    else:
        print(format_sync_report(report))
    return 0 if report.ok else 1


async def cmd_status(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    async with site_lifespan(
        args.dir, _overrides(args), unified, validate=args.remote
    ) as session:
        status = await SyncEngine(session).status(remote=args.remote)
    if args.json:
        _print_json(status_to_json(status))
    else:
        print(format_status(status))
    return 0


async def cmd_new(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        try:
            result = await SyncEngine(session).new(
                args.content_type,
                args.title,
                publish=args.publish,
                content=args.content,
                area=args.area,
                parent=args.parent,
            )
        except ValueError as e:
            _stderr_print(f"ERROR: {e}")
            return 1
    if not result.success:
        _stderr_print(f"ERROR: Failed to create {args.content_type}: {result.error}")
        return 1
    print(f"Created {result.content_type} (ID: {result.remote_id})")
    print(f"  {result.path}")
    return 0


async def cmd_upload(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    file = Path(args.file).expanduser().resolve()
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        try:
            result = await SyncEngine(session).upload(
                file,
                title=args.title,
                alt_text=args.alt,
                caption=args.caption,
            )
        except ValueError as e:
            _stderr_print(f"ERROR: {e}")
            return 1
    if not result.success:
        _stderr_print(f"ERROR: Failed to upload {file.name}: {result.error}")
        return 1
    print(f"Uploaded: {result.path}")
    print(f"  ID: {result.remote_id}")
    print(f"  URL: {result.message}")
    return 0


async def cmd_resolve(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    async with site_lifespan(args.dir, _overrides(args), unified) as session:
        engine = SyncEngine(session)
        try:
            if args.diff:
                diff = await engine.conflict_diff(args.path)
                print(format_conflict_diff(engine.normalize_path(args.path), diff))
                return 0
            side = "local" if args.local else "remote"
            result = await engine.resolve(args.path, side)
        except (ValueError, TransportError) as e:
            _stderr_print(f"ERROR: {e}")
            return 1
    if not result.success:
        _stderr_print(f"ERROR: Could not resolve {result.path}: {result.error}")
        return 1
    print(f"Resolved {result.path} ({'local' if args.local else 'remote'} wins)")
    return 0


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


def _watch_notifier(args: argparse.Namespace) -> Notifier:
    if args.events:
        return MultiNotifier(LoggingNotifier(), JsonLinesNotifier(args.events))
    return LoggingNotifier()


async def _watch_site(
    site_dir: Path,
    args: argparse.Namespace,
    unified: UnifiedConfig,
    notifier: Notifier,
    stop: asyncio.Event,
) -> None:
    updates = {}
    if args.debounce is not None:
        updates["debounce_ms"] = args.debounce
    if args.poll is not None:
        updates["poll_interval"] = args.poll
    if updates:
        unified = unified.model_copy(
            update={"sync": unified.sync.model_copy(update=updates)}
        )
    settings = unified.sync

    async with site_lifespan(
        site_dir, _overrides(args), unified, notifier=notifier
    ) as session:
        watcher = LocalWatcher(session, settings.debounce_ms)
        poller = RemotePoller(
            session, settings.poll_interval, settings.poll_start_delay
        )
        watcher.start()
        poller.start()
        poll_desc = (
            f"polling every {settings.poll_interval}s"
            if poller.enabled
            else "remote polling off"
        )
        _stderr_print(
            f"[{session.name}] Watching {session.content_root} "
            f"(debounce {settings.debounce_ms}ms, {poll_desc})"
        )
        try:
            await stop.wait()
        finally:
            watcher.stop()
            poller.stop()


async def cmd_watch(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C raises KeyboardInterrupt.
            pass

    notifier = _watch_notifier(args)
    if not args.all:
        await _watch_site(Path(args.dir), args, unified, notifier, stop)
        return 0

    sites = discover_sites(args.dir)
    if not sites:
        _stderr_print(f"ERROR: No configured sites found under {args.dir}")
        return 1
    _stderr_print(f"Watching {len(sites)} sites. Press Ctrl+C to stop.")
    outcomes = await asyncio.gather(
        *(
            _watch_site(
                site, args, load_unified_config(site), notifier, stop
            )
            for site in sites
        ),
        return_exceptions=True,
    )
    failed = 0
    for site, outcome in zip(sites, outcomes):
        if isinstance(outcome, BaseException):
            failed += 1
            logger.error("[%s] Watch stopped: %s", site.name, outcome)
    return 1 if failed else 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wp-md",
        description="wp-md - WordPress content as Markdown files, synced both ways",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Set up the current directory for a site
  wp-md init

  # Download everything, then push local edits
  wp-md pull
  wp-md push --dry-run
  wp-md push -f about.md

  # Create a draft page and track it locally
  wp-md new page "About Us"

  # Upload an image and keep its metadata under media/
  wp-md upload logo.png --alt "Company logo"

  # Sync both ways, polling WordPress every 30 seconds
  wp-md watch --poll 30

  # Watch every configured site below the current directory
  wp-md watch --all --events /tmp/wp-md-events.jsonl
        """,
    )
    parser.add_argument(
        "-C",
        "--dir",
        default=".",
        help="Site directory holding .env and the sync state "
        "(default: current directory)",
    )
    parser.add_argument(
        "--url",
        help="Override the site URL (takes precedence over WP_MD_URL)",
    )
    parser.add_argument(
        "--username",
        help="Override the WordPress username (takes precedence over WP_MD_USER)",
    )
    parser.add_argument(
        "--password",
        help="Override the application password (takes precedence over "
        "WP_MD_APP_PASSWORD) (visible in process list -- prefer the .env file)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"wp-md version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # init
    p = sub.add_parser(
        "init", help="Initialize configuration for a WordPress site"
    )
    p.add_argument(
        "folder", nargs="?", help="Site directory (default: --dir)"
    )
    p.add_argument(
        "--content-dir",
        default="content",
        help="Content root inside the site directory (default: content)",
    )
    p.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing configuration without asking",
    )

    # pull
    p = sub.add_parser("pull", help="Download content from WordPress")
    p.add_argument(
        "-t", "--type", choices=_TYPE_CHOICES, default="all"
    )
    p.add_argument(
        "--force", action="store_true", help="Overwrite local changes"
    )
    p.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    # push
    p = sub.add_parser("push", help="Upload local changes to WordPress")
    p.add_argument(
        "-t", "--type", choices=_TYPE_CHOICES, default="all"
    )
    p.add_argument(
        "-f", "--file", help="Only push paths containing this text"
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be pushed without making changes",
    )
    p.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    # status
    p = sub.add_parser(
        "status", help="Show sync status between local files and WordPress"
    )
    p.add_argument(
        "--remote",
        action="store_true",
        help="Also check WordPress for changes and conflicts",
    )
    p.add_argument(
        "--json", action="store_true", help="Print the status as JSON"
    )

    # watch
    p = sub.add_parser(
        "watch",
        help="Bidirectional sync: watch local files and poll WordPress",
    )
    p.add_argument(
        "-d",
        "--debounce",
        type=int,
        default=None,
        help="Debounce delay in milliseconds (default: 1000)",
    )
    p.add_argument(
        "-p",
        "--poll",
        type=float,
        default=None,
        help="Poll WordPress every N seconds (0 to disable)",
    )
    p.add_argument(
        "--all",
        action="store_true",
        help="Watch every configured site below --dir",
    )
    p.add_argument(
        "--events", help="Append sync events as JSON lines to this file"
    )

    # new
    p = sub.add_parser(
        "new", help="Create new content in WordPress and locally"
    )
    p.add_argument(
        "content_type",
        choices=[n for n, ct in CONTENT_TYPES.items() if ct.creatable],
    )
    p.add_argument("title", help="Title of the new item")
    p.add_argument(
        "--publish",
        action="store_true",
        help="Publish immediately instead of draft",
    )
    p.add_argument("-c", "--content", help="Initial block content")
    p.add_argument(
        "--area",
        help="Template part area (header, footer, uncategorized)",
    )
    p.add_argument("--parent", type=int, help="Parent page ID")

    # upload
    p = sub.add_parser("upload", help="Upload a file to the media library")
    p.add_argument("file", help="File to upload")
    p.add_argument(
        "-t", "--title", help="Media title (default: file name)"
    )
    p.add_argument("-a", "--alt", help="Alt text for images")
    p.add_argument("-c", "--caption", help="Media caption")

    # force-push
    p = sub.add_parser(
        "force-push",
        help="Push ALL local content to WordPress (creates missing items)",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be pushed without making changes",
    )
    p.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    # resolve
    p = sub.add_parser(
        "resolve", help="Resolve a conflict in favour of one side"
    )
    p.add_argument("path", help="Conflicting file")
    side = p.add_mutually_exclusive_group(required=True)
    side.add_argument(
        "--local",
        action="store_true",
        help="Keep the local file (push it to WordPress)",
    )
    side.add_argument(
        "--remote",
        action="store_true",
        help="Keep the WordPress version (overwrite the local file)",
    )
    side.add_argument(
        "--diff",
        action="store_true",
        help="Show the differences without resolving",
    )

    return parser


_ASYNC_COMMANDS = {
    "pull": cmd_pull,
    "push": cmd_push,
    "status": cmd_status,
    "watch": cmd_watch,
    "new": cmd_new,
    "upload": cmd_upload,
    "force-push": cmd_force_push,
    "resolve": cmd_resolve,
}


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, set up logging and run one command.

    Returns:
        The process exit code.
    """
    args = build_parser().parse_args(argv)

    try:
        unified = load_unified_config(args.dir)
    except ConfigError as e:
        setup_logging(debug=args.debug)
        _stderr_print(f"ERROR: {e}")
        return 1

    setup_logging(
        mode="watch" if args.command == "watch" else "cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        if args.command == "init":
            return cmd_init(args)
        handler = _ASYNC_COMMANDS[args.command]
        return asyncio.run(handler(args, unified))
    except (ConfigError, StateStoreError) as e:
        _stderr_print(f"ERROR: {e}")
        return 1
    except RuntimeError:
        # Error already printed to stderr by the lifespan manager
        return 1


def run() -> None:
    """Entry point that handles errors gracefully."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
