"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-batch summary.
- ``format_status`` -- ``wp-md status`` listing grouped by status.
- ``format_conflict_diff`` -- unified diff for conflict review.
- ``report_to_json`` / ``status_to_json`` -- structured dicts for
  ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import FileStatus

if TYPE_CHECKING:
    from .models import StatusReport, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged paths are summarised by count only to avoid excessive
    output.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [report.summary(), ""]

    if report.pulled:
        lines.append("Pulled from WordPress:")
        for r in report.pulled:
            lines.append(f"  {r.path}")
        lines.append("")

    if report.pushed:
        lines.append(
            "Would push:" if report.dry_run else "Pushed to WordPress:"
        )
        for r in report.pushed:
            lines.append(f"  {r.path} -> {r.content_type} {r.remote_id}")
        lines.append("")

    if report.created_remote:
        lines.append(
            "Would create:" if report.dry_run else "Created in WordPress:"
        )
        for r in report.created_remote:
            lines.append(f"  {r.path} -> {r.content_type} {r.remote_id}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            lines.append(f"  {r.path}: {r.message or 'both sides changed'}")
        lines.append("")

    if report.advisories:
        lines.append("Advisories:")
        for r in report.advisories:
            lines.append(f"  {r.path}: {r.message}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.path}: {r.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Status
# ------------------------------------------------------------------

_STATUS_LABELS: dict[FileStatus, str] = {
    FileStatus.MODIFIED: "Modified locally (not pushed)",
    FileStatus.NEW_LOCAL: "New local files (untracked)",
    FileStatus.MISSING: "Missing (tracked, deleted locally)",
    FileStatus.REMOTE_CHANGED: "Changed in WordPress",
    FileStatus.REMOTE_NEW: "New in WordPress",
    FileStatus.CONFLICT: "Conflicts",
}


def format_status(status: StatusReport) -> str:
    """Format a status report grouped by status."""
    lines: list[str] = [
        f"Site: {status.site} ({status.site_url})",
        f"Last sync: {status.last_sync or 'never'}",
        f"Synced: {len(status.with_status(FileStatus.SYNCED))} files",
        "",
    ]
    for file_status, label in _STATUS_LABELS.items():
        entries = status.with_status(file_status)
        if not entries:
            continue
        lines.append(f"{label}:")
        for e in entries:
            lines.append(f"  {e.path}")
        lines.append("")

    if status.errors:
        lines.append("Errors:")
        for err in status.errors:
            lines.append(f"  {err}")
        lines.append("")

    if status.in_sync:
        lines.append("Everything is in sync.")
    elif not status.remote_checked:
        lines.append("Run with --remote to check WordPress for changes.")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(path: str, diff_lines: list[str]) -> str:
    """Format a conflict diff for review.

    Args:
        path: The conflicting path.
        diff_lines: Unified diff lines (with line endings).

    Returns:
        Multi-line formatted string.
    """
    lines = [f"Conflict: {path}", ""]
    diff_text = "".join(diff_lines)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")
    lines.append("")
    lines.append(
        f"Resolve with: wp-md resolve {path} --local  (keep local)"
    )
    lines.append(
        f"          or: wp-md resolve {path} --remote (keep WordPress)"
    )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with site info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.content_type:
            entry["type"] = r.content_type
        if r.remote_id is not None:
            entry["id"] = r.remote_id
        if r.message:
            entry["message"] = r.message
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "site": report.site,
        "operation": report.operation,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "pulled": len(report.pulled),
            "pushed": len(report.pushed),
            "created_remote": len(report.created_remote),
            "unchanged": len(report.ignored),
            "conflicts": len(report.conflicts),
            "advisories": len(report.advisories),
            "errors": len(report.errors),
        },
        "results": results_list,
    }


def status_to_json(status: StatusReport) -> dict:
    """Convert a status report to a structured dict."""
    counts = {s.value: len(status.with_status(s)) for s in FileStatus}
    return {
        "site": status.site,
        "url": status.site_url,
        "last_sync": status.last_sync,
        "remote_checked": status.remote_checked,
        "in_sync": status.in_sync,
        "counts": counts,
        "files": [
            e.model_dump(mode="json", exclude_none=True)
            for e in status.entries
        ],
        "errors": list(status.errors),
    }
