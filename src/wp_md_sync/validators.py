"""
Input validation functions for wp-md-sync.

Validates user input from the CLI (titles, content-root relative paths)
before any remote call is made.
"""

from pathlib import PurePosixPath

# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Title")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_title(title: str, max_length: int = 200) -> tuple[bool, str]:
    """
    Validate the title of a new content item.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not title or not title.strip():
        return (
            False,
            format_validation_error("Title", "cannot be empty"),
        )

    if len(title) > max_length:
        return (
            False,
            format_validation_error(
                "Title", f"exceeds maximum length of {max_length} characters"
            ),
        )

    return (True, "")


def validate_relative_path(rel_path: str) -> tuple[bool, str]:
    """
    Validate a content-root relative file path.

    Returns:
        Tuple of (is_valid, error_message).

    Validation rules:
        - Cannot be empty
        - Must be relative
        - Cannot contain '..' segments (path traversal protection)
        - Must end in '.md'
    """
    if not rel_path or not rel_path.strip():
        return (
            False,
            format_validation_error("Path", "cannot be empty"),
        )

    pure = PurePosixPath(rel_path.replace("\\", "/"))
    if pure.is_absolute():
        return (
            False,
            format_validation_error("Path", "must be relative"),
        )

    if ".." in pure.parts:
        return (
            False,
            format_validation_error("Path", "cannot contain '..'"),
        )

    if pure.suffix != ".md":
        return (
            False,
            format_validation_error("Path", "must be a .md file"),
        )

    return (True, "")
