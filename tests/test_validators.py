import pytest

from wp_md_sync.validators import (
    format_validation_error,
    validate_relative_path,
    validate_title,
)


def test_format_validation_error():
    assert format_validation_error("Title", "cannot be empty") == (
        "Title cannot be empty"
    )


@pytest.mark.parametrize(
    "title, valid",
    [
        ("About Us", True),
        ("", False),
        ("   ", False),
        ("x" * 200, True),
        ("x" * 201, False),
    ],
)
def test_validate_title(title, valid):
    ok, error = validate_title(title)
    assert ok is valid
    assert (error == "") is valid


def test_validate_title_max_length_message():
    ok, error = validate_title("abc", max_length=2)
    assert not ok
    assert "exceeds maximum length of 2" in error


@pytest.mark.parametrize(
    "path, error",
    [
        ("post-types/post/a.md", ""),
        ("post-types\\post\\a.md", ""),
        ("", "Path cannot be empty"),
        ("/abs/a.md", "Path must be relative"),
        ("post-types/../../a.md", "Path cannot contain '..'"),
        ("post-types/post/a.txt", "Path must be a .md file"),
    ],
)
def test_validate_relative_path(path, error):
    ok, message = validate_relative_path(path)
    assert ok is (error == "")
    assert message == error
