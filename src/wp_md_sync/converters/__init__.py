"""Conversion between WordPress items and local front-matter files."""

from .frontmatter import (
    RemotePayload,
    build_create_data,
    build_front_matter,
    generate_filename,
    item_to_text,
    media_body,
    parse_front_matter,
    slugify,
    text_to_payload,
)

__all__ = [
    "RemotePayload",
    "build_create_data",
    "build_front_matter",
    "generate_filename",
    "item_to_text",
    "media_body",
    "parse_front_matter",
    "slugify",
    "text_to_payload",
]
