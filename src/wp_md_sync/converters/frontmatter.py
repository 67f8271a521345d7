"""Conversion between WordPress REST items and front-matter Markdown.

A local file is a YAML front-matter block followed by the raw block
markup of the item::

    ---
    id: 7
    type: page
    slug: about
    status: publish
    title: About
    ---
    <!-- wp:paragraph -->...

The body is stored verbatim; block markup is never converted to
Markdown, so a pull followed by a push is lossless.
Media library items are the exception: their body is a generated
summary (preview, caption, size table) and is never pushed back.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import yaml
from pydantic import BaseModel

from ..exceptions import CodecError

logger = logging.getLogger(__name__)

_FRONT_MATTER_RE = re.compile(r"\A---\n(.*?)\n---\n?(.*)\Z", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")

# Front matter key -> REST payload key.  Keys absent from a file are not
# sent, so a push never blanks a field the file does not mention.
_PAYLOAD_FIELDS: dict[str, str] = {
    "title": "title",
    "slug": "slug",
    "status": "status",
    "excerpt": "excerpt",
    "categories": "categories",
    "tags": "tags",
    "featured_image": "featured_media",
    "template": "template",
    "menu_order": "menu_order",
    "parent": "parent",
}

_TEMPLATE_TYPES = ("wp_template", "wp_template_part")


class RemotePayload(BaseModel):
    """A local file decoded into a REST write request.

    Attributes:
        remote_id: ``id`` from the front matter, if present.
        content_type: ``type`` from the front matter, if present.
        data: JSON body for ``create``/``update``.
    """

    remote_id: int | str | None = None
    content_type: str | None = None
    data: dict[str, Any]

    model_config = {"frozen": True}


# =============================================================================
# Item -> text
# =============================================================================


def _raw_or_rendered(value: Any) -> Any:
    """Return ``raw`` (edit context) or ``rendered`` (view context)."""
    if isinstance(value, dict):
        raw = value.get("raw")
        if raw is not None:
            return raw
        return value.get("rendered")
    return value


def build_front_matter(item: dict, content_type: str) -> dict[str, Any]:
    """Collect the front-matter fields for *item*, in display order."""
    fm: dict[str, Any] = {
        "id": item.get("id"),
        "type": content_type,
        "slug": item.get("slug"),
        "status": item.get("status"),
        "title": _raw_or_rendered(item.get("title")) or "",
        "date": item.get("date"),
        "modified": item.get("modified"),
    }

    if content_type in ("post", "page"):
        fm["author"] = item.get("author")
        excerpt = item.get("excerpt")
        if isinstance(excerpt, dict) and excerpt.get("raw"):
            fm["excerpt"] = excerpt["raw"]
        if item.get("featured_media"):
            fm["featured_image"] = item["featured_media"]
        if item.get("categories"):
            fm["categories"] = item["categories"]
        if item.get("tags"):
            fm["tags"] = item["tags"]
        if item.get("template"):
            fm["template"] = item["template"]

    if content_type == "page":
        if item.get("parent"):
            fm["parent"] = item["parent"]
        if item.get("menu_order"):
            fm["menu_order"] = item["menu_order"]

    if content_type in _TEMPLATE_TYPES:
        fm["theme"] = item.get("theme")
        if item.get("area"):
            fm["area"] = item["area"]
        if item.get("is_custom"):
            fm["is_custom"] = item["is_custom"]

    if content_type == "attachment":
        fm["media_type"] = item.get("media_type")
        fm["mime_type"] = item.get("mime_type")
        fm["alt_text"] = item.get("alt_text") or ""
        fm["source_url"] = item.get("source_url")
        details = item.get("media_details") or {}
        for key in ("width", "height", "file"):
            if details.get(key):
                fm[key] = details[key]
        sizes = details.get("sizes")
        if sizes:
            fm["sizes"] = {
                name: {
                    "url": size.get("source_url"),
                    "width": size.get("width"),
                    "height": size.get("height"),
                }
                for name, size in sizes.items()
            }

    return fm


def _plain(value: Any) -> str:
    text = value
    if isinstance(value, dict):
        text = value.get("raw") or value.get("rendered")
    if not isinstance(text, str):
        return ""
    return _TAG_RE.sub("", text).strip()


def media_body(item: dict, front_matter: dict[str, Any]) -> str:
    """Build the read-only Markdown summary of a media library item.

    Images get a preview line; caption and description follow, then a
    table of the generated sizes.
    """
    parts: list[str] = []
    if item.get("media_type") == "image":
        alt = front_matter.get("alt_text") or front_matter.get("title")
        parts.append(f"![{alt}]({item.get('source_url')})\n\n")
    caption = _plain(item.get("caption"))
    if caption:
        parts.append(f"**Caption:** {caption}\n\n")
    description = _plain(item.get("description"))
    if description:
        parts.append(f"**Description:** {description}\n\n")

    sizes = (item.get("media_details") or {}).get("sizes") or {}
    if sizes:
        parts.append("## Available Sizes\n\n")
        parts.append("| Size | Dimensions | URL |\n")
        parts.append("|------|------------|-----|\n")
        for name, size in sizes.items():
            parts.append(
                f"| {name} | {size.get('width')}x{size.get('height')} "
                f"| {size.get('source_url')} |\n"
            )
    return "".join(parts)


def item_to_text(item: dict, content_type: str) -> str:
    """Render a REST item (``context=edit``) as front-matter Markdown.

    Args:
        item: Item JSON as returned by the REST API.
        content_type: WordPress post type of the item.

    Returns:
        The full file text.

    Raises:
        CodecError: If a field cannot be represented in YAML.
    """
    front_matter = build_front_matter(item, content_type)
    if content_type == "attachment":
        body = media_body(item, front_matter)
    else:
        body = _raw_or_rendered(item.get("content"))
    if body is None:
        body = ""
    try:
        header = yaml.safe_dump(
            front_matter,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        ).strip()
    except yaml.YAMLError as exc:
        raise CodecError(
            f"Cannot render {content_type} {item.get('id')}: {exc}"
        ) from exc
    return f"---\n{header}\n---\n{body}"


# =============================================================================
# Text -> payload
# =============================================================================


def parse_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split *text* into its front-matter mapping and body.

    Raises:
        CodecError: If the front matter is missing, is not valid YAML or
            is not a mapping.
    """
    normalised = text.lstrip("\ufeff").replace("\r\n", "\n")
    match = _FRONT_MATTER_RE.match(normalised)
    if match is None:
        raise CodecError("Invalid file format: missing frontmatter")
    try:
        front_matter = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise CodecError(f"Invalid frontmatter: {exc}") from exc
    if front_matter is None:
        front_matter = {}
    if not isinstance(front_matter, dict):
        raise CodecError("Invalid frontmatter: expected a mapping")
    return front_matter, match.group(2)


def text_to_payload(text: str) -> RemotePayload:
    """Decode a local file into a REST write request.

    Raises:
        CodecError: If the file has no valid front matter.
    """
    front_matter, body = parse_front_matter(text)
    data: dict[str, Any] = {"content": body}
    for fm_key, rest_key in _PAYLOAD_FIELDS.items():
        value = front_matter.get(fm_key)
        if value is not None:
            data[rest_key] = value
    return RemotePayload(
        remote_id=front_matter.get("id"),
        content_type=front_matter.get("type"),
        data=data,
    )


# =============================================================================
# Naming helpers
# =============================================================================


def generate_filename(item: dict) -> str:
    """Return the local file name for *item*: its slug, or ``untitled-<id>``."""
    slug = item.get("slug") or f"untitled-{item.get('id')}"
    return f"{slug}.md"


def slugify(text: str) -> str:
    """Turn a title into a URL slug (``"Hello, World!"`` -> ``hello-world``)."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


_DEFAULT_BODIES: dict[str, str] = {
    "wp_template": (
        '<!-- wp:template-part {"slug":"header","tagName":"header"} /-->\n\n'
        '<!-- wp:group {"tagName":"main","layout":{"type":"constrained"}} -->\n'
        '<main class="wp-block-group">\n'
        "<!-- wp:post-title /-->\n"
        "<!-- wp:post-content /-->\n"
        "</main>\n"
        "<!-- /wp:group -->\n\n"
        '<!-- wp:template-part {"slug":"footer","tagName":"footer"} /-->'
    ),
    "wp_navigation": (
        '<!-- wp:navigation-link {"label":"Home","url":"/"} /-->'
    ),
}


def _paragraph(title: str) -> str:
    return f"<!-- wp:paragraph -->\n<p>{title}</p>\n<!-- /wp:paragraph -->"


def build_create_data(
    content_type: str,
    title: str,
    slug: str,
    publish: bool = False,
    content: str | None = None,
    area: str | None = None,
    parent: int | None = None,
) -> dict[str, Any]:
    """Build the REST body for creating a new item of *content_type*.

    Posts and pages start as drafts unless *publish* is set; site-editor
    types (templates, parts, patterns, navigation) are always published
    and get a minimal default body.
    """
    match content_type:
        case "post":
            return {
                "title": title,
                "slug": slug,
                "status": "publish" if publish else "draft",
                "content": content or "",
            }
        case "page":
            return {
                "title": title,
                "slug": slug,
                "status": "publish" if publish else "draft",
                "content": content or "",
                "parent": parent or 0,
            }
        case "wp_template_part":
            return {
                "slug": slug,
                "title": title,
                "status": "publish",
                "area": area or "uncategorized",
                "content": content or _paragraph(title),
            }
        case "wp_template" | "wp_navigation":
            return {
                "slug": slug,
                "title": title,
                "status": "publish",
                "content": content or _DEFAULT_BODIES[content_type],
            }
        case "wp_block":
            return {
                "title": title,
                "slug": slug,
                "status": "publish",
                "content": content or _paragraph(title),
            }
        case _:
            raise ValueError(f"Cannot create content type: {content_type}")
