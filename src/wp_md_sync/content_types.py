"""WordPress content types known to wp-md-sync.

Each content type ties a WordPress post type to its REST endpoint and to
the folder (relative to the site content root) its Markdown files live
in.  The folder doubles as the path prefix used to recognise which type a
local file belongs to.
"""

from __future__ import annotations

from pydantic import BaseModel


class ContentType(BaseModel):
    """One synchronisable WordPress post type.

    Attributes:
        name: WordPress post type slug (``post``, ``wp_template``, ...).
        endpoint: REST collection under ``wp/v2/``.
        folder: Folder under the content root holding this type's files.
        label: Human-readable plural label.
        pollable: Included in watch-mode remote polling.
        creatable: Can be created with ``wp-md new`` and force-pushed.
        media: Media library item; its file is read-only metadata written
            by pull and ``wp-md upload``, never pushed.
    """

    name: str
    endpoint: str
    folder: str
    label: str
    pollable: bool = True
    creatable: bool = True
    media: bool = False

    model_config = {"frozen": True}


CONTENT_TYPES: dict[str, ContentType] = {
    ct.name: ct
    for ct in (
        ContentType(
            name="post",
            endpoint="posts",
            folder="post-types/post",
            label="Posts",
        ),
        ContentType(
            name="page",
            endpoint="pages",
            folder="post-types/page",
            label="Pages",
        ),
        ContentType(
            name="wp_navigation",
            endpoint="navigation",
            folder="post-types/wp_navigation",
            label="Navigation",
        ),
        ContentType(
            name="wp_template",
            endpoint="templates",
            folder="templates",
            label="Templates",
        ),
        ContentType(
            name="wp_template_part",
            endpoint="template-parts",
            folder="template-parts",
            label="Template Parts",
        ),
        ContentType(
            name="wp_block",
            endpoint="blocks",
            folder="patterns",
            label="Patterns",
        ),
        ContentType(
            name="attachment",
            endpoint="media",
            folder="media",
            label="Media",
            pollable=False,
            creatable=False,
            media=True,
        ),
    )
}


def get_content_type(name: str) -> ContentType:
    """Return the ``ContentType`` registered under *name*.

    Raises:
        ValueError: If *name* is not a known content type.
    """
    ct = CONTENT_TYPES.get(name)
    if ct is None:
        raise ValueError(
            f"Unknown content type: '{name}'. Valid types: {sorted(CONTENT_TYPES)}"
        )
    return ct


def resolve_type_names(selection: str | None) -> list[str]:
    """Expand a CLI ``--type`` value into a list of type names.

    ``None`` and ``"all"`` select every known type, in table order.
    """
    if selection is None or selection == "all":
        return list(CONTENT_TYPES)
    return [get_content_type(selection).name]
