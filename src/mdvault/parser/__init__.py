"""Markdown link parsing and rewriting."""

from .links import (
    apply_replacements,
    extract_links,
    is_internal_link,
    is_url,
    render_link,
    split_target,
)

__all__ = [
    "apply_replacements",
    "extract_links",
    "is_internal_link",
    "is_url",
    "render_link",
    "split_target",
]
