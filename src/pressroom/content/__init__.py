"""Authored posts and the read model the site renders from."""

from pressroom.content.models import ContentRecord, TagSummary, normalize_body, tag_segment
from pressroom.content.services import (
    PostLibrary,
    load_records,
    parse_markdown_post,
    render_markdown_post,
    select_records,
)

__all__ = [
    "ContentRecord",
    "PostLibrary",
    "TagSummary",
    "load_records",
    "normalize_body",
    "parse_markdown_post",
    "render_markdown_post",
    "select_records",
    "tag_segment",
]
