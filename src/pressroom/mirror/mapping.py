"""Conversion between local posts and site.standard records."""

from __future__ import annotations

import re
from datetime import date

from pressroom.content.models import ContentRecord, normalize_body
from pressroom.errors import InputValidationError
from pressroom.mirror.models import DocumentContent, StandardDocument

POST_PATH_PREFIX = "/posts/"
DESCRIPTOR_PATH = "/.well-known/site.standard.publication"
DOCUMENT_LINK_REL = "site.standard.document"
TEXT_CONTENT_LIMIT = 10000

_RKEY_DISALLOWED = re.compile(r"[^A-Za-z0-9-]")

_MARKDOWN_RULES = [
    (re.compile(r"```.*?```", re.S), ""),
    (re.compile(r"^#{1,6}\s+", re.M), ""),
    (re.compile(r"!\[([^\]]*)\]\([^)]+\)"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),
    (re.compile(r"`(.+?)`"), r"\1"),
    (re.compile(r"^>\s+", re.M), ""),
    (re.compile(r"^\s*[-*+]\s+", re.M), ""),
    (re.compile(r"\n{2,}"), "\n"),
]


def slug_to_rkey(slug: str) -> str:
    """Record key for a slug: only ASCII letters, digits and hyphens survive."""
    return _RKEY_DISALLOWED.sub("", slug)


def strip_markdown(text: str) -> str:
    """Plain-text rendition of markdown for the ``textContent`` field."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def _iso_timestamp(day: date) -> str:
    return f"{day.isoformat()}T00:00:00.000Z"


def record_to_document(record: ContentRecord, publication_uri: str) -> StandardDocument:
    """Build the document record published for *record*."""
    body = normalize_body(record.body)
    return StandardDocument(
        site=publication_uri,
        title=record.title,
        published_at=_iso_timestamp(record.date),
        path=record.path,
        description=record.excerpt or None,
        content=DocumentContent(value=body),
        text_content=strip_markdown(body)[:TEXT_CONTENT_LIMIT],
        tags=list(record.tags) or None,
        updated_at=_iso_timestamp(record.modified) if record.modified else None,
    )


def _parse_day(value: str, field: str, subject: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise InputValidationError(f"invalid {field}: {value!r}", subject=subject) from exc


def document_to_record(document: StandardDocument) -> ContentRecord:
    """Local post for a remote document; the slug comes from its path."""
    if not document.path.startswith(POST_PATH_PREFIX):
        raise InputValidationError("document path is not a post path", subject=document.path)
    slug = document.path[len(POST_PATH_PREFIX):].strip("/")
    if not slug or slug in (".", "..") or "/" in slug or "\\" in slug:
        raise InputValidationError("document path has no usable slug", subject=document.path)
    return ContentRecord(
        slug=slug,
        title=document.title.strip(),
        body=normalize_body(document.content.value if document.content else ""),
        date=_parse_day(document.published_at, "publishedAt", slug),
        modified=_parse_day(document.updated_at, "updatedAt", slug) if document.updated_at else None,
        excerpt=(document.description or "").strip(),
        tags=list(document.tags or []),
    )
