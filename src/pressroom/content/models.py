"""Content domain models. Pure Pydantic v2 data types.

A ContentRecord is one authored post. Its content hash covers every
field a reader can see, so any edit produces a new hash; the mirror
relies on that to decide between create, update and skip.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import date

from pydantic import BaseModel, Field

_PATH_SEPARATORS = re.compile(r"[/\\]+")


def tag_segment(tag: str) -> str:
    """URL path segment for *tag*: path separators become dashes, dot-only names are dashed."""
    segment = _PATH_SEPARATORS.sub("-", tag)
    if not segment.strip("."):
        segment = "-" * len(segment)
    return segment


def normalize_body(body: str) -> str:
    """Canonical body text used for hashing and remote payloads."""
    stripped = body.strip()
    return stripped + "\n" if stripped else ""


class ContentRecord(BaseModel):
    """One authored post, identified by its slug."""

    slug: str
    title: str
    body: str
    date: date
    modified: date | None = None
    excerpt: str = ""
    tags: list[str] = Field(default_factory=list)
    source_path: str = ""

    @property
    def content_hash(self) -> str:
        canonical = {
            "slug": self.slug,
            "title": self.title,
            "body": normalize_body(self.body),
            "date": self.date.isoformat(),
            "modified": self.modified.isoformat() if self.modified else None,
            "excerpt": self.excerpt,
            "tags": sorted(self.tags),
        }
        payload = json.dumps(canonical, sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @property
    def path(self) -> str:
        return f"/posts/{self.slug}"


class TagSummary(BaseModel):
    """A tag and the number of posts carrying it."""

    name: str
    count: int
