"""Loading posts from markdown files and serving them to the site.

Posts live as ``<slug>.md`` files with YAML frontmatter::

    ---
    title: "Hello"
    date: 2025-01-02
    tags: [python, notes]
    excerpt: "Short summary"
    ---
    Body in markdown.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from pressroom.content.models import ContentRecord, TagSummary, normalize_body, tag_segment
from pressroom.errors import InputValidationError, ItemFailure

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

FRONTMATTER_FENCE = "---"

_FORBIDDEN_SLUG_CHARS = set("/\\?#") | {" ", "\t", "\n"}


def _split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    if not text.startswith(FRONTMATTER_FENCE):
        return {}, text
    end = text.find(f"\n{FRONTMATTER_FENCE}", len(FRONTMATTER_FENCE))
    if end == -1:
        raise InputValidationError("unterminated frontmatter block")
    raw = text[len(FRONTMATTER_FENCE):end]
    body = text[end + len(FRONTMATTER_FENCE) + 1:]
    try:
        meta = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise InputValidationError(f"invalid frontmatter: {exc}") from exc
    if not isinstance(meta, dict):
        raise InputValidationError("frontmatter must be a mapping")
    return meta, body.lstrip("\n")


def _coerce_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise InputValidationError(f"invalid {field}: {value!r}") from exc


def _coerce_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, list):
        return [str(t).strip() for t in value if str(t).strip()]
    raise InputValidationError(f"invalid tags: {value!r}")


def parse_markdown_post(text: str, default_slug: str, source_path: str = "") -> ContentRecord:
    """Parse a markdown post with YAML frontmatter into a ContentRecord.

    The ``slug`` frontmatter key overrides *default_slug*. Raises
    InputValidationError when the title or date is missing or malformed.
    """
    meta, body = _split_frontmatter(text)
    slug = str(meta.get("slug", default_slug) or "").strip()
    title = str(meta.get("title") or "").strip()
    if not title:
        raise InputValidationError("missing title", subject=slug or source_path)
    published = _coerce_date(meta.get("date"), "date")
    if published is None:
        raise InputValidationError("missing date", subject=slug or source_path)
    return ContentRecord(
        slug=slug,
        title=title,
        body=body,
        date=published,
        modified=_coerce_date(meta.get("modified"), "modified"),
        excerpt=str(meta.get("excerpt") or "").strip(),
        tags=_coerce_tags(meta.get("tags")),
        source_path=source_path,
    )


def render_markdown_post(record: ContentRecord) -> str:
    """Serialize a record back to a markdown file with frontmatter."""
    meta: dict[str, Any] = {
        "title": record.title,
        "date": record.date.isoformat(),
    }
    if record.tags:
        meta["tags"] = list(record.tags)
    if record.excerpt:
        meta["excerpt"] = record.excerpt
    if record.modified:
        meta["modified"] = record.modified.isoformat()
    frontmatter = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True)
    return f"{FRONTMATTER_FENCE}\n{frontmatter}{FRONTMATTER_FENCE}\n{normalize_body(record.body)}"


def _read_post(path: Path) -> ContentRecord:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InputValidationError(f"not valid UTF-8: {exc.reason}", subject=str(path)) from exc
    except OSError as exc:
        raise InputValidationError(f"unreadable: {exc.strerror or exc}", subject=str(path)) from exc
    return parse_markdown_post(text, path.stem, str(path))


def load_records(
    posts_dir: Path,
    *,
    strict: bool = False,
    report: list[ItemFailure] | None = None,
) -> list[ContentRecord]:
    """Load every ``*.md`` post under *posts_dir*, sorted by filename.

    Unparsable files are logged and recorded in *report*; with
    ``strict=True`` the first one is raised instead.
    """
    if not posts_dir.is_dir():
        logger.warning("Posts directory %s does not exist", posts_dir)
        return []

    records: list[ContentRecord] = []
    for path in sorted(posts_dir.glob("*.md")):
        try:
            records.append(_read_post(path))
        except InputValidationError as exc:
            if strict:
                raise
            logger.warning("Skipping %s: %s", path.name, exc.message)
            if report is not None:
                report.append(ItemFailure.from_exception(exc, subject=str(path)))
    return records


def check_slug(record: ContentRecord, seen: set[str]) -> None:
    """Raise InputValidationError when *record* has no usable slug or repeats one in *seen*."""
    slug = record.slug
    subject = record.source_path or slug
    if not slug:
        raise InputValidationError("missing slug", subject=subject)
    if slug in (".", "..") or _FORBIDDEN_SLUG_CHARS & set(slug):
        raise InputValidationError(f"malformed slug {slug!r}", subject=subject)
    if slug in seen:
        raise InputValidationError(f"duplicate slug {slug!r}", subject=subject)


def select_records(
    records: Iterable[ContentRecord],
    *,
    strict: bool = False,
    report: list[ItemFailure] | None = None,
) -> list[ContentRecord]:
    """Records with a usable slug, first occurrence of each slug wins.

    Rejected records are recorded in *report*; with ``strict=True`` the
    first one is raised instead.
    """
    selected: list[ContentRecord] = []
    seen: set[str] = set()
    for record in records:
        try:
            check_slug(record, seen)
        except InputValidationError as exc:
            if strict:
                raise
            if report is not None:
                report.append(ItemFailure.from_exception(exc))
            continue
        seen.add(record.slug)
        selected.append(record)
    return selected


class PostLibrary:
    """Read model over a fixed set of records, used by the site handlers."""

    def __init__(self, records: Iterable[ContentRecord]) -> None:
        self._records = list(records)

    @classmethod
    def from_directory(cls, posts_dir: Path, *, strict: bool = False) -> PostLibrary:
        failures: list[ItemFailure] = []
        records = select_records(load_records(posts_dir, strict=strict), strict=strict, report=failures)
        for failure in failures:
            logger.warning("Excluding record: %s", failure)
        return cls(records)

    @property
    def records(self) -> list[ContentRecord]:
        return list(self._records)

    def posts(self) -> list[ContentRecord]:
        """All posts, newest first, ties broken by slug."""
        by_slug = sorted(self._records, key=lambda r: r.slug)
        return sorted(by_slug, key=lambda r: r.date, reverse=True)

    def get(self, slug: str) -> ContentRecord | None:
        for record in self._records:
            if record.slug == slug:
                return record
        return None

    def tags(self) -> list[TagSummary]:
        counts: Counter[str] = Counter()
        for record in self._records:
            counts.update(set(record.tags))
        return [TagSummary(name=name, count=counts[name]) for name in sorted(counts)]

    def by_tag(self, tag: str) -> list[ContentRecord]:
        return [r for r in self.posts() if tag in r.tags]

    def tags_for_segment(self, segment: str) -> list[str]:
        """Tag names whose URL segment is *segment*."""
        return sorted({t for r in self._records for t in r.tags if tag_segment(t) == segment})

    def by_tag_segment(self, segment: str) -> list[ContentRecord]:
        names = set(self.tags_for_segment(segment))
        return [r for r in self.posts() if names.intersection(r.tags)]
