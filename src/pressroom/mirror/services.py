"""Mirror passes: publish local posts, pull remote documents, prune mappings.

Every pass runs while holding the mapping repository's lock and records
per-item outcomes in a SyncReport instead of raising. Mappings written
before a deadline or failure stay valid, so an interrupted pass resumes
where it stopped on the next run.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from pressroom.config import DOCUMENT_COLLECTION, PUBLICATION_COLLECTION
from pressroom.content.services import parse_markdown_post, render_markdown_post
from pressroom.errors import (
    AuthenticationError,
    ConsistencyError,
    InputValidationError,
    ItemFailure,
    SessionExpiredError,
    TransportError,
    WriteError,
)
from pressroom.mirror.mapping import document_to_record, record_to_document, slug_to_rkey
from pressroom.mirror.models import (
    ConflictState,
    PublicationMapping,
    RemoteRecord,
    StandardDocument,
    StandardPublication,
    SyncConflict,
    SyncDirection,
    SyncReport,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from pressroom.build.writer import FileWriter
    from pressroom.config import PressroomConfig
    from pressroom.content.models import ContentRecord
    from pressroom.mirror.client import AtProtoClient
    from pressroom.mirror.repository import MappingRepository

logger = logging.getLogger(__name__)


class LocalEntry(BaseModel):
    """One markdown file in the posts directory."""

    slug: str
    filename: str
    content_hash: str | None = None
    error: str = ""


class LocalIndex(BaseModel):
    """Slug → content hash of every local post file."""

    entries: dict[str, LocalEntry] = Field(default_factory=dict)

    @classmethod
    def from_directory(cls, posts_dir: Path) -> LocalIndex:
        entries: dict[str, LocalEntry] = {}
        if not posts_dir.is_dir():
            return cls()
        for path in sorted(posts_dir.glob("*.md")):
            try:
                record = parse_markdown_post(path.read_text(encoding="utf-8"), path.stem, str(path))
            except (InputValidationError, OSError, UnicodeDecodeError) as exc:
                entries[path.stem] = LocalEntry(slug=path.stem, filename=path.name, error=str(exc))
                continue
            entries[record.slug] = LocalEntry(
                slug=record.slug,
                filename=path.name,
                content_hash=record.content_hash,
            )
        return cls(entries=entries)

    def get(self, slug: str) -> LocalEntry | None:
        return self.entries.get(slug)

    @property
    def slugs(self) -> set[str]:
        return set(self.entries)


class _Deadline:
    def __init__(self, seconds: float | None, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._stop_at = None if seconds is None else clock() + seconds

    @property
    def expired(self) -> bool:
        return self._stop_at is not None and self._clock() >= self._stop_at


class Mirror:
    """Keeps the local posts and their site.standard records in step."""

    def __init__(
        self,
        client: AtProtoClient,
        repository: MappingRepository,
        settings: PressroomConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.repository = repository
        self.settings = settings
        self._clock = clock

    @property
    def publication_uri(self) -> str:
        return f"at://{self.client.did}/{PUBLICATION_COLLECTION}/self"

    def ensure_publication(self) -> RemoteRecord:
        """Create or update the site-level publication record."""
        site = self.settings.site
        publication = StandardPublication(url=site.base_url, name=site.title, description=site.description)
        logger.info("Ensuring publication record %s", self.publication_uri)
        return self.client.put_record(PUBLICATION_COLLECTION, "self", publication.to_record())

    # ── Publish ──────────────────────────────────────────────────

    def _put_document(self, record: ContentRecord, rkey: str) -> RemoteRecord:
        document = record_to_document(record, self.publication_uri).to_record()
        try:
            return self.client.put_record(DOCUMENT_COLLECTION, rkey, document)
        except SessionExpiredError:
            logger.info("Session expired while publishing %s, refreshing", record.slug)
            self.client.refresh()
            return self.client.put_record(DOCUMENT_COLLECTION, rkey, document)

    def publish(self, records: Iterable[ContentRecord], *, deadline: float | None = None) -> SyncReport:
        """Create, update or skip each record by comparing content hashes.

        A transport failure is recorded against its record and the pass
        moves on. If the session cannot be refreshed mid-pass, the
        remaining records are deferred to the next run.
        """
        report = SyncReport(direction=SyncDirection.PUBLISH)
        timer = _Deadline(deadline, self._clock)
        rkeys: dict[str, str] = {}
        seen: set[str] = set()
        session_lost = False

        with self.repository.locked():
            for record in sorted(records, key=lambda r: r.slug):
                if session_lost or timer.expired:
                    report.deferred.append(record.slug)
                    continue

                rkey = slug_to_rkey(record.slug)
                owner = rkeys.setdefault(rkey, record.slug)
                reason = ""
                if record.slug in seen:
                    reason = f"duplicate slug {record.slug!r}"
                elif not rkey:
                    reason = "slug has no valid record key"
                elif owner != record.slug:
                    reason = f"record key {rkey!r} already used by {owner}"
                seen.add(record.slug)
                if reason:
                    err = InputValidationError(reason, subject=record.slug)
                    logger.warning("Not publishing: %s", err)
                    report.errors.append(ItemFailure.from_exception(err))
                    continue

                content_hash = record.content_hash
                mapping = self.repository.get(record.slug)
                if mapping is not None and mapping.content_hash == content_hash:
                    logger.debug("Unchanged: %s", record.slug)
                    report.skipped.append(record.slug)
                    continue

                try:
                    result = self._put_document(record, rkey)
                except AuthenticationError as exc:
                    if self.client.session is None:
                        raise
                    logger.error("Session lost while publishing %s: %s", record.slug, exc)
                    report.errors.append(ItemFailure.from_exception(exc, subject=record.slug))
                    session_lost = True
                    continue
                except TransportError as exc:
                    logger.warning("Failed to publish %s: %s", record.slug, exc)
                    report.errors.append(ItemFailure.from_exception(exc, subject=record.slug))
                    continue

                self.repository.put(
                    PublicationMapping(
                        slug=record.slug,
                        rkey=rkey,
                        uri=result.uri or f"at://{self.client.did}/{DOCUMENT_COLLECTION}/{rkey}",
                        cid=result.cid,
                        content_hash=content_hash,
                        synced_at=datetime.now(UTC),
                    )
                )
                if mapping is None:
                    logger.info("Created %s -> %s", record.slug, rkey)
                    report.created.append(record.slug)
                else:
                    logger.info("Updated %s -> %s", record.slug, rkey)
                    report.updated.append(record.slug)

        logger.info(report.summary())
        return report

    # ── Pull ─────────────────────────────────────────────────────

    def fetch_remote(self) -> list[RemoteRecord]:
        """All document records that belong to this publication."""
        publication_uri = self.publication_uri
        records = []
        for remote in self.client.iter_records(DOCUMENT_COLLECTION):
            if remote.value.get("site") != publication_uri:
                logger.debug("Ignoring %s from another publication", remote.uri)
                continue
            records.append(remote)
        return records

    def pull(
        self,
        remote_records: Iterable[RemoteRecord],
        local_index: LocalIndex,
        writer: FileWriter,
        *,
        force: bool = False,
        deadline: float | None = None,
    ) -> SyncReport:
        """Write remote documents into the posts directory without clobbering local edits.

        States per slug:
          remote only                         → write
          local matches remote                → skip (adopting a mapping if missing)
          local matches mapping, remote moved → write
          local moved since the last sync     → ConsistencyError, no write
          local present, unmapped, different  → ConsistencyError, no write
        ``force`` overwrites in every case.
        """
        report = SyncReport(direction=SyncDirection.PULL)
        timer = _Deadline(deadline, self._clock)
        remote_slugs: set[str] = set()

        with self.repository.locked():
            for remote in sorted(remote_records, key=lambda r: r.uri):
                try:
                    document = StandardDocument.model_validate(remote.value)
                    record = document_to_record(document)
                except (ValidationError, InputValidationError) as exc:
                    err = InputValidationError(f"unreadable document: {exc}", subject=remote.uri)
                    logger.warning("Skipping remote record: %s", err)
                    report.errors.append(ItemFailure.from_exception(err))
                    continue

                slug = record.slug
                remote_slugs.add(slug)
                if timer.expired:
                    report.deferred.append(slug)
                    continue
                self._pull_one(remote, record, local_index, writer, force, report)

            report.local_only = sorted(local_index.slugs - remote_slugs)

        logger.info(report.summary())
        return report

    def _pull_one(
        self,
        remote: RemoteRecord,
        record: ContentRecord,
        local_index: LocalIndex,
        writer: FileWriter,
        force: bool,
        report: SyncReport,
    ) -> None:
        slug = record.slug
        remote_hash = record.content_hash
        mapping = self.repository.get(slug)
        local = local_index.get(slug)
        filename = local.filename if local else f"{slug}.md"

        if local is not None and not force:
            state: ConflictState | None = None
            message = ""
            if local.content_hash is None:
                state, message = ConflictState.UNPARSABLE, f"local file cannot be parsed ({local.error})"
            elif local.content_hash == remote_hash:
                if mapping is None or mapping.content_hash != remote_hash:
                    self._remember(slug, remote, remote_hash)
                    report.adopted.append(slug)
                else:
                    report.skipped.append(slug)
                return
            elif mapping is None:
                state, message = ConflictState.UNMAPPED_DIFFERENT, "local file differs and was never synced"
            elif local.content_hash != mapping.content_hash:
                if remote_hash == mapping.content_hash:
                    state, message = ConflictState.LOCAL_MODIFIED, "local edits not yet published"
                else:
                    state, message = ConflictState.DIVERGENT, "local and remote both changed since the last sync"

            if state is not None:
                err = ConsistencyError(message, subject=slug)
                logger.warning("Not overwriting %s: %s", filename, err)
                report.conflicts.append(SyncConflict(slug=slug, state=state, message=message))
                return

        try:
            writer.write(filename, render_markdown_post(record).encode("utf-8"))
        except WriteError as exc:
            logger.warning("Failed to write %s: %s", filename, exc)
            report.errors.append(ItemFailure.from_exception(exc, subject=slug))
            return
        self._remember(slug, remote, remote_hash)
        logger.info("Pulled %s", filename)
        report.pulled.append(slug)

    def _remember(self, slug: str, remote: RemoteRecord, content_hash: str) -> None:
        self.repository.put(
            PublicationMapping(
                slug=slug,
                rkey=remote.rkey,
                uri=remote.uri,
                cid=remote.cid,
                content_hash=content_hash,
                synced_at=datetime.now(UTC),
            )
        )

    # ── Prune ────────────────────────────────────────────────────

    def prune(self, local_slugs: Iterable[str]) -> SyncReport:
        """Drop mappings whose local post is gone and whose remote record is confirmed deleted."""
        report = SyncReport(direction=SyncDirection.PRUNE)
        keep = set(local_slugs)

        with self.repository.locked():
            for mapping in self.repository.all():
                if mapping.slug in keep:
                    continue
                try:
                    remote = self.client.get_record(DOCUMENT_COLLECTION, mapping.rkey)
                except TransportError as exc:
                    logger.warning("Could not check %s: %s", mapping.uri, exc)
                    report.errors.append(ItemFailure.from_exception(exc, subject=mapping.slug))
                    continue
                if remote is not None:
                    logger.warning(
                        "Keeping mapping for %s: local post is gone but %s still exists",
                        mapping.slug,
                        mapping.uri,
                    )
                    report.skipped.append(mapping.slug)
                    continue
                self.repository.remove(mapping.slug)
                logger.info("Removed mapping for %s", mapping.slug)
                report.removed.append(mapping.slug)

        logger.info(report.summary())
        return report
