"""Mirror data types: record lexicon, mappings, and sync reports."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pressroom.errors import ItemFailure

MARKDOWN_CONTENT_TYPE = "site.standard.content.markdown"


class DocumentContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(default=MARKDOWN_CONTENT_TYPE, alias="$type")
    value: str = ""


class StandardDocument(BaseModel):
    """A ``site.standard.document`` record as stored on the PDS."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(default="site.standard.document", alias="$type")
    site: str
    title: str
    published_at: str = Field(alias="publishedAt")
    path: str
    description: str | None = None
    content: DocumentContent | None = None
    text_content: str | None = Field(default=None, alias="textContent")
    tags: list[str] | None = None
    updated_at: str | None = Field(default=None, alias="updatedAt")

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StandardPublication(BaseModel):
    """The site-level ``site.standard.publication`` record (rkey ``self``)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(default="site.standard.publication", alias="$type")
    url: str
    name: str
    description: str = ""

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RemoteRecord(BaseModel):
    """One record as returned by getRecord/listRecords."""

    uri: str
    cid: str = ""
    value: dict[str, Any] = Field(default_factory=dict)

    @property
    def rkey(self) -> str:
        return self.uri.rsplit("/", 1)[-1]


class PublicationMapping(BaseModel):
    """Links a local slug to its remote record and the content last synced."""

    slug: str
    rkey: str
    uri: str
    cid: str = ""
    content_hash: str
    synced_at: datetime


class SyncDirection(StrEnum):
    PUBLISH = "publish"
    PULL = "pull"
    PRUNE = "prune"


class ConflictState(StrEnum):
    """Why a pull refused to touch a local file."""

    LOCAL_MODIFIED = "local-modified"
    DIVERGENT = "divergent"
    UNMAPPED_DIFFERENT = "unmapped-different"
    UNPARSABLE = "unparsable"


class SyncConflict(BaseModel):
    slug: str
    state: ConflictState
    message: str

    def __str__(self) -> str:
        return f"{self.slug} [{self.state}]: {self.message}"


class SyncReport(BaseModel):
    """Outcome of one publish, pull or prune pass."""

    direction: SyncDirection
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    pulled: list[str] = Field(default_factory=list)
    adopted: list[str] = Field(default_factory=list)
    local_only: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[ItemFailure] = Field(default_factory=list)
    conflicts: list[SyncConflict] = Field(default_factory=list)
    deferred: list[str] = Field(default_factory=list)

    @property
    def published(self) -> int:
        return len(self.created) + len(self.updated)

    @property
    def ok(self) -> bool:
        return not (self.errors or self.conflicts)

    def summary(self) -> str:
        parts = [
            f"{len(self.created)} created",
            f"{len(self.updated)} updated",
            f"{len(self.pulled)} pulled",
            f"{len(self.removed)} removed",
            f"{len(self.skipped)} skipped",
            f"{len(self.errors)} errors",
            f"{len(self.conflicts)} conflicts",
        ]
        if self.deferred:
            parts.append(f"{len(self.deferred)} deferred")
        return f"{self.direction}: " + ", ".join(parts)
