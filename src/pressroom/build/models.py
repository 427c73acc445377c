"""Data types for the static build. Pure Pydantic models, no I/O."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from pressroom.errors import ItemFailure


class RenderMode(StrEnum):
    """Which of the two renderings a synthesized request asks for."""

    FULL = "full"
    FRAGMENT = "fragment"


class RouteKind(StrEnum):
    INDEX = "index"
    POST = "post"
    TAG = "tag"
    FEED = "feed"
    SITEMAP = "sitemap"
    ROBOTS = "robots"
    DESCRIPTOR = "descriptor"


PAGE_KINDS = frozenset({RouteKind.INDEX, RouteKind.POST, RouteKind.TAG})


class Route(BaseModel):
    """A logical path to materialize plus the content it depends on."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: RouteKind
    slug: str | None = None
    tag: str | None = None

    @property
    def has_fragment(self) -> bool:
        return self.kind in PAGE_KINDS


class SyntheticRequestContext(BaseModel):
    """A fabricated GET request for one route in one rendering mode."""

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    mode: RenderMode = RenderMode.FULL

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def to_asgi_scope(self) -> dict:
        """ASGI HTTP scope equivalent to this request arriving over the wire."""
        parts = urlsplit(self.url)
        port = parts.port or (443 if parts.scheme == "https" else 80)
        raw_path = parts.path or "/"
        return {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.3"},
            "http_version": "1.1",
            "method": self.method,
            "scheme": parts.scheme,
            "path": unquote(raw_path),
            "raw_path": raw_path.encode("ascii"),
            "query_string": parts.query.encode("ascii"),
            "root_path": "",
            "headers": [
                (key.lower().encode("latin-1"), value.encode("latin-1"))
                for key, value in self.headers
            ],
            "client": ("127.0.0.1", 0),
            "server": (parts.hostname or "localhost", port),
        }


class RenderedResponse(BaseModel):
    """What a handler returned for one synthesized request."""

    status: int
    body: bytes
    content_type: str = ""


class RenderResult(BaseModel):
    """Both renderings of a route, with partial-navigation links rewritten."""

    full: bytes
    fragment: bytes | None = None
    link_targets: set[str] = Field(default_factory=set)


class OutputArtifact(BaseModel):
    """Bytes destined for a path relative to the output root."""

    path: str
    data: bytes


class BuildOptions(BaseModel):
    output_dir: Path
    base_url: str
    public_dir: Path | None = None
    strict: bool = False
    max_workers: int = 8
    route_timeout: float | None = 30.0
    clean: bool = True
    include_descriptor: bool = False


class BuildReport(BaseModel):
    """Outcome of one build pass."""

    routes: int = 0
    pages: int = 0
    fragments: int = 0
    auxiliary: int = 0
    assets: int = 0
    failures: list[ItemFailure] = Field(default_factory=list)
    skipped_auxiliary: list[str] = Field(default_factory=list)
    dangling_links: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.failures or self.skipped_auxiliary or self.dangling_links)

    def failures_of(self, kind: str) -> list[ItemFailure]:
        return [f for f in self.failures if f.kind == kind]
