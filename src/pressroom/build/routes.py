"""Route enumeration and output path computation.

Routes are recomputed from the records on every build and returned in
path order, so two builds of the same content list the same routes in
the same order. Output paths are a pure function of the route and the
rendering mode.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import unquote

from pressroom.build.models import RenderMode, Route, RouteKind
from pressroom.content.services import select_records
from pressroom.errors import ItemFailure, WriteError
from pressroom.site.app import DESCRIPTOR_PATH
from pressroom.site.pages import tag_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pressroom.content.models import ContentRecord

logger = logging.getLogger(__name__)

AUXILIARY_ROUTES = (
    Route(path="/feed.xml", kind=RouteKind.FEED),
    Route(path="/sitemap.xml", kind=RouteKind.SITEMAP),
    Route(path="/robots.txt", kind=RouteKind.ROBOTS),
)
DESCRIPTOR_ROUTE = Route(path=DESCRIPTOR_PATH, kind=RouteKind.DESCRIPTOR)


def enumerate_routes(
    records: Iterable[ContentRecord],
    *,
    strict: bool = False,
    report: list[ItemFailure] | None = None,
    include_descriptor: bool = False,
) -> list[Route]:
    """List every route to materialize for *records*.

    One route per valid record, one per distinct tag, the index, and the
    feed/sitemap/robots routes (plus the publication descriptor when
    *include_descriptor* is set). Tags that share a URL segment share a
    route. Records with a missing, malformed or duplicate slug are
    excluded and recorded in *report*; in strict mode the first such
    record raises InputValidationError.
    """
    failures: list[ItemFailure] = []
    valid = select_records(records, strict=strict, report=failures)
    for failure in failures:
        logger.warning("Excluding record: %s", failure)
    if report is not None:
        report.extend(failures)

    routes: list[Route] = [Route(path="/", kind=RouteKind.INDEX)]
    tag_routes: dict[str, str] = {}
    for record in valid:
        routes.append(Route(path=record.path, kind=RouteKind.POST, slug=record.slug))
        for tag in record.tags:
            path = tag_path(tag)
            tag_routes[path] = min(tag_routes.get(path, tag), tag)

    routes.extend(Route(path=path, kind=RouteKind.TAG, tag=tag) for path, tag in tag_routes.items())
    routes.extend(AUXILIARY_ROUTES)
    if include_descriptor:
        routes.append(DESCRIPTOR_ROUTE)
    return sorted(routes, key=lambda r: r.path)


def _disk_path(url_path: str) -> str:
    segments = [unquote(s) for s in url_path.strip("/").split("/") if s]
    for segment in segments:
        if segment in (".", "..") or "/" in segment or "\\" in segment:
            raise WriteError(f"unsafe path segment {segment!r}", subject=url_path)
    return "/".join(segments)


def output_path(route: Route, mode: RenderMode) -> str | None:
    """Relative output path for *route* in *mode*; None when the route has no such artifact."""
    if not route.has_fragment:
        return _disk_path(route.path) if mode is RenderMode.FULL else None

    filename = "index.html" if mode is RenderMode.FULL else "fragment.html"
    base = _disk_path(route.path)
    return f"{base}/{filename}" if base else filename


def fragment_url(path: str) -> str:
    """URL of the fragment artifact for a page path."""
    trimmed = path.rstrip("/")
    return f"{trimmed}/fragment.html" if trimmed else "/fragment.html"


def output_paths(route: Route) -> list[str]:
    """Every artifact path *route* produces, full document first."""
    paths = [output_path(route, mode) for mode in RenderMode]
    return [p for p in paths if p is not None]
