"""Dual-mode rendering through the live site's dispatch path.

The static build never renders pages itself: it hands synthesized
requests to a ContentService, whose default implementation pushes them
through the same ASGI app ``pressroom serve`` runs. Afterwards every
partial-navigation link is pointed at the fragment artifact of its
target so the static tree keeps working without the server.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pressroom.build.context import synthesize
from pressroom.build.models import (
    RenderedResponse,
    RenderMode,
    RenderResult,
    Route,
    SyntheticRequestContext,
)
from pressroom.build.routes import fragment_url
from pressroom.content.services import PostLibrary, load_records, select_records
from pressroom.errors import ItemFailure, RenderError
from pressroom.site.app import create_app

if TYPE_CHECKING:
    from collections.abc import Callable

    from pressroom.config import PressroomConfig
    from pressroom.content.models import ContentRecord

logger = logging.getLogger(__name__)


class ContentService(Protocol):
    """Source of records and of rendered responses for synthesized requests."""

    def list_records(self) -> list[ContentRecord]: ...

    async def render(self, context: SyntheticRequestContext) -> RenderedResponse: ...


async def dispatch_asgi(app: Callable[..., Any], context: SyntheticRequestContext) -> RenderedResponse:
    """Run one request through an ASGI app in-process and collect the response."""
    scope = context.to_asgi_scope()
    request_sent = False
    response_complete = asyncio.Event()
    status = 500
    content_type = ""
    chunks: list[bytes] = []

    async def receive() -> dict[str, Any]:
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await response_complete.wait()
        return {"type": "http.disconnect"}

    async def send(message: dict[str, Any]) -> None:
        nonlocal status, content_type
        if message["type"] == "http.response.start":
            status = message["status"]
            for key, value in message.get("headers", []):
                if key.lower() == b"content-type":
                    content_type = value.decode("latin-1")
        elif message["type"] == "http.response.body":
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                response_complete.set()

    await app(scope, receive, send)
    return RenderedResponse(status=status, body=b"".join(chunks), content_type=content_type)


class SiteContentService:
    """ContentService backed by a PostLibrary and the site app.

    Records without a usable slug are kept out of the library the app
    renders, so no index, tag page, feed or sitemap links to them; they
    are still listed so route enumeration can report them.
    """

    def __init__(self, library: PostLibrary, config: PressroomConfig, app: Any = None) -> None:
        self._records = library.records
        valid = select_records(self._records)
        self.library = library if len(valid) == len(self._records) else PostLibrary(valid)
        self.config = config
        self.app = app if app is not None else create_app(self.library, config)

    @classmethod
    def from_config(
        cls,
        config: PressroomConfig,
        *,
        report: list[ItemFailure] | None = None,
    ) -> SiteContentService:
        records = load_records(
            Path(config.site.posts_dir),
            strict=config.build.strict,
            report=report,
        )
        return cls(PostLibrary(records), config)

    def list_records(self) -> list[ContentRecord]:
        return list(self._records)

    async def render(self, context: SyntheticRequestContext) -> RenderedResponse:
        return await dispatch_asgi(self.app, context)


_HX_TAG_RE = re.compile(r"<[A-Za-z][^<>]*?\shx-get=\"[^\"]*\"[^<>]*>")
_HX_GET_RE = re.compile(r"(\shx-get=\")([^\"]*)(\")")
_PUSH_URL_RE = re.compile(r"(\shx-push-url=\")true(\")")


def _is_site_path(target: str) -> bool:
    return target.startswith("/") and not target.startswith("//") and "?" not in target


def rewrite_partial_links(html: str) -> tuple[str, set[str]]:
    """Point every site-local ``hx-get`` at its fragment artifact.

    Returns the rewritten document and the set of page paths that were
    targeted. ``hx-push-url="true"`` on the same element is pinned to the
    page path so the address bar keeps showing a directly navigable URL.
    Plain ``href`` attributes are left alone.
    """
    targets: set[str] = set()

    def rewrite_tag(match: re.Match[str]) -> str:
        tag = match.group(0)
        target = _HX_GET_RE.search(tag).group(2)
        if not _is_site_path(target):
            return tag
        page = target.split("#", 1)[0]
        if page.endswith("/fragment.html"):
            page = page[: -len("/fragment.html")] or "/"
            targets.add(page)
            return tag
        page = page.rstrip("/") or "/"
        targets.add(page)
        tag = _HX_GET_RE.sub(lambda m: f"{m.group(1)}{fragment_url(page)}{m.group(3)}", tag, count=1)
        return _PUSH_URL_RE.sub(lambda m: f"{m.group(1)}{page}{m.group(2)}", tag, count=1)

    return _HX_TAG_RE.sub(rewrite_tag, html), targets


class DualModeRenderer:
    """Renders a route twice (full document and fragment) through a ContentService."""

    def __init__(self, service: ContentService) -> None:
        self._service = service

    async def render_mode(self, route: Route, context: SyntheticRequestContext) -> bytes:
        """Render one mode; any handler failure becomes a RenderError."""
        try:
            response = await self._service.render(context)
        except RenderError:
            raise
        except Exception as exc:
            logger.debug("Handler raised for %s (%s)", route.path, context.mode, exc_info=True)
            raise RenderError(
                f"handler raised {type(exc).__name__}: {exc}",
                subject=route.path,
                mode=context.mode,
            ) from exc
        if not 200 <= response.status < 300:
            raise RenderError(
                f"handler returned HTTP {response.status}",
                subject=route.path,
                mode=context.mode,
            )
        return response.body

    async def render(self, route: Route, base_url: str) -> RenderResult:
        full = await self.render_mode(route, synthesize(route, RenderMode.FULL, base_url))
        if not route.has_fragment:
            return RenderResult(full=full)

        fragment = await self.render_mode(route, synthesize(route, RenderMode.FRAGMENT, base_url))
        full_html, full_targets = rewrite_partial_links(full.decode("utf-8"))
        fragment_html, fragment_targets = rewrite_partial_links(fragment.decode("utf-8"))
        return RenderResult(
            full=full_html.encode("utf-8"),
            fragment=fragment_html.encode("utf-8"),
            link_targets=full_targets | fragment_targets,
        )
