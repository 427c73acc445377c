"""The live site as a FastAPI application.

This app is the only place pages are produced: ``pressroom serve`` runs it
under uvicorn and the static build dispatches synthesized requests
through it in-process. Handlers tell a partial-navigation request apart
from a direct one by the ``HX-Request`` header.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from pressroom import __version__
from pressroom.config import PressroomConfig
from pressroom.content.services import PostLibrary
from pressroom.mirror.mapping import DESCRIPTOR_PATH, DOCUMENT_LINK_REL, slug_to_rkey
from pressroom.site import feeds, pages

logger = logging.getLogger(__name__)


def is_partial_request(request: Request) -> bool:
    return request.headers.get("HX-Request") == "true"


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _page(
    request: Request,
    *,
    title: str,
    description: str,
    inner: str,
    extra_head: str = "",
    status_code: int = 200,
) -> HTMLResponse:
    if is_partial_request(request):
        return HTMLResponse(inner, status_code=status_code)
    config: PressroomConfig = request.app.state.config
    html = pages.document(
        site_title=config.site.title,
        title=title,
        description=description,
        canonical_url=f"{_base_url(request)}{request.url.path}",
        inner=inner,
        language=config.site.language,
        extra_head=extra_head,
    )
    return HTMLResponse(html, status_code=status_code)


def create_app(library: PostLibrary, config: PressroomConfig) -> FastAPI:
    """Build the site application over *library*."""
    app = FastAPI(
        title=config.site.title,
        description=config.site.description,
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.library = library
    app.state.config = config

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request) -> HTMLResponse:
        lib: PostLibrary = request.app.state.library
        inner = pages.post_list(lib.posts()) + pages.tag_index(lib.tags())
        return _page(
            request,
            title=config.site.title,
            description=config.site.description,
            inner=inner,
        )

    @app.get("/posts/{slug}", response_class=HTMLResponse)
    def post(slug: str, request: Request) -> HTMLResponse:
        lib: PostLibrary = request.app.state.library
        record = lib.get(slug)
        if record is None:
            return _page(
                request,
                title=f"Not found - {config.site.title}",
                description="Page not found",
                inner=pages.not_found(request.url.path),
                status_code=404,
            )

        extra_head = ""
        if config.atproto.did:
            uri = config.atproto.document_uri(slug_to_rkey(record.slug))
            extra_head = f'<link rel="{DOCUMENT_LINK_REL}" href="{uri}">\n'
        return _page(
            request,
            title=f"{record.title} - {config.site.title}",
            description=record.excerpt or f"Read {record.title}",
            inner=pages.post_view(record),
            extra_head=extra_head,
        )

    @app.get("/tags/{tag}", response_class=HTMLResponse)
    def tag_posts(tag: str, request: Request) -> HTMLResponse:
        lib: PostLibrary = request.app.state.library
        tagged = lib.by_tag_segment(tag)
        if not tagged:
            return _page(
                request,
                title=f"Not found - {config.site.title}",
                description="Page not found",
                inner=pages.not_found(request.url.path),
                status_code=404,
            )
        label = ", ".join(lib.tags_for_segment(tag))
        return _page(
            request,
            title=f'Posts tagged "{label}" - {config.site.title}',
            description=f"All posts tagged with {label}",
            inner=pages.post_list(tagged, active_tag=label),
        )

    @app.get("/feed.xml")
    def feed(request: Request) -> Response:
        lib: PostLibrary = request.app.state.library
        body = feeds.build_rss(
            lib.posts(),
            title=config.site.title,
            description=config.site.description,
            base_url=_base_url(request),
            language=config.site.language,
            limit=config.site.feed_limit,
        )
        return Response(body, media_type="application/rss+xml; charset=utf-8")

    @app.get("/sitemap.xml")
    def sitemap(request: Request) -> Response:
        lib: PostLibrary = request.app.state.library
        body = feeds.build_sitemap(lib.posts(), lib.tags(), base_url=_base_url(request))
        return Response(body, media_type="application/xml; charset=utf-8")

    @app.get("/robots.txt", response_class=PlainTextResponse)
    def robots(request: Request) -> PlainTextResponse:
        return PlainTextResponse(feeds.build_robots(_base_url(request)))

    @app.get(DESCRIPTOR_PATH, response_class=PlainTextResponse)
    def publication_descriptor() -> PlainTextResponse:
        uri = config.atproto.publication_uri
        if not uri:
            return PlainTextResponse("no publication configured\n", status_code=404)
        return PlainTextResponse(uri)

    return app
