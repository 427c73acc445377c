"""Synthetic request contexts for rendering routes without a server."""

from __future__ import annotations

from urllib.parse import urlsplit

from pressroom import __version__
from pressroom.build.models import RenderMode, Route, SyntheticRequestContext
from pressroom.site.pages import CONTENT_TARGET

USER_AGENT = f"pressroom-build/{__version__}"


def check_base_url(base_url: str) -> str:
    """Origin of *base_url*; raises ValueError unless it is a bare absolute http(s) URL."""
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"base URL must be absolute http(s): {base_url!r}")
    if parts.path.strip("/") or parts.query or parts.fragment:
        raise ValueError(f"base URL must not carry a path, query or fragment: {base_url!r}")
    return f"{parts.scheme}://{parts.netloc}"


def synthesize(route: Route, mode: RenderMode, base_url: str) -> SyntheticRequestContext:
    """Fabricate the request a browser would send for *route*.

    Full mode looks like a direct navigation; fragment mode adds the
    headers htmx sends for a partial navigation into ``#content-area``.
    """
    origin = check_base_url(base_url)
    url = f"{origin}{route.path}"
    headers: list[tuple[str, str]] = [
        ("Host", urlsplit(origin).netloc),
        ("User-Agent", USER_AGENT),
        ("Accept", "text/html,application/xhtml+xml,*/*;q=0.8"),
    ]
    if mode is RenderMode.FRAGMENT:
        headers.extend(
            [
                ("HX-Request", "true"),
                ("HX-Current-URL", url),
                ("HX-Target", CONTENT_TARGET),
            ]
        )
    return SyntheticRequestContext(method="GET", url=url, headers=tuple(headers), mode=mode)
