"""Ownership verification over the two public channels.

A site proves it owns a publication by serving the publication AT-URI at
the well-known descriptor path, and each post page proves which document
record it corresponds to with a ``<link rel="site.standard.document">``
back-link. Both channels must be present and agree for a pass.
"""

from __future__ import annotations

import logging
import re
import urllib.error
import urllib.request
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, Field

from pressroom.config import DOCUMENT_COLLECTION
from pressroom.mirror.mapping import DESCRIPTOR_PATH, DOCUMENT_LINK_REL, POST_PATH_PREFIX

if TYPE_CHECKING:
    from collections.abc import Callable

    from pressroom.mirror.repository import MappingRepository

logger = logging.getLogger(__name__)

_POST_HREF_RE = re.compile(r'href="(/posts/[^"#?]+)"')
_LINK_TAG_RE = re.compile(r"<link\b[^>]*>", re.I)
_ATTR_RE = re.compile(r'([a-zA-Z-]+)="([^"]*)"')


class VerificationStatus(StrEnum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class VerificationCheck(BaseModel):
    channel: str
    target: str
    passed: bool
    message: str = ""


class VerificationReport(BaseModel):
    status: VerificationStatus
    publication_uri: str
    descriptor_ok: bool = False
    backlinks_found: int = 0
    pages_checked: int = 0
    checks: list[VerificationCheck] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is VerificationStatus.PASS


def http_fetch(url: str, timeout: float = 10.0) -> tuple[int, str]:
    """GET *url*; returns (status, body text). Network failures report status 0."""
    req = urllib.request.Request(url, headers={"User-Agent": "pressroom-verify"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        return exc.code, ""
    except (urllib.error.URLError, OSError) as exc:
        logger.warning("Could not fetch %s: %s", url, exc)
        return 0, ""


def directory_fetch(output_dir: Path) -> Callable[[str], tuple[int, str]]:
    """A fetcher that serves URLs from a built static tree."""
    root = output_dir.resolve()

    def fetch(url: str) -> tuple[int, str]:
        segments = [unquote(s) for s in urlsplit(url).path.split("/") if s]
        if any(s in (".", "..") for s in segments):
            return 404, ""
        candidate = root.joinpath(*segments)
        if candidate.is_dir():
            candidate = candidate / "index.html"
        if not candidate.is_file():
            return 404, ""
        return 200, candidate.read_text(encoding="utf-8")

    return fetch


def find_document_links(html: str) -> list[str]:
    """hrefs of every ``site.standard.document`` link element in *html*."""
    hrefs = []
    for tag in _LINK_TAG_RE.findall(html):
        attrs = dict(_ATTR_RE.findall(tag))
        if attrs.get("rel") == DOCUMENT_LINK_REL and attrs.get("href"):
            hrefs.append(attrs["href"])
    return hrefs


class OwnershipVerifier:
    """Checks the descriptor and the per-page back-links of a site."""

    def __init__(
        self,
        fetch: Callable[[str], tuple[int, str]],
        publication_uri: str,
        repository: MappingRepository | None = None,
    ) -> None:
        self._fetch = fetch
        self.publication_uri = publication_uri
        self.repository = repository
        did = publication_uri.removeprefix("at://").split("/", 1)[0]
        self._document_prefix = f"at://{did}/{DOCUMENT_COLLECTION}/"

    def discover_post_paths(self, site_url: str) -> list[str]:
        status, html = self._fetch(f"{site_url}/")
        if status != 200:
            return []
        return list(dict.fromkeys(_POST_HREF_RE.findall(html)))

    def verify(self, site_url: str, post_paths: list[str] | None = None) -> VerificationReport:
        site_url = site_url.rstrip("/")
        checks: list[VerificationCheck] = []
        inconsistent = False

        status, body = self._fetch(f"{site_url}{DESCRIPTOR_PATH}")
        claimed = body.strip()
        descriptor_ok = status == 200 and claimed == self.publication_uri
        if descriptor_ok:
            checks.append(VerificationCheck(channel="descriptor", target=DESCRIPTOR_PATH, passed=True))
        elif status == 200:
            inconsistent = True
            checks.append(
                VerificationCheck(
                    channel="descriptor",
                    target=DESCRIPTOR_PATH,
                    passed=False,
                    message=f"claims {claimed!r}, expected {self.publication_uri!r}",
                )
            )
        else:
            checks.append(
                VerificationCheck(
                    channel="descriptor",
                    target=DESCRIPTOR_PATH,
                    passed=False,
                    message=f"not served (status {status})",
                )
            )

        if post_paths is None:
            post_paths = self.discover_post_paths(site_url)

        found = 0
        for path in post_paths:
            check, consistent = self._check_page(site_url, path)
            checks.append(check)
            if check.passed:
                found += 1
            elif not consistent:
                inconsistent = True

        backlinks_ok = found == len(post_paths)
        if inconsistent:
            verdict = VerificationStatus.FAIL
        elif descriptor_ok and backlinks_ok:
            verdict = VerificationStatus.PASS
        elif descriptor_ok or found:
            verdict = VerificationStatus.WARN
        else:
            verdict = VerificationStatus.FAIL

        report = VerificationReport(
            status=verdict,
            publication_uri=self.publication_uri,
            descriptor_ok=descriptor_ok,
            backlinks_found=found,
            pages_checked=len(post_paths),
            checks=checks,
        )
        logger.info(
            "Verification %s: descriptor %s, %d/%d back-links",
            verdict,
            "ok" if descriptor_ok else "missing",
            found,
            len(post_paths),
        )
        return report

    def _check_page(self, site_url: str, path: str) -> tuple[VerificationCheck, bool]:
        """Check one page; the flag is False when the page contradicts the claimed identity."""
        status, html = self._fetch(f"{site_url}{path}")
        if status != 200:
            return VerificationCheck(
                channel="backlink", target=path, passed=False, message=f"page not served (status {status})"
            ), True

        hrefs = find_document_links(html)
        if not hrefs:
            return VerificationCheck(channel="backlink", target=path, passed=False, message="no back-link"), True

        href = hrefs[0]
        if not href.startswith(self._document_prefix):
            return VerificationCheck(
                channel="backlink", target=path, passed=False, message=f"{href} is not under this publication"
            ), False

        if self.repository is not None and path.startswith(POST_PATH_PREFIX):
            mapping = self.repository.get(unquote(path[len(POST_PATH_PREFIX):].strip("/")))
            if mapping is not None and mapping.uri != href:
                return VerificationCheck(
                    channel="backlink", target=path, passed=False, message=f"{href} != mapped {mapping.uri}"
                ), False

        return VerificationCheck(channel="backlink", target=path, passed=True, message=href), True
