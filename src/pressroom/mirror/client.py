"""AT Protocol XRPC client for the site.standard record collections.

Handles session creation and refresh, and the four repo record calls
the mirror needs, via urllib.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import TYPE_CHECKING, Any

import jwt
from pydantic import BaseModel, ConfigDict, Field

from pressroom.errors import AuthenticationError, SessionExpiredError, TransportError
from pressroom.mirror.models import RemoteRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from pressroom.config import AtProtoConfig

logger = logging.getLogger(__name__)

# Refresh the access token when it has less than this many seconds left.
REFRESH_MARGIN = 60.0

_EXPIRED_TOKEN_ERRORS = {"ExpiredToken", "InvalidToken"}
_NOT_FOUND_ERRORS = {"RecordNotFound", "NotFound"}


class AtProtoSession(BaseModel):
    """Tokens returned by createSession/refreshSession."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    did: str
    handle: str = ""
    access_jwt: str = Field(alias="accessJwt")
    refresh_jwt: str = Field(alias="refreshJwt")


def token_expiry(token: str) -> float | None:
    """The ``exp`` claim of a JWT, read without verifying the signature."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return float(exp) if isinstance(exp, int | float) else None


class AtProtoClient:
    """Client for a PDS's XRPC endpoints.

    A session is created lazily on the first record call and reused for
    the rest of the pass. The access token is refreshed shortly before its
    ``exp`` claim; a token the server rejects as expired anyway surfaces
    as SessionExpiredError so the caller can refresh and retry.
    """

    def __init__(self, config: AtProtoConfig, clock: Callable[[], float] = time.time) -> None:
        self.config = config
        self.service = config.service.rstrip("/")
        self._clock = clock
        self._session: AtProtoSession | None = None

    @property
    def did(self) -> str:
        return self._session.did if self._session else self.config.did

    @property
    def session(self) -> AtProtoSession | None:
        return self._session

    def _request(
        self,
        method: str,
        nsid: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        """Make one XRPC call and return the decoded JSON response."""
        url = f"{self.service}/xrpc/{nsid}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = urllib.request.Request(url, data=data, method=method, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.config.request_timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            raise self._http_error(nsid, exc) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise TransportError(f"request failed: {exc}", subject=nsid) from exc

        if not raw:
            return {}
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise TransportError("response is not JSON", subject=nsid) from exc

    @staticmethod
    def _http_error(nsid: str, exc: urllib.error.HTTPError) -> TransportError:
        error, message = "", ""
        try:
            payload = json.loads(exc.read().decode("utf-8"))
            error = str(payload.get("error", ""))
            message = str(payload.get("message", ""))
        except (ValueError, AttributeError, OSError):
            pass
        detail = f"HTTP {exc.code}" + (f" {error}" if error else "") + (f": {message}" if message else "")
        if error in _EXPIRED_TOKEN_ERRORS:
            return SessionExpiredError(detail, subject=nsid, status=exc.code)
        if exc.code == 404 or error in _NOT_FOUND_ERRORS:
            return TransportError(detail, subject=nsid, status=404, retryable=False)
        retryable = exc.code >= 500 or exc.code == 429
        return TransportError(detail, subject=nsid, status=exc.code, retryable=retryable)

    # ── Session ──────────────────────────────────────────────────

    def login(self) -> AtProtoSession:
        """Create a session with the handle and app password."""
        if not self.config.handle or not self.config.app_password:
            raise AuthenticationError("handle and app password are required", subject=self.service)
        try:
            raw = self._request(
                "POST",
                "com.atproto.server.createSession",
                body={"identifier": self.config.handle, "password": self.config.app_password},
            )
        except TransportError as exc:
            raise AuthenticationError(f"could not create session: {exc.message}", subject=self.service) from exc

        session = AtProtoSession.model_validate(raw)
        if self.config.did and session.did != self.config.did:
            raise AuthenticationError(
                f"session DID {session.did} does not match configured DID {self.config.did}",
                subject=self.config.handle,
            )
        self._session = session
        logger.info("Authenticated as %s (%s)", session.handle or self.config.handle, session.did)
        return session

    def refresh(self) -> AtProtoSession:
        """Refresh the session, falling back to a new login."""
        if self._session is None:
            return self.login()
        try:
            raw = self._request(
                "POST",
                "com.atproto.server.refreshSession",
                token=self._session.refresh_jwt,
            )
        except TransportError as exc:
            logger.info("Session refresh failed (%s), logging in again", exc.message)
            return self.login()
        self._session = AtProtoSession.model_validate(raw)
        logger.debug("Refreshed session for %s", self._session.did)
        return self._session

    def _access_token(self) -> str:
        session = self._session or self.login()
        exp = token_expiry(session.access_jwt)
        if exp is not None and exp - self._clock() < REFRESH_MARGIN:
            session = self.refresh()
        return session.access_jwt

    # ── Records ──────────────────────────────────────────────────

    def put_record(self, collection: str, rkey: str, record: dict[str, Any]) -> RemoteRecord:
        """Create or replace a record; returns its uri and cid."""
        raw = self._request(
            "POST",
            "com.atproto.repo.putRecord",
            body={"repo": self.did, "collection": collection, "rkey": rkey, "record": record},
            token=self._access_token(),
        )
        return RemoteRecord(uri=raw.get("uri", ""), cid=raw.get("cid", ""), value=record)

    def get_record(self, collection: str, rkey: str) -> RemoteRecord | None:
        """Fetch one record, or None when the server says it does not exist."""
        try:
            raw = self._request(
                "GET",
                "com.atproto.repo.getRecord",
                params={"repo": self.did, "collection": collection, "rkey": rkey},
                token=self._access_token(),
            )
        except TransportError as exc:
            if exc.status == 404:
                return None
            raise
        return RemoteRecord.model_validate(raw)

    def list_records(
        self,
        collection: str,
        *,
        limit: int = 100,
        cursor: str | None = None,
    ) -> tuple[list[RemoteRecord], str | None]:
        """One page of records and the cursor for the next page."""
        params = {"repo": self.did, "collection": collection, "limit": str(limit)}
        if cursor:
            params["cursor"] = cursor
        raw = self._request(
            "GET",
            "com.atproto.repo.listRecords",
            params=params,
            token=self._access_token(),
        )
        records = [RemoteRecord.model_validate(r) for r in raw.get("records", [])]
        return records, raw.get("cursor") or None

    def iter_records(self, collection: str, *, page_size: int = 100) -> Iterator[RemoteRecord]:
        """Every record in *collection*, following cursors until exhausted."""
        cursor: str | None = None
        seen: set[str] = set()
        while True:
            records, cursor = self.list_records(collection, limit=page_size, cursor=cursor)
            yield from records
            if not cursor or cursor in seen or not records:
                return
            seen.add(cursor)

    def delete_record(self, collection: str, rkey: str) -> None:
        self._request(
            "POST",
            "com.atproto.repo.deleteRecord",
            body={"repo": self.did, "collection": collection, "rkey": rkey},
            token=self._access_token(),
        )
