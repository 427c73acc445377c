"""Fixtures for mirror tests: an in-memory stand-in for the PDS client."""

from __future__ import annotations

import pytest

from pressroom.errors import AuthenticationError
from pressroom.mirror.models import RemoteRecord
from pressroom.mirror.repository import InMemoryMappingRepository
from pressroom.mirror.services import Mirror


class FakeAtProtoClient:
    """Keeps records in a dict and fails on request.

    ``failures`` maps an rkey to a list of exceptions raised by successive
    put/get calls for it.
    """

    def __init__(self, did: str) -> None:
        self.did = did
        self.session: object | None = object()
        self.records: dict[tuple[str, str], RemoteRecord] = {}
        self.failures: dict[str, list[Exception]] = {}
        self.put_calls: list[tuple[str, str, dict]] = []
        self.refreshes = 0
        self.refresh_error: Exception | None = None
        self._cids = 0

    def _maybe_fail(self, rkey: str) -> None:
        queue = self.failures.get(rkey)
        if queue:
            raise queue.pop(0)

    def refresh(self):
        self.refreshes += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.session

    def put_record(self, collection: str, rkey: str, record: dict) -> RemoteRecord:
        self.put_calls.append((collection, rkey, record))
        self._maybe_fail(rkey)
        self._cids += 1
        remote = RemoteRecord(uri=f"at://{self.did}/{collection}/{rkey}", cid=f"cid-{self._cids}", value=record)
        self.records[(collection, rkey)] = remote
        return remote

    def get_record(self, collection: str, rkey: str) -> RemoteRecord | None:
        self._maybe_fail(rkey)
        return self.records.get((collection, rkey))

    def iter_records(self, collection: str):
        for (coll, _), remote in sorted(self.records.items()):
            if coll == collection:
                yield remote

    def delete_record(self, collection: str, rkey: str) -> None:
        self.records.pop((collection, rkey), None)


@pytest.fixture
def fake_client(did_config):
    return FakeAtProtoClient(did_config.atproto.did)


@pytest.fixture
def repository():
    return InMemoryMappingRepository()


@pytest.fixture
def mirror(fake_client, repository, did_config):
    return Mirror(fake_client, repository, did_config)


@pytest.fixture
def ticking_clock():
    """A clock that advances one second every time it is read."""
    state = {"now": 0.0}

    def _clock() -> float:
        now = state["now"]
        state["now"] += 1.0
        return now

    return _clock


@pytest.fixture
def auth_failure():
    return AuthenticationError("could not create session: HTTP 401", subject="https://pds.example.com")
