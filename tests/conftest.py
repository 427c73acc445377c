"""Shared fixtures: sample posts and configs."""

from __future__ import annotations

from datetime import date

import pytest

from pressroom.config import AtProtoConfig, PressroomConfig
from pressroom.content.models import ContentRecord

_ENV_VARS = (
    "PUBLIC_URL",
    "POSTS_DIR",
    "PRESSROOM_OUTPUT_DIR",
    "PRESSROOM_STRICT",
    "ATPROTO_DID",
    "ATPROTO_HANDLE",
    "ATPROTO_APP_PASSWORD",
    "ATPROTO_SERVICE",
)

TEST_DID = "did:plc:testabc123"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's environment out of config loading."""
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_record():
    def _make(
        slug: str,
        *,
        title: str | None = None,
        day: date = date(2025, 1, 1),
        tags: list[str] | None = None,
        body: str = "Some **bold** text.\n",
        excerpt: str = "",
        modified: date | None = None,
    ) -> ContentRecord:
        return ContentRecord(
            slug=slug,
            title=title or slug.replace("-", " ").title(),
            body=body,
            date=day,
            modified=modified,
            excerpt=excerpt,
            tags=tags or [],
        )

    return _make


@pytest.fixture
def sample_records(make_record):
    """Three posts carrying two distinct tags."""
    return [
        make_record("hello-world", day=date(2025, 1, 1), tags=["python"], excerpt="First post"),
        make_record("second-post", day=date(2025, 2, 1), tags=["python", "web"]),
        make_record("third-post", day=date(2025, 3, 1)),
    ]


@pytest.fixture
def config():
    return PressroomConfig()


@pytest.fixture
def did_config():
    return PressroomConfig(
        atproto=AtProtoConfig(
            did=TEST_DID,
            handle="writer.example.com",
            app_password="app-pass-1234",
            service="https://pds.example.com",
        )
    )


@pytest.fixture
def write_post(tmp_path):
    """Write a markdown post into tmp_path/posts and return its path."""
    posts_dir = tmp_path / "posts"
    posts_dir.mkdir(exist_ok=True)

    def _write(name: str, text: str):
        path = posts_dir / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
