"""Tests for the pull pass and its no-clobber rules."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pressroom.build.writer import LocalFileWriter
from pressroom.content.services import parse_markdown_post
from pressroom.errors import WriteError
from pressroom.mirror.mapping import record_to_document
from pressroom.mirror.models import ConflictState, PublicationMapping, RemoteRecord
from pressroom.mirror.services import LocalIndex, Mirror


@pytest.fixture
def posts_dir(tmp_path):
    path = tmp_path / "posts"
    path.mkdir()
    return path


def _remote(mirror, record, site: str | None = None) -> RemoteRecord:
    value = record_to_document(record, site or mirror.publication_uri).to_record()
    return RemoteRecord(uri=f"at://{mirror.client.did}/site.standard.document/{record.slug}", cid="c1", value=value)


def _pull(mirror, posts_dir, remotes, **kwargs):
    return mirror.pull(remotes, LocalIndex.from_directory(posts_dir), LocalFileWriter(posts_dir), **kwargs)


def _local_hash(posts_dir, slug):
    text = (posts_dir / f"{slug}.md").read_text()
    return parse_markdown_post(text, slug).content_hash


class TestPullWrites:
    def test_remote_only_is_written(self, mirror, repository, posts_dir, sample_records):
        report = _pull(mirror, posts_dir, [_remote(mirror, r) for r in sample_records])
        assert report.pulled == ["hello-world", "second-post", "third-post"]
        for record in sample_records:
            assert _local_hash(posts_dir, record.slug) == record.content_hash
            assert repository.get(record.slug).content_hash == record.content_hash

    def test_second_pull_skips(self, mirror, posts_dir, sample_records):
        remotes = [_remote(mirror, r) for r in sample_records]
        _pull(mirror, posts_dir, remotes)
        report = _pull(mirror, posts_dir, remotes)
        assert report.pulled == []
        assert report.skipped == ["hello-world", "second-post", "third-post"]

    def test_remote_change_overwrites_unmodified_local(self, mirror, posts_dir, make_record):
        _pull(mirror, posts_dir, [_remote(mirror, make_record("a", body="v1"))])
        newer = make_record("a", body="v2")
        report = _pull(mirror, posts_dir, [_remote(mirror, newer)])
        assert report.pulled == ["a"]
        assert _local_hash(posts_dir, "a") == newer.content_hash

    def test_existing_filename_reused(self, mirror, repository, posts_dir, write_post, make_record):
        write_post("2025-01-01-a.md", "---\nslug: a\ntitle: A\ndate: 2025-01-01\n---\nv1\n")
        repository.put(_mapping_for(mirror, make_record("a", title="A", body="v1")))
        report = _pull(mirror, posts_dir, [_remote(mirror, make_record("a", title="A", body="v2"))])
        assert report.pulled == ["a"]
        assert not (posts_dir / "a.md").exists()
        assert "v2" in (posts_dir / "2025-01-01-a.md").read_text()

    def test_adopts_identical_local_file(self, mirror, repository, posts_dir, write_post, make_record):
        record = make_record("a", title="A", body="same")
        write_post("a.md", "---\ntitle: A\ndate: 2025-01-01\n---\nsame\n")
        report = _pull(mirror, posts_dir, [_remote(mirror, record)])
        assert report.adopted == ["a"]
        assert report.pulled == []
        assert repository.get("a").content_hash == record.content_hash

    def test_local_only_reported(self, mirror, posts_dir, write_post, make_record):
        write_post("mine.md", "---\ntitle: Mine\ndate: 2025-01-01\n---\nx\n")
        report = _pull(mirror, posts_dir, [_remote(mirror, make_record("theirs"))])
        assert report.local_only == ["mine"]
        assert report.pulled == ["theirs"]

    def test_unreadable_remote_recorded(self, mirror, posts_dir, make_record):
        broken = RemoteRecord(uri="at://did:plc:x/site.standard.document/bad", value={"title": "no path"})
        page = _remote(mirror, make_record("about"))
        page = RemoteRecord(uri=page.uri, value={**page.value, "path": "/about"})
        report = _pull(mirror, posts_dir, [broken, page, _remote(mirror, make_record("ok"))])
        assert report.pulled == ["ok"]
        assert sorted(e.subject for e in report.errors) == sorted([broken.uri, page.uri])
        assert all(e.kind == "InputValidationError" for e in report.errors)

    def test_write_failure_recorded(self, mirror, repository, posts_dir, make_record):
        class _BrokenWriter(LocalFileWriter):
            def write(self, path, data):
                raise WriteError("read-only file system", subject=path)

        report = mirror.pull(
            [_remote(mirror, make_record("a"))],
            LocalIndex.from_directory(posts_dir),
            _BrokenWriter(posts_dir),
        )
        assert [(e.kind, e.subject) for e in report.errors] == [("WriteError", "a")]
        assert repository.get("a") is None

    def test_deadline_defers(self, fake_client, repository, did_config, posts_dir, make_record, ticking_clock):
        mirror = Mirror(fake_client, repository, did_config, clock=ticking_clock)
        remotes = [_remote(mirror, make_record(s)) for s in ("a", "b", "c")]
        report = _pull(mirror, posts_dir, remotes, deadline=2.5)
        assert report.pulled == ["a", "b"]
        assert report.deferred == ["c"]


class TestPullConflicts:
    def _edit(self, posts_dir, slug, body):
        path = posts_dir / f"{slug}.md"
        text = path.read_text()
        head, _, _ = text.rpartition("---\n")
        path.write_text(f"{head}---\n{body}\n")

    def test_local_edit_not_clobbered(self, mirror, posts_dir, make_record):
        record = make_record("a", body="v1")
        _pull(mirror, posts_dir, [_remote(mirror, record)])
        self._edit(posts_dir, "a", "my local edit")

        report = _pull(mirror, posts_dir, [_remote(mirror, record)])
        assert [(c.slug, c.state) for c in report.conflicts] == [("a", ConflictState.LOCAL_MODIFIED)]
        assert "my local edit" in (posts_dir / "a.md").read_text()
        assert not report.ok

    def test_divergent(self, mirror, posts_dir, make_record):
        _pull(mirror, posts_dir, [_remote(mirror, make_record("a", body="v1"))])
        self._edit(posts_dir, "a", "local v2")
        report = _pull(mirror, posts_dir, [_remote(mirror, make_record("a", body="remote v2"))])
        assert [c.state for c in report.conflicts] == [ConflictState.DIVERGENT]
        assert "local v2" in (posts_dir / "a.md").read_text()

    def test_unmapped_different(self, mirror, posts_dir, write_post, make_record):
        write_post("a.md", "---\ntitle: A\ndate: 2025-01-01\n---\nhand written\n")
        report = _pull(mirror, posts_dir, [_remote(mirror, make_record("a", title="A", body="remote"))])
        assert [c.state for c in report.conflicts] == [ConflictState.UNMAPPED_DIFFERENT]
        assert "hand written" in (posts_dir / "a.md").read_text()

    def test_unparsable_local(self, mirror, posts_dir, write_post, make_record):
        write_post("a.md", "no frontmatter at all\n")
        report = _pull(mirror, posts_dir, [_remote(mirror, make_record("a"))])
        assert [c.state for c in report.conflicts] == [ConflictState.UNPARSABLE]
        assert (posts_dir / "a.md").read_text() == "no frontmatter at all\n"

    def test_force_overwrites(self, mirror, posts_dir, make_record):
        _pull(mirror, posts_dir, [_remote(mirror, make_record("a", body="v1"))])
        self._edit(posts_dir, "a", "local v2")
        remote = make_record("a", body="remote v2")
        report = _pull(mirror, posts_dir, [_remote(mirror, remote)], force=True)
        assert report.pulled == ["a"]
        assert report.conflicts == []
        assert _local_hash(posts_dir, "a") == remote.content_hash


class TestFetchRemote:
    def test_filters_other_publications(self, mirror, fake_client, make_record):
        ours = _remote(mirror, make_record("ours"))
        theirs = _remote(mirror, make_record("theirs"), site="at://did:plc:other/site.standard.publication/self")
        fake_client.records[("site.standard.document", "ours")] = ours
        fake_client.records[("site.standard.document", "theirs")] = theirs
        assert [r.rkey for r in mirror.fetch_remote()] == ["ours"]


def _mapping_for(mirror, record) -> PublicationMapping:
    return PublicationMapping(
        slug=record.slug,
        rkey=record.slug,
        uri=f"at://{mirror.client.did}/site.standard.document/{record.slug}",
        content_hash=record.content_hash,
        synced_at=datetime.now(UTC),
    )
