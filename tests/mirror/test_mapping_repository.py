"""Tests for publication mapping storage."""

import json
from datetime import datetime, timezone

from pressroom.mirror.models import PublicationMapping
from pressroom.mirror.repository import InMemoryMappingRepository, JsonMappingRepository

_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _mapping(slug: str, content_hash: str = "h1") -> PublicationMapping:
    return PublicationMapping(
        slug=slug,
        rkey=slug,
        uri=f"at://did:plc:abc/site.standard.document/{slug}",
        cid="cid-1",
        content_hash=content_hash,
        synced_at=_NOW,
    )


class TestInMemoryMappingRepository:
    def test_put_get_remove(self):
        repo = InMemoryMappingRepository()
        repo.put(_mapping("a"))
        assert repo.get("a").content_hash == "h1"
        repo.remove("a")
        assert repo.get("a") is None

    def test_all_sorted_by_slug(self):
        repo = InMemoryMappingRepository([_mapping("b"), _mapping("a")])
        assert [m.slug for m in repo.all()] == ["a", "b"]

    def test_put_replaces(self):
        repo = InMemoryMappingRepository([_mapping("a")])
        repo.put(_mapping("a", "h2"))
        assert repo.get("a").content_hash == "h2"
        assert len(repo.all()) == 1

    def test_remove_missing_is_noop(self):
        repo = InMemoryMappingRepository()
        repo.remove("missing")
        assert repo.all() == []

    def test_locked_is_reentrant(self):
        repo = InMemoryMappingRepository()
        with repo.locked():
            repo.put(_mapping("a"))
        assert repo.get("a") is not None


class TestJsonMappingRepository:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state" / "mappings.json"
        JsonMappingRepository(path).put(_mapping("a"))
        reloaded = JsonMappingRepository(path)
        assert reloaded.get("a") == _mapping("a")

    def test_missing_file_starts_empty(self, tmp_path):
        repo = JsonMappingRepository(tmp_path / "nope.json")
        assert repo.all() == []
        assert not (tmp_path / "nope.json").exists()

    def test_corrupt_file_starts_fresh(self, tmp_path, caplog):
        path = tmp_path / "mappings.json"
        path.write_text("{not json")
        repo = JsonMappingRepository(path)
        assert repo.all() == []
        assert "Corrupt mapping file" in caplog.text

    def test_corrupt_file_kept_aside_on_save(self, tmp_path):
        path = tmp_path / "mappings.json"
        original = json.dumps({"mappings": [json.loads(_mapping("a").model_dump_json())]})[:-1] + ",}"
        path.write_text(original)

        repo = JsonMappingRepository(path)
        repo.put(_mapping("b"))

        assert (tmp_path / "mappings.json.corrupt").read_text() == original
        data = json.loads(path.read_text())
        assert [m["slug"] for m in data["mappings"]] == ["b"]

    def test_earlier_backup_not_overwritten(self, tmp_path):
        path = tmp_path / "mappings.json"
        (tmp_path / "mappings.json.corrupt").write_text("first")
        path.write_text("{second")
        JsonMappingRepository(path).put(_mapping("a"))
        assert (tmp_path / "mappings.json.corrupt").read_text() == "first"
        assert (tmp_path / "mappings.json.corrupt.1").read_text() == "{second"

    def test_corrupt_file_untouched_without_changes(self, tmp_path):
        path = tmp_path / "mappings.json"
        path.write_text("{not json")
        JsonMappingRepository(path).all()
        assert path.read_text() == "{not json"
        assert not (tmp_path / "mappings.json.corrupt").exists()

    def test_file_is_sorted_json(self, tmp_path):
        path = tmp_path / "mappings.json"
        repo = JsonMappingRepository(path)
        repo.put(_mapping("b"))
        repo.put(_mapping("a"))
        data = json.loads(path.read_text())
        assert [m["slug"] for m in data["mappings"]] == ["a", "b"]

    def test_remove_saves(self, tmp_path):
        path = tmp_path / "mappings.json"
        repo = JsonMappingRepository(path)
        repo.put(_mapping("a"))
        repo.remove("a")
        assert json.loads(path.read_text())["mappings"] == []

    def test_no_temp_files_left(self, tmp_path):
        repo = JsonMappingRepository(tmp_path / "mappings.json")
        repo.put(_mapping("a"))
        assert [p.name for p in tmp_path.iterdir()] == ["mappings.json"]
