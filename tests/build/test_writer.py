"""Tests for the local file writer."""

import os
from unittest.mock import patch

import pytest

from pressroom.build.writer import LocalFileWriter, iter_assets
from pressroom.errors import WriteError


class TestLocalFileWriter:
    def test_writes_nested_path(self, tmp_path):
        writer = LocalFileWriter(tmp_path / "out")
        writer.write("posts/a/index.html", b"<p>a</p>")
        assert (tmp_path / "out" / "posts" / "a" / "index.html").read_bytes() == b"<p>a</p>"
        assert writer.exists("posts/a/index.html")
        assert not writer.exists("posts/b/index.html")

    def test_overwrite_replaces_content(self, tmp_path):
        writer = LocalFileWriter(tmp_path)
        writer.write("f.txt", b"one")
        writer.write("f.txt", b"two")
        assert (tmp_path / "f.txt").read_bytes() == b"two"

    def test_no_temp_files_left(self, tmp_path):
        writer = LocalFileWriter(tmp_path)
        writer.write("f.txt", b"data")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["f.txt"]

    @pytest.mark.parametrize("path", ["../escape.txt", "a/../../escape.txt", "/etc/passwd", ""])
    def test_rejects_paths_outside_root(self, tmp_path, path):
        writer = LocalFileWriter(tmp_path / "out")
        with pytest.raises(WriteError):
            writer.write(path, b"x")

    def test_failed_write_keeps_previous_artifact(self, tmp_path):
        writer = LocalFileWriter(tmp_path)
        writer.write("f.txt", b"old")
        with patch("pressroom.build.writer.os.replace", side_effect=OSError(28, "No space left")):
            with pytest.raises(WriteError, match="No space left"):
                writer.write("f.txt", b"new")
        assert (tmp_path / "f.txt").read_bytes() == b"old"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["f.txt"]

    def test_file_mode(self, tmp_path):
        writer = LocalFileWriter(tmp_path)
        writer.write("f.txt", b"x")
        assert os.stat(tmp_path / "f.txt").st_mode & 0o777 == 0o644

    def test_clean_empties_root(self, tmp_path):
        root = tmp_path / "out"
        (root / "sub").mkdir(parents=True)
        (root / "sub" / "x.html").write_text("x")
        (root / "y.html").write_text("y")
        LocalFileWriter(root).clean()
        assert root.is_dir()
        assert list(root.iterdir()) == []

    def test_clean_refuses_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(WriteError, match="protected"):
            LocalFileWriter(tmp_path).clean()

    def test_clean_reports_entries_it_cannot_remove(self, tmp_path):
        root = tmp_path / "out"
        (root / "stuck").mkdir(parents=True)
        (root / "gone.html").write_text("x")
        report = []
        with patch("pressroom.build.writer.shutil.rmtree", side_effect=PermissionError(13, "Permission denied")):
            LocalFileWriter(root).clean(report=report)
        assert [(f.kind, f.subject) for f in report] == [("WriteError", str((root / "stuck").resolve()))]
        assert not (root / "gone.html").exists()

    def test_clean_failure_raises_without_report(self, tmp_path):
        root = tmp_path / "out"
        (root / "stuck").mkdir(parents=True)
        with patch("pressroom.build.writer.shutil.rmtree", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(WriteError, match="Permission denied"):
                LocalFileWriter(root).clean()

    def test_clean_missing_root_is_noop(self, tmp_path):
        LocalFileWriter(tmp_path / "missing").clean()

    def test_copy_tree(self, tmp_path):
        src = tmp_path / "public"
        (src / "css").mkdir(parents=True)
        (src / "css" / "style.css").write_text("body {}")
        (src / "favicon.ico").write_bytes(b"\x00\x01")
        writer = LocalFileWriter(tmp_path / "out")
        assert writer.copy_tree(src) == ["css/style.css", "favicon.ico"]
        assert (tmp_path / "out" / "css" / "style.css").read_text() == "body {}"

    def test_copy_tree_reports_failures(self, tmp_path):
        src = tmp_path / "public"
        src.mkdir()
        (src / "a.txt").write_text("a")
        (src / "b.txt").write_text("b")
        writer = LocalFileWriter(tmp_path / "out")
        real_write = writer.write

        def flaky(path, data):
            if path == "a.txt":
                raise WriteError("disk full", subject=path)
            real_write(path, data)

        report = []
        with patch.object(writer, "write", side_effect=flaky):
            written = writer.copy_tree(src, report=report)
        assert written == ["b.txt"]
        assert [f.subject for f in report] == ["a.txt"]


class TestIterAssets:
    def test_sorted_relative_paths(self, tmp_path):
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "z.js").write_text("")
        (tmp_path / "a.css").write_text("")
        assert [rel for rel, _ in iter_assets(tmp_path)] == ["a.css", "b/z.js"]

    def test_missing_dir(self, tmp_path):
        assert list(iter_assets(tmp_path / "missing")) == []
