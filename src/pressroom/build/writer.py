"""Filesystem output for the static build."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pressroom.errors import ItemFailure, WriteError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class FileWriter(Protocol):
    """Persists bytes at paths relative to an output root."""

    def write(self, path: str, data: bytes) -> None: ...

    def exists(self, path: str) -> bool: ...

    def clean(self, *, report: list[ItemFailure] | None = None) -> None: ...

    def copy_tree(self, source: Path, *, report: list[ItemFailure] | None = None) -> list[str]: ...


class LocalFileWriter:
    """Atomic writes under a root directory.

    Each artifact is written to a temp file in its target directory and
    moved into place, so a failed write leaves the previous artifact (or
    nothing) behind. Writes to the same path are serialized.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, path: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(path, threading.Lock())

    def resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if target == root or root not in target.parents:
            raise WriteError("path escapes the output root", subject=path)
        return target

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except WriteError:
            return False

    def write(self, path: str, data: bytes) -> None:
        target = self.resolve(path)
        with self._lock_for(path):
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "wb") as fh:
                        fh.write(data)
                    os.chmod(tmp_name, 0o644)
                    os.replace(tmp_name, target)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                raise WriteError(exc.strerror or str(exc), subject=path) from exc
        logger.debug("Wrote %s (%d bytes)", target, len(data))

    def clean(self, *, report: list[ItemFailure] | None = None) -> None:
        """Remove everything under the root, keeping the root itself.

        Refusing a protected root always raises WriteError. An entry that
        cannot be removed is logged and appended to *report*; without a
        report it propagates.
        """
        root = self.root.resolve()
        protected = {Path(root.anchor), Path.home().resolve(), Path.cwd().resolve()}
        if root in protected:
            raise WriteError("refusing to clean a protected directory", subject=str(root))
        if not root.exists():
            return
        for child in root.iterdir():
            try:
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            except OSError as exc:
                err = WriteError(exc.strerror or str(exc), subject=str(child))
                if report is None:
                    raise err from exc
                logger.warning("Stale output not removed: %s", err)
                report.append(ItemFailure.from_exception(err))

    def copy_tree(self, source: Path, *, report: list[ItemFailure] | None = None) -> list[str]:
        """Copy every file under *source* into the root, one write per asset.

        A failed asset is logged and appended to *report*; the rest are
        still copied. Without a report the first failure propagates.
        """
        written: list[str] = []
        for rel, path in iter_assets(source):
            try:
                self.write(rel, path.read_bytes())
            except OSError as exc:
                err = WriteError(exc.strerror or str(exc), subject=rel)
                if report is None:
                    raise err from exc
                logger.warning("Asset not copied: %s", err)
                report.append(ItemFailure.from_exception(err))
                continue
            except WriteError as exc:
                if report is None:
                    raise
                logger.warning("Asset not copied: %s", exc)
                report.append(ItemFailure.from_exception(exc))
                continue
            written.append(rel)
        return written


def iter_assets(source: Path) -> Iterator[tuple[str, Path]]:
    """Yield (relative path, file) for every file under *source*, in path order."""
    if not source.is_dir():
        return
    for path in sorted(p for p in source.rglob("*") if p.is_file()):
        yield path.relative_to(source).as_posix(), path
