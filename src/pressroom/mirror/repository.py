"""Publication mapping storage.

The mapping table (slug → remote record and last-synced content hash) is
the single source of truth for what has already been mirrored. Only the
Mirror mutates it, and it does so while holding ``locked()``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from pressroom.mirror.models import PublicationMapping

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)


class MappingRepository(Protocol):
    def get(self, slug: str) -> PublicationMapping | None: ...

    def all(self) -> list[PublicationMapping]: ...

    def put(self, mapping: PublicationMapping) -> None: ...

    def remove(self, slug: str) -> None: ...

    def locked(self) -> contextlib.AbstractContextManager[None]: ...


class InMemoryMappingRepository:
    """Mapping table held in a dict; used by tests and dry runs."""

    def __init__(self, mappings: list[PublicationMapping] | None = None) -> None:
        self._lock = threading.RLock()
        self._mappings = {m.slug: m for m in mappings or []}

    def get(self, slug: str) -> PublicationMapping | None:
        with self._lock:
            return self._mappings.get(slug)

    def all(self) -> list[PublicationMapping]:
        with self._lock:
            return sorted(self._mappings.values(), key=lambda m: m.slug)

    def put(self, mapping: PublicationMapping) -> None:
        with self._lock:
            self._mappings[mapping.slug] = mapping

    def remove(self, slug: str) -> None:
        with self._lock:
            self._mappings.pop(slug, None)

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield


class _MappingData(BaseModel):
    """Internal wrapper for JSON serialization."""

    mappings: list[PublicationMapping] = Field(default_factory=list)


class JsonMappingRepository(InMemoryMappingRepository):
    """Mapping table persisted as one JSON file, saved after every change."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._corrupt = False
        self._mappings = {m.slug: m for m in self._load().mappings}

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> _MappingData:
        if not self._path.exists():
            return _MappingData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _MappingData.model_validate(raw)
        except ValueError:
            logger.warning(
                "Corrupt mapping file at %s, starting fresh; it is kept as a .corrupt copy on the next save",
                self._path,
            )
            self._corrupt = True
            return _MappingData()

    def _set_aside_corrupt(self) -> None:
        backup = self._path.with_name(f"{self._path.name}.corrupt")
        n = 1
        while backup.exists():
            backup = self._path.with_name(f"{self._path.name}.corrupt.{n}")
            n += 1
        if self._path.exists():
            os.replace(self._path, backup)
            logger.warning("Moved corrupt mapping file to %s", backup)
        self._corrupt = False

    def _save(self) -> None:
        data = _MappingData(mappings=sorted(self._mappings.values(), key=lambda m: m.slug))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._corrupt:
            self._set_aside_corrupt()
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data.model_dump_json(indent=2))
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise

    def put(self, mapping: PublicationMapping) -> None:
        with self._lock:
            super().put(mapping)
            self._save()

    def remove(self, slug: str) -> None:
        with self._lock:
            if slug in self._mappings:
                super().remove(slug)
                self._save()
