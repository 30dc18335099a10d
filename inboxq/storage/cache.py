"""
Persistent annotation cache keyed by item id.

A store exposes load() and save() over the whole mapping. commit() and
invalidate() build on those under a per-store lock so concurrent pipeline runs
in one process cannot interleave a read-modify-write and corrupt the file.

Key: JsonFileCacheStore for production, InMemoryCacheStore for tests.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path

from pydantic import ValidationError

from inboxq.annotation.models import AnnotatedItem
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event

logger = get_logger(__name__)

CacheMapping = dict[str, AnnotatedItem]


class CacheIOError(OSError):
    """The cache could not be read or written; the run cannot stay idempotent."""


class CacheStore(ABC):
    """Durable id -> AnnotatedItem mapping."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @abstractmethod
    def load(self) -> CacheMapping:
        """Return the full mapping. Raises CacheIOError if it cannot be read."""

    @abstractmethod
    def save(self, entries: Mapping[str, AnnotatedItem]) -> None:
        """Replace the persisted mapping. Raises CacheIOError if it cannot be written."""

    def commit(self, items: Iterable[AnnotatedItem]) -> int:
        """
        Merge ``items`` into the persisted mapping (read-modify-write).

        Side Effects:
            - Reads and rewrites the whole store under the store lock
        """
        with self._lock:
            entries = self.load()
            count = 0
            for item in items:
                entries[item.id] = item
                count += 1
            self.save(entries)
        counter("cache.commit")
        return count

    def invalidate(self, ids: Iterable[str]) -> list[str]:
        """
        Drop ``ids`` so the next run re-annotates them. Returns the ids removed.

        Side Effects:
            - Rewrites the store when anything was removed
        """
        with self._lock:
            entries = self.load()
            removed = [item_id for item_id in ids if entries.pop(item_id, None) is not None]
            if removed:
                self.save(entries)
        if removed:
            counter("cache.invalidate", len(removed))
            log_event("cache.invalidated", count=len(removed))
        return removed


class InMemoryCacheStore(CacheStore):
    """Process-local store. Copies on the way in and out, like a real persistence layer."""

    def __init__(self, entries: Mapping[str, AnnotatedItem] | None = None) -> None:
        super().__init__()
        self._entries: CacheMapping = {}
        self.save_count = 0
        if entries:
            self.save(entries)
            self.save_count = 0

    def load(self) -> CacheMapping:
        with self._lock:
            return {key: value.model_copy(deep=True) for key, value in self._entries.items()}

    def save(self, entries: Mapping[str, AnnotatedItem]) -> None:
        with self._lock:
            self._entries = {key: value.model_copy(deep=True) for key, value in entries.items()}
            self.save_count += 1


class JsonFileCacheStore(CacheStore):
    """Cache persisted as one pretty-printed JSON object on disk.

    A missing file is an empty cache. A file that exists but does not decode
    (or whose entries fail validation) is also treated as empty and gets
    overwritten on the next save. Permission and other OS errors surface as
    CacheIOError.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)

    def load(self) -> CacheMapping:
        with self._lock:
            try:
                raw = self.path.read_bytes()
            except FileNotFoundError:
                return {}
            except OSError as e:
                logger.error("Cannot read cache %s: %s", self.path, e)
                raise CacheIOError(f"cannot read cache {self.path}: {e}") from e

            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError(f"expected a JSON object, got {type(data).__name__}")
                return {key: AnnotatedItem.model_validate(value) for key, value in data.items()}
            except (ValueError, ValidationError) as e:
                counter("cache.corrupt")
                log_event("cache.corrupt", path=str(self.path), error=type(e).__name__)
                logger.warning("Cache %s is corrupt, starting empty: %s", self.path, e)
                return {}

    def save(self, entries: Mapping[str, AnnotatedItem]) -> None:
        payload = {key: value.model_dump(mode="json") for key, value in entries.items()}
        with self._lock:
            tmp_name: str | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    json.dump(payload, tmp, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except OSError as e:
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                logger.error("Cannot write cache %s: %s", self.path, e)
                raise CacheIOError(f"cannot write cache {self.path}: {e}") from e
