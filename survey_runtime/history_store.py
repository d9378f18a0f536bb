"""
History Store — primary backend + local cache mirror.

Contract (newest first, capped):
  get_history()                 → list of record dicts
  save_history(record)          → prepend, drop oldest beyond cap
  update_history_item(id, part) → shallow merge into one record
  delete_history_item(id)       → drop one record

Read order:
  1. primary backend (JSON file or PostgreSQL), mirrored into the cache
  2. local cache, once the primary has failed

Every write lands in the cache; a failing primary is marked
unavailable and never retried within the process.

All operations run one at a time under a single lock, so concurrent
saves are strictly ordered and cannot interleave their writes.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, List, Mapping, Optional, Protocol, Union

from survey_kernel.constants import HISTORY_CAP
from survey_kernel.domain_types import HistoryRecord

logger = logging.getLogger(__name__)

RecordLike = Union[HistoryRecord, Mapping[str, Any]]


class HistoryBackend(Protocol):
    def load_all(self) -> List[dict]: ...

    def replace_all(self, records: List[dict]) -> None: ...

    def close(self) -> None: ...


class HistoryStoreError(Exception):
    """Raised when neither the primary backend nor the cache can serve a request."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"History {operation} failed: {detail}")


class MemoryHistoryBackend:
    """In-process backend, used when no cache file is configured."""

    def __init__(self, records: Optional[List[dict]] = None) -> None:
        self._records: List[dict] = copy.deepcopy(records or [])

    def load_all(self) -> List[dict]:
        return copy.deepcopy(self._records)

    def replace_all(self, records: List[dict]) -> None:
        self._records = copy.deepcopy(records)

    def close(self) -> None:
        pass


def _as_dict(record: RecordLike) -> dict:
    if isinstance(record, HistoryRecord):
        return record.to_dict()
    return copy.deepcopy(dict(record))


class HistoryStore:
    """Serialized history access with local-cache fallback."""

    def __init__(
        self,
        primary: Optional[HistoryBackend] = None,
        cache: Optional[HistoryBackend] = None,
        cap: int = HISTORY_CAP,
    ) -> None:
        if cap <= 0:
            raise ValueError(f"History cap must be positive, got {cap}")
        self._primary = primary
        self._cache: HistoryBackend = cache if cache is not None else MemoryHistoryBackend()
        self._cap = cap
        self._primary_available = primary is not None
        self._lock = threading.Lock()

    @property
    def cap(self) -> int:
        return self._cap

    @property
    def primary_available(self) -> bool:
        return self._primary_available

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_history(self) -> List[dict]:
        with self._lock:
            return self._read()

    def save_history(self, record: RecordLike) -> dict:
        saved = _as_dict(record)
        with self._lock:
            history = self._read()
            history.insert(0, saved)
            self._write(history)
        return saved

    def update_history_item(
        self, record_id: str, partial: Mapping[str, Any],
    ) -> Optional[dict]:
        """Merge `partial` into the record. Unknown id → None, nothing written."""
        with self._lock:
            history = self._read()
            for index, item in enumerate(history):
                if isinstance(item, Mapping) and item.get("id") == record_id:
                    merged = {**item, **copy.deepcopy(dict(partial))}
                    history[index] = merged
                    self._write(history)
                    return merged
        return None

    def delete_history_item(self, record_id: str) -> bool:
        with self._lock:
            history = self._read()
            kept = [
                item for item in history
                if not (isinstance(item, Mapping) and item.get("id") == record_id)
            ]
            if len(kept) == len(history):
                return False
            self._write(kept)
            return True

    def close(self) -> None:
        with self._lock:
            if self._primary is not None:
                self._primary.close()
            self._cache.close()

    # ------------------------------------------------------------------
    # Internal (caller holds the lock)
    # ------------------------------------------------------------------

    def _read(self) -> List[dict]:
        if self._primary is not None and self._primary_available:
            try:
                records = self._primary.load_all()
            except Exception as exc:
                self._primary_available = False
                logger.warning(
                    "Primary history backend read failed, using local cache: %s", exc,
                )
            else:
                self._mirror(records)
                return records

        try:
            return self._cache.load_all()
        except Exception as exc:
            raise HistoryStoreError("read", str(exc)) from exc

    def _mirror(self, records: List[dict]) -> None:
        try:
            self._cache.replace_all(records)
        except Exception as exc:
            logger.warning("Local history cache write failed: %s", exc)

    def _write(self, records: List[dict]) -> None:
        records = records[: self._cap]
        primary_ok = False
        if self._primary is not None and self._primary_available:
            try:
                self._primary.replace_all(records)
                primary_ok = True
            except Exception as exc:
                self._primary_available = False
                logger.warning(
                    "Primary history backend write failed, kept in local cache: %s", exc,
                )

        try:
            self._cache.replace_all(records)
        except Exception as exc:
            if not primary_ok:
                raise HistoryStoreError("write", str(exc)) from exc
            logger.warning("Local history cache write failed: %s", exc)
