"""Abstract base class for snapshot cache stores.

The resolver only ever talks to a ``BaseCacheStore``; it never touches
storage directly.  Tests inject fakes through the same interface.

Adding a new backend:
    1. Subclass ``BaseCacheStore`` and implement ``load_record()`` and
       ``save()``.
    2. Provide a ``from_settings()`` factory reading its options from
       ``golink.core.config.settings``.

Example::

    class MemoryCacheStore(BaseCacheStore):
        def __init__(self) -> None:
            self._record: CacheRecord | None = None

        def load_record(self) -> CacheRecord | None:
            return self._record

        def save(self, snapshot, stored_at=None) -> CacheRecord:
            self._record = CacheRecord(stored_at=stored_at or utcnow(), snapshot=snapshot)
            return self._record
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import ClassVar

from golink.models.common import ErrorKind
from golink.models.links.document import CacheRecord, DirectorySnapshot

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Base class for cache store failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.CACHE_CORRUPT


class CacheCorrupt(CacheError):
    """The cache file exists but cannot be read back as a ``CacheRecord``."""

    kind = ErrorKind.CACHE_CORRUPT


class CacheUnwritable(CacheError):
    """The cache file could not be replaced."""

    kind = ErrorKind.CACHE_UNWRITABLE


def is_stale(
    record: CacheRecord, max_age: timedelta, now: datetime | None = None
) -> bool:
    """Return True when the record is older than *max_age*.

    A record exactly *max_age* old is still fresh.
    """
    now = now or datetime.now(timezone.utc)
    stored_at = record.stored_at
    if stored_at.tzinfo is None:
        stored_at = stored_at.replace(tzinfo=timezone.utc)
    return now - stored_at > max_age


class BaseCacheStore(ABC):
    """Persistence for the most recent ``DirectorySnapshot``."""

    @abstractmethod
    def load_record(self) -> CacheRecord | None:
        """Return the stored record, or ``None`` if nothing is stored.

        Raises:
            CacheCorrupt: the stored data cannot be decoded.
        """

    @abstractmethod
    def save(
        self, snapshot: DirectorySnapshot, stored_at: datetime | None = None
    ) -> CacheRecord:
        """Replace the stored record with *snapshot*.

        Raises:
            CacheUnwritable: the record could not be written.
        """

    def load(self) -> DirectorySnapshot | None:
        """Return the stored snapshot, treating corruption as a cache miss."""
        try:
            record = self.load_record()
        except CacheCorrupt as exc:
            logger.warning("Ignoring unreadable cache: %s", exc)
            return None
        return record.snapshot if record is not None else None
