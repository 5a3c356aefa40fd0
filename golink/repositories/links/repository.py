from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from golink.core.config import settings
from golink.models.links.document import (
    CACHE_FORMAT_VERSION,
    CacheRecord,
    DirectorySnapshot,
)
from golink.repositories.base import BaseCacheStore, CacheCorrupt, CacheUnwritable

logger = logging.getLogger(__name__)


class FileCacheStore(BaseCacheStore):
    """JSON file holding a single ``CacheRecord``.

    Writes go to a temporary file in the same directory which is then
    ``os.replace``-d over the cache file, so concurrent readers see either
    the old record or the new one, never a partial write.  Last writer wins.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @classmethod
    def from_settings(cls) -> FileCacheStore:
        return cls(settings.cache_path)

    @property
    def path(self) -> Path:
        return self._path

    def load_record(self) -> CacheRecord | None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            logger.debug("No cache at %s", self._path)
            return None
        except OSError as exc:
            raise CacheCorrupt(f"Cannot read cache {self._path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CacheCorrupt(f"Cache {self._path} is not valid JSON: {exc}") from exc

        version = data.get("format_version") if isinstance(data, dict) else None
        if version != CACHE_FORMAT_VERSION:
            raise CacheCorrupt(
                f"Cache {self._path} has unsupported format version {version!r}"
            )

        try:
            return CacheRecord.model_validate(data)
        except ValidationError as exc:
            raise CacheCorrupt(f"Cache {self._path} failed validation: {exc}") from exc

    def save(
        self, snapshot: DirectorySnapshot, stored_at: datetime | None = None
    ) -> CacheRecord:
        record = CacheRecord(
            stored_at=stored_at or datetime.now(timezone.utc),
            snapshot=snapshot,
        )
        content = record.model_dump_json(indent=2)

        tmp_path: Path | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Temp file in the target directory keeps the rename on one device.
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                delete=False,
                prefix=f"{self._path.name}.",
                suffix=".tmp",
            ) as fh:
                tmp_path = Path(fh.name)
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise CacheUnwritable(f"Cannot write cache {self._path}: {exc}") from exc

        logger.info(
            "Cached %d links (version=%s) at %s",
            len(snapshot.entries),
            snapshot.source_version,
            self._path,
        )
        return record
