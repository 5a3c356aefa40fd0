from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

LINK_PREFIX = "go/"
CACHE_FORMAT_VERSION = 1


def normalize_shortcut(text: str) -> str:
    """Return the lookup key for a shortcut or a user query.

    ``"Go/Payroll"``, ``" go/payroll/ "`` and ``"PAYROLL"`` all map to
    ``"payroll"``.
    """
    key = text.strip().casefold()
    if key.startswith(LINK_PREFIX):
        key = key[len(LINK_PREFIX):]
    return key.strip("/")


class LinkEntry(BaseModel):
    """A single shortcut → URL mapping as published by the directory."""

    model_config = ConfigDict(frozen=True)

    shortcut: str
    target: str
    description: str = ""
    owner: str | None = None
    updated_at: datetime | None = None

    @field_validator("shortcut")
    @classmethod
    def _shortcut_not_blank(cls, value: str) -> str:
        if not normalize_shortcut(value):
            raise ValueError("shortcut is empty after normalization")
        return value

    @field_validator("target")
    @classmethod
    def _target_is_absolute_url(cls, value: str) -> str:
        try:
            url = AnyUrl(value)
        except ValidationError as exc:
            raise ValueError(f"target is not a valid URL: {value!r}") from exc
        if not url.host:
            raise ValueError(f"target is not an absolute URL: {value!r}")
        # Keep the upstream spelling; AnyUrl may add a trailing slash.
        return value

    @property
    def key(self) -> str:
        return normalize_shortcut(self.shortcut)


class ShortcutCollision(BaseModel):
    """Two or more upstream entries that normalize to the same shortcut."""

    model_config = ConfigDict(frozen=True)

    shortcut: str
    kept: str
    dropped: list[str]


def _recency(entry: LinkEntry) -> datetime:
    if entry.updated_at is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if entry.updated_at.tzinfo is None:
        return entry.updated_at.replace(tzinfo=timezone.utc)
    return entry.updated_at


class DirectorySnapshot(BaseModel):
    """Immutable point-in-time copy of the link directory.

    Never mutated once built; a refresh produces a new snapshot.  Use
    :meth:`from_entries` rather than the constructor when the entries come
    from upstream, so duplicate shortcuts are collapsed and recorded.
    """

    model_config = ConfigDict(frozen=True)

    entries: dict[str, LinkEntry]
    fetched_at: datetime
    source_version: str | None = None
    collisions: list[ShortcutCollision] = Field(default_factory=list)

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[LinkEntry],
        fetched_at: datetime | None = None,
        source_version: str | None = None,
    ) -> DirectorySnapshot:
        """Build a snapshot, keeping the most recently updated duplicate.

        On equal ``updated_at`` the entry delivered first wins.  Every
        collision is logged and kept in ``collisions``.
        """
        chosen: dict[str, LinkEntry] = {}
        losers: dict[str, list[LinkEntry]] = {}
        for entry in entries:
            current = chosen.get(entry.key)
            if current is None:
                chosen[entry.key] = entry
                continue
            if _recency(entry) > _recency(current):
                chosen[entry.key] = entry
                losers.setdefault(entry.key, []).append(current)
            else:
                losers.setdefault(entry.key, []).append(entry)

        collisions = []
        for key in sorted(losers):
            collision = ShortcutCollision(
                shortcut=key,
                kept=chosen[key].target,
                dropped=[loser.target for loser in losers[key]],
            )
            logger.warning(
                "Duplicate shortcut %r in directory: kept %s, dropped %s",
                key,
                collision.kept,
                ", ".join(collision.dropped),
            )
            collisions.append(collision)

        return cls(
            entries=chosen,
            fetched_at=fetched_at or datetime.now(timezone.utc),
            source_version=source_version,
            collisions=collisions,
        )


class CacheRecord(BaseModel):
    """On-disk wrapper around a snapshot.  Owned by the cache store."""

    format_version: int = CACHE_FORMAT_VERSION
    stored_at: datetime
    snapshot: DirectorySnapshot
