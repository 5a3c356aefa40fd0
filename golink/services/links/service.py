from __future__ import annotations

import logging
from datetime import timedelta

from golink.core.config import settings
from golink.models.common import ErrorKind
from golink.models.links.document import DirectorySnapshot
from golink.models.links.schemas import (
    Ambiguous,
    Failed,
    MatchKind,
    NotFound,
    Resolution,
    ResolutionWarning,
    Resolved,
)
from golink.repositories.base import BaseCacheStore, CacheCorrupt, CacheUnwritable, is_stale
from golink.repositories.links.repository import FileCacheStore
from golink.services.links.index import LinkIndex, Match
from golink.workers.fetcher import (
    DirectoryFetcher,
    FetchError,
    MalformedResponse,
    NotModified,
)

logger = logging.getLogger(__name__)


class NoDirectoryAvailable(Exception):
    """No cached snapshot and no successful fetch."""

    kind = ErrorKind.NO_DIRECTORY_AVAILABLE

    def __init__(self, message: str, cause: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class LinkResolver:
    """Turns a user query into a single confident link or an explicit miss.

    The cache store and fetcher are injected; the resolver keeps no state
    between calls other than a reusable index over the last snapshot.
    """

    def __init__(
        self,
        store: BaseCacheStore,
        fetcher: DirectoryFetcher,
        *,
        max_age: timedelta,
        min_confidence: float = 0.6,
        ambiguity_margin: float = 0.05,
        max_candidates: int = 10,
        fuzzy_floor: float = 0.4,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._max_age = max_age
        self._min_confidence = min_confidence
        self._ambiguity_margin = ambiguity_margin
        self._max_candidates = max_candidates
        self._fuzzy_floor = fuzzy_floor
        self._index: LinkIndex | None = None

    @classmethod
    def from_settings(cls) -> LinkResolver:
        return cls(
            FileCacheStore.from_settings(),
            DirectoryFetcher.from_settings(),
            max_age=settings.cache_max_age,
            min_confidence=settings.min_confidence,
            ambiguity_margin=settings.ambiguity_margin,
            max_candidates=settings.max_candidates,
            fuzzy_floor=settings.fuzzy_floor,
        )

    async def resolve(
        self, query: str, *, force_refresh: bool = False, offline: bool = False
    ) -> Resolution:
        """Resolve *query* to one of ``Resolved``, ``Ambiguous``, ``NotFound``
        or ``Failed``.

        Fetch and cache errors are recovered whenever some snapshot is
        available and reported in ``warnings``; only a complete lack of data
        produces ``Failed``.
        """
        warnings: list[ResolutionWarning] = []
        try:
            snapshot = await self._acquire_snapshot(warnings, force_refresh, offline)
        except NoDirectoryAvailable as exc:
            logger.error("Cannot resolve %r: %s", query, exc)
            return Failed(query=query, cause=exc.cause, message=str(exc), warnings=warnings)
        return self._match(query, snapshot, warnings)

    async def refresh(self) -> DirectorySnapshot:
        """Fetch unconditionally and store the result.

        Raises:
            FetchError: the fetch failed.
            CacheUnwritable: the snapshot could not be stored.
        """
        result = await self._fetcher.fetch()
        if isinstance(result, NotModified):
            raise MalformedResponse("Directory reported no change for an unconditional fetch")
        self._store.save(result)
        return result

    # ------------------------------------------------------------------
    # AcquireSnapshot / Refresh
    # ------------------------------------------------------------------

    async def _acquire_snapshot(
        self, warnings: list[ResolutionWarning], force_refresh: bool, offline: bool
    ) -> DirectorySnapshot:
        try:
            record = self._store.load_record()
        except CacheCorrupt as exc:
            logger.warning("Discarding unreadable cache: %s", exc)
            warnings.append(ResolutionWarning(kind=exc.kind, message=str(exc)))
            record = None

        if record is not None and not force_refresh and not is_stale(record, self._max_age):
            return record.snapshot

        if offline:
            if record is None:
                raise NoDirectoryAvailable("No cached directory and network access is disabled")
            if is_stale(record, self._max_age):
                warnings.append(
                    ResolutionWarning(
                        kind=ErrorKind.NETWORK_UNAVAILABLE,
                        message=f"Offline: using cached directory from {record.stored_at.isoformat()}",
                    )
                )
            return record.snapshot

        previous_version = record.snapshot.source_version if record is not None else None
        try:
            result = await self._fetcher.fetch(previous_version)
        except FetchError as exc:
            if record is None:
                raise NoDirectoryAvailable(
                    f"No cached directory and the fetch failed: {exc}", cause=exc.kind
                ) from exc
            logger.warning("Directory refresh failed, using cached copy: %s", exc)
            warnings.append(ResolutionWarning(kind=exc.kind, message=str(exc)))
            return record.snapshot

        if isinstance(result, NotModified):
            snapshot = record.snapshot if record is not None else None
            if snapshot is None:
                raise NoDirectoryAvailable("Directory reported no change but nothing is cached")
            logger.info("Directory unchanged (version=%s)", result.source_version)
        else:
            snapshot = result

        try:
            self._store.save(snapshot)
        except CacheUnwritable as exc:
            logger.warning("Could not update cache: %s", exc)
            warnings.append(ResolutionWarning(kind=exc.kind, message=str(exc)))
        return snapshot

    # ------------------------------------------------------------------
    # Match
    # ------------------------------------------------------------------

    def _index_for(self, snapshot: DirectorySnapshot) -> LinkIndex:
        current = self._index
        if current is not None and (
            current.snapshot is snapshot
            or (
                current.snapshot.fetched_at == snapshot.fetched_at
                and current.snapshot.source_version == snapshot.source_version
                and current.snapshot.entries.keys() == snapshot.entries.keys()
            )
        ):
            return current
        self._index = LinkIndex.build(snapshot, fuzzy_floor=self._fuzzy_floor)
        return self._index

    def _match(
        self, query: str, snapshot: DirectorySnapshot, warnings: list[ResolutionWarning]
    ) -> Resolution:
        matches = self._index_for(snapshot).query(query)
        if not matches:
            return NotFound(query=query, warnings=warnings)

        # Prefixes rank above fuzzy hits; the best score is not always first.
        best = max(matches, key=lambda m: m.score)
        rivals = [m for m in matches if m is not best]
        if best.kind is MatchKind.EXACT or self._is_confident(best, rivals):
            return Resolved(
                query=query,
                entry=best.entry,
                score=round(best.score, 4),
                kind=best.kind,
                warnings=warnings,
            )

        candidates = [m.to_candidate() for m in matches[: self._max_candidates]]
        if self._is_contested(best, rivals):
            return Ambiguous(query=query, candidates=candidates, warnings=warnings)
        return NotFound(query=query, candidates=candidates, warnings=warnings)

    def _is_confident(self, best: Match, rivals: list[Match]) -> bool:
        if best.score < self._min_confidence:
            return False
        floor = best.score - self._ambiguity_margin
        return all(rival.score < floor for rival in rivals)

    def _is_contested(self, best: Match, rivals: list[Match]) -> bool:
        """Two or more matches clear the threshold within the margin of *best*."""
        if best.score < self._min_confidence:
            return False
        floor = best.score - self._ambiguity_margin
        return any(
            rival.score >= self._min_confidence and rival.score >= floor for rival in rivals
        )
