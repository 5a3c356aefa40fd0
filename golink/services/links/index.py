"""In-memory lookup over one ``DirectorySnapshot``.

Ranking is deterministic:

1. exact match on the normalized shortcut, score ``1.0``;
2. prefix matches, score ``0.5 + 0.5 * len(query) / len(shortcut)``,
   shorter shortcuts first, then alphabetical;
3. fuzzy matches, score is the best of the ``difflib`` similarity ratio
   against the shortcut and ``DESCRIPTION_WEIGHT`` times the share of query
   words found in the description; highest score first, then most recently
   updated, then alphabetical.

Each entry appears at most once, under its best kind.
"""

from __future__ import annotations

import re
from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime, timezone
from difflib import SequenceMatcher

from golink.models.links.document import DirectorySnapshot, LinkEntry, normalize_shortcut
from golink.models.links.schemas import Candidate, MatchKind

EXACT_SCORE = 1.0
DESCRIPTION_WEIGHT = 0.75

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _tokens(text: str) -> frozenset[str]:
    return frozenset(_TOKEN_RE.findall(text.casefold()))


def _timestamp(entry: LinkEntry) -> float:
    updated = entry.updated_at
    if updated is None:
        updated = _OLDEST
    elif updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)
    return (updated - _OLDEST).total_seconds()


def prefix_score(query: str, key: str) -> float:
    return 0.5 + 0.5 * len(query) / len(key)


@dataclass(frozen=True)
class Match:
    entry: LinkEntry
    score: float
    kind: MatchKind

    def to_candidate(self) -> Candidate:
        return Candidate(
            shortcut=self.entry.shortcut,
            target=self.entry.target,
            description=self.entry.description,
            score=round(self.score, 4),
            kind=self.kind,
        )


class LinkIndex:
    """Immutable index; build a new one when the snapshot changes."""

    def __init__(self, snapshot: DirectorySnapshot, fuzzy_floor: float = 0.4) -> None:
        self._snapshot = snapshot
        self._fuzzy_floor = fuzzy_floor
        self._exact: dict[str, LinkEntry] = {}
        for entry in snapshot.entries.values():
            self._exact[entry.key] = entry
        self._keys = sorted(self._exact)
        self._description_tokens = {
            key: _tokens(entry.description) for key, entry in self._exact.items()
        }

    @classmethod
    def build(cls, snapshot: DirectorySnapshot, fuzzy_floor: float = 0.4) -> LinkIndex:
        return cls(snapshot, fuzzy_floor=fuzzy_floor)

    @property
    def snapshot(self) -> DirectorySnapshot:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._keys)

    def query(self, text: str) -> list[Match]:
        query = normalize_shortcut(text)
        if not query:
            return []

        results: list[Match] = []
        seen: set[str] = set()

        exact = self._exact.get(query)
        if exact is not None:
            results.append(Match(exact, EXACT_SCORE, MatchKind.EXACT))
            seen.add(query)

        prefixed = [key for key in self._prefixed(query) if key not in seen]
        prefixed.sort(key=lambda key: (len(key), key))
        for key in prefixed:
            results.append(Match(self._exact[key], prefix_score(query, key), MatchKind.PREFIX))
            seen.add(key)

        fuzzy = []
        query_tokens = _tokens(query)
        for key in self._keys:
            if key in seen:
                continue
            score = self._fuzzy_score(query, query_tokens, key)
            if score >= self._fuzzy_floor:
                fuzzy.append(Match(self._exact[key], score, MatchKind.FUZZY))
        fuzzy.sort(key=lambda m: (-m.score, -_timestamp(m.entry), m.entry.key))
        results.extend(fuzzy)
        return results

    def _prefixed(self, query: str) -> list[str]:
        start = bisect_left(self._keys, query)
        keys = []
        for key in self._keys[start:]:
            if not key.startswith(query):
                break
            keys.append(key)
        return keys

    def _fuzzy_score(self, query: str, query_tokens: frozenset[str], key: str) -> float:
        score = SequenceMatcher(None, query, key, autojunk=False).ratio()
        description = self._description_tokens[key]
        if query_tokens and description:
            overlap = len(query_tokens & description) / len(query_tokens)
            score = max(score, DESCRIPTION_WEIGHT * overlap)
        return score
