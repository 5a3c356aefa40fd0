from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from golink.models.common import ErrorKind
from golink.models.links.document import LinkEntry


# ---------------------------------------------------------------------------
# Directory service wire format
# ---------------------------------------------------------------------------


class DirectoryLink(BaseModel):
    """One link as returned by ``GET /go/links``.  Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", strict=True)

    name: str
    url: str
    description: str = ""
    owner: str | None = None
    updated_at: datetime | None = Field(default=None, strict=False)

    def to_entry(self) -> LinkEntry:
        return LinkEntry(
            shortcut=self.name,
            target=self.url,
            description=self.description,
            owner=self.owner,
            updated_at=self.updated_at,
        )


class DirectoryResponse(BaseModel):
    """Response body of ``GET /go/links``."""

    model_config = ConfigDict(extra="forbid", strict=True)

    links: list[DirectoryLink]
    version: str | None = None


# ---------------------------------------------------------------------------
# Resolution outcomes
# ---------------------------------------------------------------------------


class MatchKind(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    FUZZY = "fuzzy"


class Candidate(BaseModel):
    """A ranked alternative attached to an ambiguous or empty outcome."""

    shortcut: str
    target: str
    description: str = ""
    score: float
    kind: MatchKind


class ResolutionWarning(BaseModel):
    """A recovered error, e.g. a failed refresh served from a stale cache."""

    kind: ErrorKind
    message: str


class Resolved(BaseModel):
    status: Literal["resolved"] = "resolved"
    query: str
    entry: LinkEntry
    score: float
    kind: MatchKind
    warnings: list[ResolutionWarning] = Field(default_factory=list)


class Ambiguous(BaseModel):
    status: Literal["ambiguous"] = "ambiguous"
    query: str
    candidates: list[Candidate]
    warnings: list[ResolutionWarning] = Field(default_factory=list)


class NotFound(BaseModel):
    status: Literal["not_found"] = "not_found"
    query: str
    candidates: list[Candidate] = Field(default_factory=list)
    warnings: list[ResolutionWarning] = Field(default_factory=list)


class Failed(BaseModel):
    status: Literal["failed"] = "failed"
    query: str
    error: ErrorKind = ErrorKind.NO_DIRECTORY_AVAILABLE
    cause: ErrorKind | None = None
    message: str
    warnings: list[ResolutionWarning] = Field(default_factory=list)


Resolution = Annotated[
    Union[Resolved, Ambiguous, NotFound, Failed],
    Field(discriminator="status"),
]


class RefreshResponse(BaseModel):
    """Summary returned by ``POST /refresh``."""

    links: int
    version: str | None
    fetched_at: datetime
