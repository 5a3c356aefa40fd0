from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse, Response

from golink.models.common import ErrorResponse
from golink.models.links.schemas import Ambiguous, Failed, NotFound, RefreshResponse, Resolved
from golink.repositories.base import CacheUnwritable
from golink.services.links.service import LinkResolver
from golink.workers.fetcher import FetchError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["links"])

_STATUS_CODES = {
    Ambiguous: 300,
    NotFound: 404,
    Failed: 503,
}


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def _get_resolver() -> LinkResolver:
    """FastAPI dependency that builds a ``LinkResolver`` for each request."""
    return LinkResolver.from_settings()


# ---------------------------------------------------------------------------
# GET /resolve
# ---------------------------------------------------------------------------


@router.get("/resolve", summary="Resolve a shortcut and describe the outcome")
async def resolve_link(
    q: str = Query(..., description="Shortcut to resolve, with or without `go/`"),
    resolver: LinkResolver = Depends(_get_resolver),
) -> JSONResponse:
    """Return the resolution outcome as JSON.

    Always **200**; the ``status`` field of the body is one of
    ``resolved``, ``ambiguous``, ``not_found`` or ``failed``.
    """
    resolution = await resolver.resolve(q)
    return JSONResponse(content=resolution.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# POST /refresh
# ---------------------------------------------------------------------------


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    responses={502: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Fetch the directory now and replace the cache",
)
async def refresh_directory(
    resolver: LinkResolver = Depends(_get_resolver),
) -> RefreshResponse:
    """Force a directory download.

    - **200** — directory fetched and cached
    - **502** — the directory service could not be reached or answered badly
    - **500** — the cache could not be written
    """
    try:
        snapshot = await resolver.refresh()
    except FetchError as exc:
        logger.warning("POST /refresh fetch error: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    except CacheUnwritable as exc:
        logger.error("POST /refresh cache error: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))
    return RefreshResponse(
        links=len(snapshot.entries),
        version=snapshot.source_version,
        fetched_at=snapshot.fetched_at,
    )


# ---------------------------------------------------------------------------
# GET /go/{shortcut}
# ---------------------------------------------------------------------------


@router.get(
    "/go/{shortcut:path}",
    response_class=RedirectResponse,
    status_code=307,
    summary="Redirect to the target of a shortcut",
)
async def follow_link(
    shortcut: str,
    resolver: LinkResolver = Depends(_get_resolver),
) -> Response:
    """Redirect to the resolved target.

    - **307** — resolved; ``Location`` is the target URL
    - **300** — several links match; body lists the candidates
    - **404** — nothing matches
    - **503** — no directory is available
    """
    resolution = await resolver.resolve(shortcut)
    if isinstance(resolution, Resolved):
        return RedirectResponse(resolution.entry.target, status_code=307)
    return JSONResponse(
        status_code=_STATUS_CODES[type(resolution)],
        content=resolution.model_dump(mode="json"),
    )
