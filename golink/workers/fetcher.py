"""Async directory fetcher.

Responsible solely for retrieving a ``DirectorySnapshot`` from the remote
directory service.

Uses httpx.AsyncClient which is meant to be long-lived and reused.
A single shared client is managed by the module; see ``get_http_client``
and ``close_http_client`` for lifecycle hooks.  A client can also be
injected into ``DirectoryFetcher`` directly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import ClassVar, Optional

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from golink.core.config import settings
from golink.models.common import ErrorKind
from golink.models.links.document import DirectorySnapshot
from golink.models.links.schemas import DirectoryResponse

logger = logging.getLogger(__name__)

LINKS_PATH = "/go/links"

# Module-level shared client
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Return the shared AsyncClient.  Creates one if missing."""
    global _http_client  # noqa: PLW0603
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout),
            follow_redirects=True,
            verify=settings.http_verify_ssl,
            headers={"User-Agent": "golink/1.0", "Accept": "application/json"},
        )
    return _http_client


async def close_http_client() -> None:
    """Close the shared AsyncClient gracefully."""
    global _http_client  # noqa: PLW0603
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        _http_client = None
        logger.info("HTTP client closed.")


class FetchError(Exception):
    """Raised when the directory cannot be fetched."""

    kind: ClassVar[ErrorKind] = ErrorKind.NETWORK_UNAVAILABLE


class NetworkUnavailable(FetchError):
    kind = ErrorKind.NETWORK_UNAVAILABLE


class FetchTimeout(FetchError):
    kind = ErrorKind.TIMEOUT


class AuthFailure(FetchError):
    kind = ErrorKind.AUTH_FAILURE


class MalformedResponse(FetchError):
    kind = ErrorKind.MALFORMED_RESPONSE


class NotModified(BaseModel):
    """The directory has not changed since ``source_version``."""

    source_version: str


class DirectoryFetcher:
    """Client for the directory service's ``GET /go/links`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
        retry_wait: wait_base | None = None,
        timeout: float | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + LINKS_PATH
        self._api_key = api_key
        self._max_retries = max_retries
        self._client = client
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=10)
        self._timeout = timeout

    @classmethod
    def from_settings(cls) -> DirectoryFetcher:
        return cls(
            settings.directory_url,
            settings.api_key,
            max_retries=settings.http_max_retries,
            timeout=settings.http_timeout,
        )

    async def fetch(
        self, previous_version: str | None = None
    ) -> DirectorySnapshot | NotModified:
        """Fetch the current directory.

        When *previous_version* is given and the service reports the
        directory unchanged, returns :class:`NotModified` instead of a
        snapshot.  Timeouts and connection failures are retried with
        exponential backoff; everything else fails immediately.

        Raises:
            AuthFailure: no API key configured, or the key was rejected.
            FetchTimeout: every attempt timed out.
            NetworkUnavailable: the service could not be reached.
            MalformedResponse: the response did not match the schema.
        """
        if not self._api_key:
            raise AuthFailure("No API key configured")

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(
                (httpx.TimeoutException, asyncio.TimeoutError, httpx.ConnectError)
            ),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=False,
        )
        try:
            return await retrying(self._do_fetch, previous_version)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            attempts = self._max_retries + 1
            if isinstance(last, (httpx.TimeoutException, asyncio.TimeoutError)):
                raise FetchTimeout(
                    f"Timed out fetching {self._url} after {attempts} attempts"
                ) from exc
            raise NetworkUnavailable(
                f"Failed to reach {self._url} after {attempts} attempts: {last}"
            ) from exc

    async def _do_fetch(
        self, previous_version: str | None
    ) -> DirectorySnapshot | NotModified:
        """Perform a single HTTP GET and map the response to a snapshot."""
        client = self._client or get_http_client()
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if previous_version:
            headers["If-None-Match"] = previous_version

        try:
            # Bounds the whole attempt; httpx timeouts only bound each phase.
            response = await asyncio.wait_for(
                client.get(self._url, headers=headers), timeout=self._timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise  # propagate for retry logic
        except httpx.ConnectError:
            raise  # propagate for retry logic
        except httpx.InvalidURL as exc:
            raise NetworkUnavailable(f"Invalid directory URL '{self._url}': {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkUnavailable(f"Request error for '{self._url}': {exc}") from exc

        return self._parse(response, previous_version)

    def _parse(
        self, response: httpx.Response, previous_version: str | None
    ) -> DirectorySnapshot | NotModified:
        status = response.status_code
        if status == 304:
            if not previous_version:
                raise MalformedResponse("Got 304 Not Modified for an unconditional request")
            return NotModified(source_version=response.headers.get("ETag", previous_version))
        if status in (401, 403):
            raise AuthFailure("Unauthorized - is your directory API key correct?")
        if status == 429 or status >= 500:
            raise NetworkUnavailable(f"Directory service returned HTTP {status}")
        if status != 200:
            raise MalformedResponse(f"Unexpected HTTP {status} from {self._url}")

        try:
            body = DirectoryResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise MalformedResponse(f"Directory response failed validation: {exc}") from exc

        try:
            entries = [link.to_entry() for link in body.links]
        except ValidationError as exc:
            raise MalformedResponse(f"Directory returned an invalid link: {exc}") from exc

        version = body.version or response.headers.get("ETag")
        snapshot = DirectorySnapshot.from_entries(
            entries,
            fetched_at=datetime.now(timezone.utc),
            source_version=version,
        )
        logger.info(
            "Fetched %d links from %s (version=%s)",
            len(snapshot.entries),
            self._url,
            version,
        )
        return snapshot
