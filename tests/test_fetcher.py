from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from tenacity import wait_none

from golink.models.links.document import DirectorySnapshot
from golink.workers.fetcher import (
    AuthFailure,
    DirectoryFetcher,
    FetchTimeout,
    MalformedResponse,
    NetworkUnavailable,
    NotModified,
)

_BASE = "https://directory.example.com/api/v1"
_LINKS_URL = f"{_BASE}/go/links"
_BODY = {
    "links": [
        {
            "name": "payroll",
            "url": "https://payroll.example.com/",
            "description": "Payroll portal",
            "owner": "finance",
            "updated_at": "2026-09-30T08:00:00Z",
        },
        {"name": "docs", "url": "https://docs.example.com/", "description": "Docs"},
    ],
    "version": "v42",
}


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def directory(http_client):
    return DirectoryFetcher(
        _BASE, "secret-key", max_retries=2, client=http_client, retry_wait=wait_none()
    )


# ---------------------------------------------------------------------------
# Successful fetches
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_successful_fetch(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(return_value=httpx.Response(200, json=_BODY))
            result = await directory.fetch()

        assert isinstance(result, DirectorySnapshot)
        assert set(result.entries) == {"payroll", "docs"}
        assert result.entries["payroll"].owner == "finance"
        assert result.entries["payroll"].updated_at.year == 2026
        assert result.source_version == "v42"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret-key"
        assert "If-None-Match" not in request.headers

    async def test_version_falls_back_to_etag(self, directory):
        body = {"links": _BODY["links"]}
        with respx.mock:
            respx.get(_LINKS_URL).mock(
                return_value=httpx.Response(200, json=body, headers={"ETag": '"abc"'})
            )
            result = await directory.fetch()
        assert result.source_version == '"abc"'

    async def test_missing_version_is_none(self, directory):
        with respx.mock:
            respx.get(_LINKS_URL).mock(
                return_value=httpx.Response(200, json={"links": []})
            )
            result = await directory.fetch()
        assert result.source_version is None
        assert result.entries == {}

    async def test_duplicates_are_recorded(self, directory):
        body = {
            "links": [
                {"name": "wiki", "url": "https://a.example.com/"},
                {"name": "WIKI", "url": "https://b.example.com/"},
            ]
        }
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(200, json=body))
            result = await directory.fetch()
        assert len(result.entries) == 1
        assert result.collisions[0].shortcut == "wiki"

    async def test_conditional_request_not_modified(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(
                return_value=httpx.Response(304, headers={"ETag": "v42"})
            )
            result = await directory.fetch(previous_version="v42")

        assert result == NotModified(source_version="v42")
        assert route.calls.last.request.headers["If-None-Match"] == "v42"

    async def test_not_modified_for_unconditional_request_is_malformed(self, directory):
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(304))
            with pytest.raises(MalformedResponse):
                await directory.fetch()

    async def test_base_url_trailing_slash(self, http_client):
        fetcher = DirectoryFetcher(_BASE + "/", "k", client=http_client)
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(return_value=httpx.Response(200, json=_BODY))
            await fetcher.fetch()
        assert route.called


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFetchFailures:
    async def test_missing_api_key_fails_without_request(self, http_client):
        fetcher = DirectoryFetcher(_BASE, None, client=http_client)
        with respx.mock(assert_all_called=False) as router:
            route = router.get(_LINKS_URL)
            with pytest.raises(AuthFailure, match="No API key"):
                await fetcher.fetch()
        assert not route.called

    @pytest.mark.parametrize("status", [401, 403])
    async def test_unauthorized(self, directory, status):
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(status))
            with pytest.raises(AuthFailure):
                await directory.fetch()

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_server_errors_are_network_unavailable(self, directory, status):
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(status))
            with pytest.raises(NetworkUnavailable, match=str(status)):
                await directory.fetch()

    async def test_unexpected_status_is_malformed(self, directory):
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(404))
            with pytest.raises(MalformedResponse):
                await directory.fetch()

    @pytest.mark.parametrize(
        "content",
        [
            b"<html>maintenance</html>",
            b'{"items": []}',
            b'{"links": [{"name": "x"}]}',
            b'{"links": [{"name": "x", "url": "https://x.example.com/", "colour": "red"}]}',
            b'{"links": [{"name": 7, "url": "https://x.example.com/"}]}',
            b'{"links": [{"name": "x", "url": "not a url"}]}',
            b'{"links": [{"name": "go/", "url": "https://x.example.com/"}]}',
            b'{"links": [], "version": 3}',
        ],
    )
    async def test_schema_deviation_is_malformed(self, directory, content):
        with respx.mock:
            respx.get(_LINKS_URL).mock(return_value=httpx.Response(200, content=content))
            with pytest.raises(MalformedResponse):
                await directory.fetch()

    async def test_timeout_retries_and_raises(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
            with pytest.raises(FetchTimeout):
                await directory.fetch()
        assert route.call_count == 3

    async def test_slow_response_hits_overall_deadline(self):
        calls = 0

        async def trickle(*args, **kwargs):
            nonlocal calls
            calls += 1
            await asyncio.sleep(5)

        client = MagicMock(spec=httpx.AsyncClient)
        client.get = AsyncMock(side_effect=trickle)
        fetcher = DirectoryFetcher(
            _BASE, "secret-key", max_retries=1, client=client, retry_wait=wait_none(), timeout=0.05
        )

        with pytest.raises(FetchTimeout):
            await fetcher.fetch()
        assert calls == 2

    async def test_connect_error_retries_and_raises(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(NetworkUnavailable, match="refused"):
                await directory.fetch()
        assert route.call_count == 3

    async def test_transient_error_then_success(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(
                side_effect=[
                    httpx.ConnectError("refused"),
                    httpx.Response(200, json=_BODY),
                ]
            )
            result = await directory.fetch()
        assert isinstance(result, DirectorySnapshot)
        assert route.call_count == 2

    async def test_other_transport_errors_are_not_retried(self, directory):
        with respx.mock:
            route = respx.get(_LINKS_URL).mock(
                side_effect=httpx.RemoteProtocolError("bad framing")
            )
            with pytest.raises(NetworkUnavailable):
                await directory.fetch()
        assert route.call_count == 1
