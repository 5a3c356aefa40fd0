from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from golink.api.links.routes import _get_resolver
from golink.main import app
from golink.models.links.document import DirectorySnapshot, LinkEntry
from golink.repositories.base import CacheUnwritable
from golink.workers.fetcher import NetworkUnavailable

_SNAPSHOT = DirectorySnapshot.from_entries(
    [
        LinkEntry(shortcut="hr", target="https://hr.example.com/"),
        LinkEntry(shortcut="hrportal", target="https://portal.example.com/hr"),
        LinkEntry(shortcut="docs1", target="https://docs.example.com/1"),
        LinkEntry(shortcut="docs2", target="https://docs.example.com/2"),
    ],
    source_version="v7",
)


@pytest.fixture
def client(resolver):
    """TestClient whose routes use the test resolver (temp cache, fake fetcher)."""
    app.dependency_overrides[_get_resolver] = lambda: resolver
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def cached(store):
    store.save(_SNAPSHOT, stored_at=datetime.now(timezone.utc))


class TestResolveEndpoint:
    def test_resolved(self, client, cached):
        resp = client.get("/resolve", params={"q": "Go/HR"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "resolved"
        assert body["entry"]["target"] == "https://hr.example.com/"

    def test_ambiguous(self, client, cached):
        body = client.get("/resolve", params={"q": "doc"}).json()
        assert body["status"] == "ambiguous"
        assert [c["shortcut"] for c in body["candidates"]] == ["docs1", "docs2"]

    def test_failed(self, client, fetcher):
        fetcher.fetch.side_effect = NetworkUnavailable("unreachable")
        body = client.get("/resolve", params={"q": "hr"}).json()
        assert body["status"] == "failed"
        assert body["error"] == "no_directory_available"
        assert body["cause"] == "network_unavailable"

    def test_missing_query_returns_422(self, client):
        assert client.get("/resolve").status_code == 422


class TestFollowLink:
    def test_redirects_to_target(self, client, cached):
        resp = client.get("/go/hr", follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "https://hr.example.com/"

    def test_nested_path_is_one_shortcut(self, client, store):
        snapshot = DirectorySnapshot.from_entries(
            [LinkEntry(shortcut="team/oncall", target="https://oncall.example.com/")]
        )
        store.save(snapshot)
        resp = client.get("/go/team/oncall", follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "https://oncall.example.com/"

    def test_ambiguous_returns_300(self, client, cached):
        resp = client.get("/go/doc", follow_redirects=False)
        assert resp.status_code == 300
        assert resp.json()["status"] == "ambiguous"

    def test_not_found_returns_404(self, client, cached):
        resp = client.get("/go/zzzzzz", follow_redirects=False)
        assert resp.status_code == 404
        assert resp.json()["status"] == "not_found"

    def test_no_directory_returns_503(self, client, fetcher):
        fetcher.fetch.side_effect = NetworkUnavailable("unreachable")
        resp = client.get("/go/hr", follow_redirects=False)
        assert resp.status_code == 503


class TestRefreshEndpoint:
    def test_refresh(self, client, fetcher, store):
        fetcher.fetch.return_value = _SNAPSHOT
        resp = client.post("/refresh")
        assert resp.status_code == 200
        body = resp.json()
        assert body["links"] == 4
        assert body["version"] == "v7"
        assert store.load() == _SNAPSHOT

    def test_refresh_fetch_error_returns_502(self, client, fetcher):
        fetcher.fetch.side_effect = NetworkUnavailable("DNS lookup failed")
        resp = client.post("/refresh")
        assert resp.status_code == 502
        assert "DNS lookup failed" in resp.json()["detail"]

    def test_refresh_cache_error_returns_500(self, client, fetcher, store, monkeypatch):
        fetcher.fetch.return_value = _SNAPSHOT

        def _fail(*args, **kwargs):
            raise CacheUnwritable("read-only filesystem")

        monkeypatch.setattr(store, "save", _fail)
        resp = client.post("/refresh")
        assert resp.status_code == 500


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
