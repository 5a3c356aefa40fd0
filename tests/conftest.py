from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from golink.repositories.links.repository import FileCacheStore
from golink.services.links.service import LinkResolver
from golink.workers.fetcher import DirectoryFetcher

MAX_AGE = timedelta(hours=24)


@pytest.fixture
def store(tmp_path):
    """Cache store writing under the test's temporary directory."""
    return FileCacheStore(tmp_path / "cache" / "directory.json")


@pytest.fixture
def fetcher():
    """Directory fetcher with no network behind it; tests set its behaviour."""
    return AsyncMock(spec=DirectoryFetcher)


@pytest.fixture
def resolver(store, fetcher):
    return LinkResolver(store, fetcher, max_age=MAX_AGE)
