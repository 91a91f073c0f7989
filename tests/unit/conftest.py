"""
Shared fixtures for sync-layer unit tests.
"""
from unittest.mock import AsyncMock

import pytest

from crawl_sync.client import CrawlServiceClient
from crawl_sync.models import Site, SiteStatus
from crawl_sync.sync import SiteStore


@pytest.fixture
def make_site():
    """Factory for Site records with sensible defaults."""

    def make(site_id: str = "s1", **fields) -> Site:
        fields.setdefault("name", f"Site {site_id}")
        fields.setdefault("url", f"https://{site_id}.example.com")
        fields.setdefault("status", SiteStatus.ACTIVE)
        return Site(id=site_id, **fields)

    return make


@pytest.fixture
def store(make_site):
    """Store seeded with two idle sites."""
    return SiteStore([make_site("s1"), make_site("s2")])


@pytest.fixture
def mock_client():
    """Crawl service client double; every coroutine method is an AsyncMock."""
    client = AsyncMock(spec=CrawlServiceClient)
    client.supports_single_site = True
    return client


@pytest.fixture
def invalidate():
    """Refresh trigger handed to the mutation layer."""
    return AsyncMock(return_value=[])
