"""
crawl_sync - keeps a client-side view of website crawl jobs in sync with
the crawl service that runs them.
"""

from .client import CrawlServiceClient
from .config import Settings
from .models import Site, SiteDraft, SiteStatus
from .sync import SyncEngine

__version__ = "0.1.0"

__all__ = [
    "CrawlServiceClient",
    "Settings",
    "Site",
    "SiteDraft",
    "SiteStatus",
    "SyncEngine",
]
