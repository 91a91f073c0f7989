"""
Sync engine: the surface the presentation layer talks to.

Composes the store, mutation layer, job tracker and merge guard around one
crawl service client.
"""

import asyncio
from typing import List, Optional

from crawl_sync.client import CrawlApiError, CrawlServiceClient, NotFoundError
from crawl_sync.config.settings import Settings
from crawl_sync.models import Site, SiteDraft
from crawl_sync.telemetry import get_logger

from .merge_guard import apply_refresh
from .mutations import SiteMutations
from .stats import SiteStats, compute_stats, filter_sites
from .store import SiteStore
from .tracker import JobTracker


logger = get_logger(__name__)


class SyncEngine:
    """
    Keeps an in-memory view of crawl sites in sync with the crawl service.

    Usage:
        async with SyncEngine(client) as engine:
            await engine.add(SiteDraft(name="Docs", url="https://docs.example.com"))
            print(engine.stats().to_dict())
    """

    def __init__(
        self,
        client: CrawlServiceClient,
        settings: Optional[Settings] = None,
        store: Optional[SiteStore] = None,
    ):
        self.client = client
        self.settings = settings or Settings()
        self.store = store or SiteStore()

        self.mutations = SiteMutations(self.store, client, invalidate=self.invalidate)
        self.tracker = JobTracker(
            self.store,
            client,
            refresh_site=self.refresh_site,
            interval_s=self.settings.poll.interval_s,
        )
        self._refresh_task: Optional[asyncio.Task] = None

    # ----- reads -----

    @property
    def sites(self) -> List[Site]:
        """Current sites; always a list, even mid-refresh."""
        return self.store.list()

    def stats(self) -> SiteStats:
        return compute_stats(self.store.list())

    def filter(self, query: str = "", status: str = "all", cadence: str = "all") -> List[Site]:
        return filter_sites(self.store.list(), query=query, status=status, cadence=cadence)

    # ----- refresh -----

    async def _fetch_and_apply(self) -> List[Site]:
        fresh = await self.client.list_sites()
        apply_refresh(
            self.store,
            fresh,
            keep=self.mutations.pending_ids,
            retired=self.tracker.retired_jobs,
        )
        logger.debug("sites_refreshed", count=len(self.store))
        return self.store.list()

    async def refresh(self) -> List[Site]:
        """
        Fetch the authoritative list and merge it into the store.

        Concurrent callers share a single in-flight list request.
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._fetch_and_apply())
        return await asyncio.shield(self._refresh_task)

    async def invalidate(self) -> List[Site]:
        """
        Refresh with a list request issued after this call.

        A refresh already in flight may predate a mutation that just
        succeeded, so it is awaited and a new fetch is made.
        """
        stale = self._refresh_task
        if stale is not None and not stale.done():
            try:
                await asyncio.shield(stale)
            except CrawlApiError:
                pass
        return await self.refresh()

    async def refresh_site(self, site_id: str) -> Optional[Site]:
        """
        Canonical refresh of one site after its job finished.

        Uses the single-site endpoint when enabled, otherwise a full list
        fetch filtered to this site.
        """
        if self.settings.poll.single_site_refresh and self.client.supports_single_site:
            try:
                fresh = [await self.client.get_site(site_id)]
            except NotFoundError:
                self.store.remove(site_id)
                return None
        else:
            fresh = await self.client.list_sites()

        apply_refresh(self.store, fresh, only={site_id}, retired=self.tracker.retired_jobs)
        return self.store.get(site_id)

    # ----- mutations -----

    async def add(self, draft: SiteDraft) -> Site:
        return await self.mutations.add(draft)

    async def update(self, site_id: str, draft: SiteDraft) -> Optional[Site]:
        return await self.mutations.update(site_id, draft)

    async def remove(self, site_id: str) -> None:
        await self.mutations.remove(site_id)

    async def start_crawl(self, site_id: str) -> str:
        return await self.mutations.start_crawl(site_id)

    # ----- lifecycle -----

    async def start(self, load: bool = True) -> None:
        """Load the initial list (best effort) and start tracking jobs."""
        if load:
            try:
                await self.refresh()
            except CrawlApiError as e:
                logger.warning("initial_load_failed", error=str(e))
        self.tracker.start()

    async def stop(self) -> None:
        await self.tracker.stop()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
