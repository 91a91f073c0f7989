"""
Create, update, delete and start-crawl operations against the store.

Only ``add`` is optimistic: perceived latency matters most at creation
time, while a half-applied update or delete is harder to undo than a brief
stale view.
"""

from typing import Awaitable, Callable, Optional, Set

from crawl_sync.client import CrawlServiceClient, JobAlreadyRunningError
from crawl_sync.models import Site, SiteDraft, SiteStatus
from crawl_sync.telemetry import get_logger

from .store import SiteStore


logger = get_logger(__name__)

Invalidate = Callable[[], Awaitable[object]]


class SiteMutations:
    """
    Mutation layer writing through a SiteStore.

    Every operation raises the client's typed errors on failure so callers
    can notify the user; the store is left valid in every case.
    """

    def __init__(
        self,
        store: SiteStore,
        client: CrawlServiceClient,
        invalidate: Optional[Invalidate] = None,
    ):
        """
        Args:
            store: Store to write through
            client: Crawl service client
            invalidate: Coroutine function triggering an authoritative
                refresh after a successful mutation
        """
        self.store = store
        self.client = client
        self._invalidate = invalidate
        self._pending: Set[str] = set()
        self._starting: Set[str] = set()

    @property
    def pending_ids(self) -> Set[str]:
        """Temporary ids whose create call has not resolved yet."""
        return set(self._pending)

    async def _refresh_after(self, action: str) -> None:
        if self._invalidate is None:
            return
        try:
            await self._invalidate()
        except Exception as e:
            # The mutation itself succeeded; the next refresh will catch up
            logger.warning("refresh_after_mutation_failed", action=action, error=str(e))

    async def add(self, draft: SiteDraft) -> Site:
        """
        Create a site, showing it immediately.

        Args:
            draft: Validated site input

        Returns:
            The record acknowledged by the service
        """
        snapshot = self.store.snapshot()
        temp = Site.from_draft(draft)
        self.store.insert_first(temp)
        version_after_insert = self.store.version
        self._pending.add(temp.id)

        try:
            created = await self.client.create_site(draft)
        except BaseException as e:
            # Cancellation rolls back too
            if self.store.version == version_after_insert:
                self.store.restore(snapshot)
            else:
                # Others wrote meanwhile; drop only our record to keep theirs
                self.store.remove(temp.id)
            logger.warning("site_add_rolled_back", temp_id=temp.id, error=str(e) or type(e).__name__)
            raise
        finally:
            self._pending.discard(temp.id)

        self.store.replace(temp.id, created)
        logger.info("site_added", site_id=created.id, name=created.name)
        await self._refresh_after("add")
        return created

    async def update(self, site_id: str, draft: SiteDraft) -> Optional[Site]:
        """Update a site's configuration; the store changes only after success."""
        updated = await self.client.update_site(site_id, draft)
        logger.info("site_updated", site_id=site_id)
        await self._refresh_after("update")
        return updated

    async def remove(self, site_id: str) -> None:
        """Delete a site; the store changes only after success."""
        await self.client.delete_site(site_id)
        self.store.remove(site_id)
        logger.info("site_deleted", site_id=site_id)
        await self._refresh_after("remove")

    async def start_crawl(self, site_id: str) -> str:
        """
        Start a crawl job for a site.

        The service does not guarantee idempotency, so this never retries.

        Returns:
            The new job id

        Raises:
            JobAlreadyRunningError: The site already has a job in flight
        """
        site = self.store.get(site_id)
        if site_id in self._starting:
            raise JobAlreadyRunningError(detail={"site_id": site_id})
        if site is not None and site.job_id:
            raise JobAlreadyRunningError(detail={"site_id": site_id, "job_id": site.job_id})

        self._starting.add(site_id)
        try:
            job_id = await self.client.start_job(site_id)
        finally:
            self._starting.discard(site_id)

        patched = self.store.patch(
            site_id,
            job_id=job_id,
            status=SiteStatus.CRAWLING,
            progress=None,
        )
        if patched is None:
            logger.warning("crawl_started_for_unknown_site", site_id=site_id, job_id=job_id)
        logger.info("crawl_started", site_id=site_id, job_id=job_id)
        await self._refresh_after("start_crawl")
        return job_id
