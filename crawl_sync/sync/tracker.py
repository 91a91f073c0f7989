"""
Background tracking of in-flight crawl jobs.

Polls the crawl service for every site holding a job id and patches that
site's progress and status in the store as responses arrive.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from crawl_sync.client import CrawlApiError, CrawlServiceClient, JobNotFoundError
from crawl_sync.models import JobSnapshot, Site, SiteStatus
from crawl_sync.telemetry import get_logger

from .reconciler import reconcile
from .store import SiteStore


logger = get_logger(__name__)

RefreshSite = Callable[[str], Awaitable[object]]


class TrackState(str, Enum):
    """Per-site job tracking state."""

    IDLE = "idle"              # job id seen, not polled yet
    POLLING = "polling"        # still running, polled every tick
    COMPLETED = "completed"    # terminal status or progress 100 observed
    NOT_FOUND = "not_found"    # service dropped the job


@dataclass
class JobTrack:
    """Tracking record for one (site, job) pair."""

    site_id: str
    job_id: str
    state: TrackState = TrackState.IDLE
    high_water: Optional[int] = None   # highest progress shown for this job
    polls: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _max_progress(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


class JobTracker:
    """
    Recurring poller for in-flight jobs.

    Each tick fans out one status request per tracked job and returns
    immediately; responses are applied in arrival order. A job whose
    previous request is still outstanding is skipped, so slow round trips
    never pile up duplicate requests.
    """

    def __init__(
        self,
        store: SiteStore,
        client: CrawlServiceClient,
        refresh_site: Optional[RefreshSite] = None,
        interval_s: float = 0.5,
    ):
        """
        Initialize tracker.

        Args:
            store: Store to read tracked sites from and patch
            client: Crawl service client used for status lookups
            refresh_site: Coroutine function requesting one canonical
                refresh of a site after its job completes
            interval_s: Seconds between ticks
        """
        self.store = store
        self.client = client
        self.interval_s = interval_s
        self._refresh_site = refresh_site

        self.tracks: Dict[str, JobTrack] = {}
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._closed = False
        self.history = deque(maxlen=1024)  # retired JobTracks, oldest first

    @property
    def in_flight(self) -> Set[str]:
        """Job ids with a status request outstanding."""
        return set(self._in_flight)

    @property
    def retired_jobs(self) -> frozenset:
        """Job ids already retired; refreshes must not bring them back."""
        return frozenset(track.job_id for track in self.history)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ----- selection -----

    def _track_for(self, site: Site) -> JobTrack:
        track = self.tracks.get(site.id)
        if track is None or track.job_id != site.job_id:
            # New job for this site: progress tracking starts over
            track = JobTrack(site_id=site.id, job_id=site.job_id)
            self.tracks[site.id] = track
            logger.info("job_discovered", site_id=site.id, job_id=site.job_id)
        return track

    def _is_current(self, site_id: str, job_id: str) -> bool:
        if self._closed:
            return False
        site = self.store.get(site_id)
        return site is not None and site.job_id == job_id

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def tick(self) -> List[asyncio.Task]:
        """
        Run one polling round.

        Returns:
            Tasks spawned this round (status requests and completion refreshes)
        """
        if self._closed:
            return []

        spawned = []
        holding = [s for s in self.store.list() if s.job_id]

        # Forget tracks whose site no longer holds their job
        current = {s.id: s.job_id for s in holding}
        for site_id in list(self.tracks):
            if current.get(site_id) != self.tracks[site_id].job_id:
                del self.tracks[site_id]

        for site in holding:
            track = self._track_for(site)

            if site.job_id in self._in_flight:
                continue

            if site.progress is not None and site.progress >= 100:
                self._retire_completed(track)
                if site.status is SiteStatus.CRAWLING:
                    self.store.patch(site.id, status=SiteStatus.ACTIVE)
                spawned.append(self._spawn(self._request_refresh(site.id)))
                continue

            track.state = TrackState.POLLING
            self._in_flight.add(site.job_id)
            spawned.append(self._spawn(self._poll(site.id, site.job_id)))

        return spawned

    async def poll_once(self) -> None:
        """Run one tick and wait for every request it issued."""
        tasks = self.tick()
        if tasks:
            await asyncio.gather(*tasks)

    # ----- response handling -----

    async def _poll(self, site_id: str, job_id: str) -> None:
        try:
            snapshot = await self.client.get_job_status(job_id)
        except JobNotFoundError:
            if self._is_current(site_id, job_id):
                self._retire_not_found(site_id, job_id)
            return
        except CrawlApiError as e:
            # A missed tick is recovered by the next one
            track = self.tracks.get(site_id)
            if track is not None and track.job_id == job_id:
                track.last_error = e.message
            logger.warning("poll_failed", site_id=site_id, job_id=job_id, error=e.message)
            return
        finally:
            self._in_flight.discard(job_id)

        if not self._is_current(site_id, job_id):
            logger.debug("stale_poll_discarded", site_id=site_id, job_id=job_id)
            return

        if self._apply(site_id, snapshot):
            await self._request_refresh(site_id)

    def _apply(self, site_id: str, snapshot: JobSnapshot) -> bool:
        """
        Patch one site from a job observation.

        Returns:
            True if this observation retired the job as completed
        """
        site = self.store.get(site_id)
        track = self._track_for(site)
        track.polls += 1
        track.last_error = None

        result = reconcile(
            snapshot.status,
            snapshot.progress,
            previous_status=site.status,
            previous_progress=_max_progress(site.progress, track.high_water),
        )
        track.high_water = result.progress

        self.store.patch(
            site_id,
            progress=result.progress,
            status=result.status or site.status,
        )

        if result.terminal and track.state is not TrackState.COMPLETED:
            self._retire_completed(track)
            return True
        return False

    def _retire_completed(self, track: JobTrack) -> None:
        track.state = TrackState.COMPLETED
        self.history.append(track)
        self.store.patch(track.site_id, job_id=None)
        self.tracks.pop(track.site_id, None)
        logger.info("job_completed", site_id=track.site_id, job_id=track.job_id, progress=track.high_water)

    def _retire_not_found(self, site_id: str, job_id: str) -> None:
        track = self.tracks.pop(site_id, None) or JobTrack(site_id=site_id, job_id=job_id)
        track.state = TrackState.NOT_FOUND
        self.history.append(track)
        # The service has no opinion any more; fall back to a neutral status
        self.store.patch(site_id, job_id=None, status=SiteStatus.ACTIVE, progress=None)
        logger.info("job_not_found", site_id=site_id, job_id=job_id)

    async def _request_refresh(self, site_id: str) -> None:
        if self._refresh_site is None or self._closed:
            return
        try:
            await self._refresh_site(site_id)
        except CrawlApiError as e:
            logger.warning("completion_refresh_failed", site_id=site_id, error=e.message)

    # ----- lifecycle -----

    async def run(self) -> None:
        """Tick until stopped."""
        logger.info("tracker_started", interval_s=self.interval_s)
        while not self._closed:
            self.tick()
            await asyncio.sleep(self.interval_s)

    def start(self) -> None:
        """Schedule the tick loop on the running event loop."""
        if self.running:
            return
        self._closed = False
        self._loop_task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """
        Stop scheduling ticks.

        Requests already sent are not aborted; their results are discarded.
        """
        self._closed = True
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        self.tracks.clear()
        logger.info("tracker_stopped", pending_requests=len(self._in_flight))
