"""
Unit tests for crawl_sync/sync/tracker.py

Tests polling, completion, not-found handling and in-flight de-duplication.
"""
import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from crawl_sync.client import CrawlServiceClient, JobNotFoundError, TransportError
from crawl_sync.models import JobSnapshot, RemoteJobStatus, SiteStatus
from crawl_sync.sync import JobTracker, SiteStore, TrackState

# Mark all tests as async
pytestmark = pytest.mark.asyncio


def snapshot(job_id, status=RemoteJobStatus.RUNNING, progress=None):
    return JobSnapshot(job_id=job_id, status=status, progress=progress)


@pytest.fixture
def crawling_store(make_site):
    return SiteStore([
        make_site("s1", job_id="J1", status=SiteStatus.CRAWLING),
        make_site("s2"),
    ])


@pytest.fixture
def refresh_site():
    return AsyncMock(return_value=None)


@pytest.fixture
def tracker(crawling_store, mock_client, refresh_site):
    return JobTracker(crawling_store, mock_client, refresh_site=refresh_site, interval_s=0.01)


async def test_poll_patches_progress(tracker, crawling_store, mock_client, refresh_site):
    mock_client.get_job_status.return_value = snapshot("J1", progress=40)

    await tracker.poll_once()

    site = crawling_store.get("s1")
    assert site.progress == 40
    assert site.status is SiteStatus.CRAWLING
    assert site.job_id == "J1"
    mock_client.get_job_status.assert_awaited_once_with("J1")
    refresh_site.assert_not_awaited()
    assert tracker.tracks["s1"].state is TrackState.POLLING


async def test_sites_without_job_are_not_polled(tracker, mock_client):
    mock_client.get_job_status.return_value = snapshot("J1", progress=10)

    await tracker.poll_once()

    assert mock_client.get_job_status.await_count == 1
    assert list(tracker.tracks) == ["s1"]


async def test_progress_is_monotonic(tracker, crawling_store, mock_client):
    mock_client.get_job_status.return_value = snapshot("J1", progress=60)
    await tracker.poll_once()

    mock_client.get_job_status.return_value = snapshot("J1", progress=30)
    await tracker.poll_once()

    assert crawling_store.get("s1").progress == 60


async def test_completion_clears_job_and_refreshes_once(tracker, crawling_store, mock_client, refresh_site):
    mock_client.get_job_status.return_value = snapshot("J1", RemoteJobStatus.COMPLETED, 100)

    await tracker.poll_once()
    await tracker.poll_once()

    site = crawling_store.get("s1")
    assert site.job_id is None
    assert site.status is SiteStatus.ACTIVE
    assert site.progress == 100
    refresh_site.assert_awaited_once_with("s1")
    assert mock_client.get_job_status.await_count == 1
    assert "J1" in tracker.retired_jobs
    assert tracker.history[-1].state is TrackState.COMPLETED


async def test_failed_job_sets_error(tracker, crawling_store, mock_client, refresh_site):
    mock_client.get_job_status.return_value = snapshot("J1", RemoteJobStatus.FAILED, 35)

    await tracker.poll_once()

    site = crawling_store.get("s1")
    assert site.status is SiteStatus.ERROR
    assert site.job_id is None
    refresh_site.assert_awaited_once_with("s1")


async def test_not_found_retires_without_refresh(tracker, crawling_store, mock_client, refresh_site):
    crawling_store.patch("s1", progress=30)
    mock_client.get_job_status.side_effect = JobNotFoundError(status_code=404)

    await tracker.poll_once()

    site = crawling_store.get("s1")
    assert site.job_id is None
    assert site.status is SiteStatus.ACTIVE
    assert site.progress is None
    refresh_site.assert_not_awaited()
    assert tracker.history[-1].state is TrackState.NOT_FOUND
    assert "s1" not in tracker.tracks


async def test_full_progress_retires_without_polling(tracker, crawling_store, mock_client, refresh_site):
    crawling_store.patch("s1", progress=100)

    await tracker.poll_once()

    assert crawling_store.get("s1").job_id is None
    mock_client.get_job_status.assert_not_awaited()
    refresh_site.assert_awaited_once_with("s1")


async def test_transient_error_retries_next_tick(tracker, crawling_store, mock_client):
    before = crawling_store.get("s1")
    mock_client.get_job_status.side_effect = TransportError("timeout")

    await tracker.poll_once()

    assert crawling_store.get("s1") == before
    assert tracker.tracks["s1"].last_error == "timeout"

    mock_client.get_job_status.side_effect = None
    mock_client.get_job_status.return_value = snapshot("J1", progress=25)
    await tracker.poll_once()

    assert crawling_store.get("s1").progress == 25
    assert tracker.tracks["s1"].last_error is None


async def test_running_at_full_progress_settles_when_refresh_fails(tracker, crawling_store, mock_client, refresh_site):
    mock_client.get_job_status.return_value = snapshot("J1", RemoteJobStatus.RUNNING, 100)
    refresh_site.side_effect = TransportError("timeout")

    await tracker.poll_once()
    await tracker.poll_once()

    site = crawling_store.get("s1")
    assert site.job_id is None
    assert site.status is SiteStatus.ACTIVE
    assert site.progress == 100
    mock_client.get_job_status.assert_awaited_once_with("J1")
    assert "s1" not in tracker.tracks


async def test_malformed_status_body_is_a_missed_tick(crawling_store, refresh_site):
    def handler(request):
        return httpx.Response(200, json={"status": "RUNNING", "started_at": "not-a-date", "pages_fetched": "many"})

    before = crawling_store.get("s1")
    async with CrawlServiceClient(base_url="http://crawl.test/api/v1", transport=httpx.MockTransport(handler)) as client:
        tracker = JobTracker(crawling_store, client, refresh_site=refresh_site, interval_s=0.01)
        await tracker.poll_once()

    assert crawling_store.get("s1") == before
    assert tracker.tracks["s1"].last_error is not None
    assert tracker.in_flight == set()
    refresh_site.assert_not_awaited()


async def test_slow_poll_is_not_duplicated(tracker, mock_client):
    release = asyncio.Event()

    async def slow_status(job_id):
        await release.wait()
        return snapshot(job_id, progress=10)

    mock_client.get_job_status.side_effect = slow_status

    first = tracker.tick()
    second = tracker.tick()
    third = tracker.tick()

    assert len(first) == 1
    assert second == [] and third == []
    assert tracker.in_flight == {"J1"}

    release.set()
    await asyncio.gather(*first)

    assert mock_client.get_job_status.await_count == 1
    assert tracker.in_flight == set()


async def test_interleaved_responses_stay_per_site(make_site, mock_client, refresh_site):
    store = SiteStore([
        make_site("s1", job_id="J1", status=SiteStatus.CRAWLING),
        make_site("s2", job_id="J2", status=SiteStatus.CRAWLING),
    ])
    tracker = JobTracker(store, mock_client, refresh_site=refresh_site)
    gates = {"J1": asyncio.Event(), "J2": asyncio.Event()}
    results = {
        "J1": snapshot("J1", progress=70),
        "J2": snapshot("J2", RemoteJobStatus.COMPLETED, 100),
    }

    async def status(job_id):
        await gates[job_id].wait()
        return results[job_id]

    mock_client.get_job_status.side_effect = status

    tasks = tracker.tick()
    gates["J2"].set()
    await tasks[1]

    assert store.get("s2").job_id is None
    assert store.get("s2").status is SiteStatus.ACTIVE
    assert store.get("s1").progress is None
    assert store.get("s1").job_id == "J1"

    gates["J1"].set()
    await tasks[0]

    assert store.get("s1").progress == 70
    assert store.get("s1").status is SiteStatus.CRAWLING
    refresh_site.assert_awaited_once_with("s2")


async def test_response_for_replaced_job_is_discarded(tracker, crawling_store, mock_client):
    release = asyncio.Event()

    async def slow_status(job_id):
        await release.wait()
        return snapshot(job_id, progress=90)

    mock_client.get_job_status.side_effect = slow_status

    tasks = tracker.tick()
    crawling_store.patch("s1", job_id="J2", progress=5)
    release.set()
    await asyncio.gather(*tasks)

    site = crawling_store.get("s1")
    assert site.job_id == "J2"
    assert site.progress == 5


async def test_response_for_removed_site_is_discarded(tracker, crawling_store, mock_client):
    release = asyncio.Event()

    async def slow_status(job_id):
        await release.wait()
        return snapshot(job_id, RemoteJobStatus.COMPLETED, 100)

    mock_client.get_job_status.side_effect = slow_status

    tasks = tracker.tick()
    crawling_store.remove("s1")
    release.set()
    await asyncio.gather(*tasks)

    assert "s1" not in crawling_store
    assert [s.id for s in crawling_store.list()] == ["s2"]


async def test_track_forgotten_when_job_cleared_elsewhere(tracker, crawling_store, mock_client):
    mock_client.get_job_status.return_value = snapshot("J1", progress=10)
    await tracker.poll_once()
    assert "s1" in tracker.tracks

    crawling_store.patch("s1", job_id=None)
    await tracker.poll_once()

    assert tracker.tracks == {}


async def test_new_job_restarts_progress_tracking(tracker, crawling_store, mock_client):
    mock_client.get_job_status.return_value = snapshot("J1", progress=80)
    await tracker.poll_once()

    crawling_store.patch("s1", job_id="J2", progress=None)
    mock_client.get_job_status.return_value = snapshot("J2", progress=10)
    await tracker.poll_once()

    assert crawling_store.get("s1").progress == 10
    assert tracker.tracks["s1"].job_id == "J2"


async def test_start_and_stop(tracker, crawling_store, mock_client):
    mock_client.get_job_status.return_value = snapshot("J1", progress=10)

    tracker.start()
    assert tracker.running
    await asyncio.sleep(0.05)
    await tracker.stop()

    assert not tracker.running
    calls = mock_client.get_job_status.await_count
    assert calls >= 1

    await asyncio.sleep(0.05)
    assert mock_client.get_job_status.await_count == calls


async def test_stop_discards_late_results(tracker, crawling_store, mock_client, refresh_site):
    release = asyncio.Event()

    async def slow_status(job_id):
        await release.wait()
        return snapshot(job_id, RemoteJobStatus.COMPLETED, 100)

    mock_client.get_job_status.side_effect = slow_status

    tasks = tracker.tick()
    await tracker.stop()
    release.set()
    await asyncio.gather(*tasks)

    site = crawling_store.get("s1")
    assert site.job_id == "J1"
    assert site.progress is None
    refresh_site.assert_not_awaited()
    assert tracker.tick() == []
