"""
Protects in-flight job tracking from lagging authoritative refreshes.

The service's list endpoint does not reliably echo a job id right after a
crawl was started. Without this step a refresh racing a poll would silently
drop tracking of a real in-flight job.
"""

from typing import Collection, Dict, Iterable, List, Optional

from crawl_sync.models import Site, SiteStatus
from crawl_sync.telemetry import get_logger

from .store import SiteStore


logger = get_logger(__name__)


def held_jobs(store: SiteStore) -> Dict[str, Site]:
    """Local records currently holding a job id, keyed by site id."""
    return {site.id: site for site in store.list() if site.job_id}


def _max_progress(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_fresh(fresh: Iterable[Site], held: Dict[str, Site]) -> List[Site]:
    """
    Merge a freshly fetched list with locally held jobs.

    Args:
        fresh: Records from the system of record
        held: Local records holding a job id, keyed by site id

    Returns:
        Fresh records with lost job ids reattached
    """
    merged = []
    for site in fresh:
        local = held.get(site.id)
        if local is None:
            merged.append(site)
        elif site.job_id is None:
            logger.debug("job_reattached", site_id=site.id, job_id=local.job_id)
            merged.append(site.model_copy(update={
                "job_id": local.job_id,
                "status": SiteStatus.CRAWLING,
                "progress": local.progress,
            }))
        elif site.job_id == local.job_id:
            merged.append(site.model_copy(update={
                "progress": _max_progress(site.progress, local.progress),
            }))
        else:
            # A different job id is newer information than ours
            merged.append(site)
    return merged


def strip_retired(store: SiteStore, fresh: Iterable[Site], retired: Collection[str]) -> List[Site]:
    """
    Drop job ids that were already retired locally.

    The list endpoint can keep echoing a finished job's id for a while; a
    retired id must never be tracked again.
    """
    cleaned = []
    for site in fresh:
        if site.job_id is None or site.job_id not in retired:
            cleaned.append(site)
            continue
        update = {"job_id": None}
        local = store.get(site.id)
        if site.status is SiteStatus.CRAWLING and local is not None:
            update["status"] = local.status
            update["progress"] = local.progress
        cleaned.append(site.model_copy(update=update))
    return cleaned


def apply_refresh(
    store: SiteStore,
    fresh: Iterable[Site],
    keep: Collection[str] = (),
    only: Optional[Collection[str]] = None,
    retired: Collection[str] = (),
) -> List[Site]:
    """
    Write an authoritative fetch into the store through the guard.

    Runs synchronously, so the held-job lookup and the write see the same
    store state.

    Args:
        store: Target store
        fresh: Records from the system of record
        keep: Ids of local records to retain at the head even if absent
            from ``fresh`` (optimistic records still awaiting their create)
        only: If given, upsert just these ids instead of replacing the list
        retired: Job ids the tracker already retired

    Returns:
        The merged records that were written
    """
    if retired:
        fresh = strip_retired(store, fresh, retired)
    merged = merge_fresh(fresh, held_jobs(store))

    if only is not None:
        merged = [site for site in merged if site.id in only]
        if merged:
            store.upsert_many(merged)
        return merged

    fresh_ids = {site.id for site in merged}
    retained = [
        store.get(site_id) for site_id in keep
        if site_id in store and site_id not in fresh_ids
    ]
    store.replace_all(retained + merged)
    return merged
