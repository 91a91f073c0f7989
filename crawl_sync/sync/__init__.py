"""
Job synchronization core.

Provides:
- SiteStore: in-memory keyed site collection
- reconcile: remote job status -> local status mapping
- SiteMutations: optimistic add, update, remove, start-crawl
- JobTracker: recurring poller for in-flight jobs
- apply_refresh: merge guard for authoritative list fetches
- SyncEngine: facade composing the above
"""

from .store import SiteStore
from .reconciler import Reconciled, reconcile, clamp_progress
from .merge_guard import apply_refresh, merge_fresh
from .mutations import SiteMutations
from .tracker import JobTrack, JobTracker, TrackState
from .stats import SiteStats, compute_stats, filter_sites
from .engine import SyncEngine

__all__ = [
    "SiteStore",
    "Reconciled",
    "reconcile",
    "clamp_progress",
    "apply_refresh",
    "merge_fresh",
    "SiteMutations",
    "JobTrack",
    "JobTracker",
    "TrackState",
    "SiteStats",
    "compute_stats",
    "filter_sites",
    "SyncEngine",
]
