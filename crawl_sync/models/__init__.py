"""
Data models for sites, crawl configuration and job observations.
"""

from .site import (
    Cadence,
    CrawlConfig,
    HeadlessMode,
    JobSnapshot,
    RemoteJobStatus,
    Site,
    SiteDraft,
    SiteStatus,
    UrlPreview,
    clamp_progress,
    is_temp_id,
    new_temp_id,
    normalize_url,
)

__all__ = [
    "Cadence",
    "CrawlConfig",
    "HeadlessMode",
    "JobSnapshot",
    "RemoteJobStatus",
    "Site",
    "SiteDraft",
    "SiteStatus",
    "UrlPreview",
    "clamp_progress",
    "is_temp_id",
    "new_temp_id",
    "normalize_url",
]
