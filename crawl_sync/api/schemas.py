"""
Pydantic schemas for FastAPI endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from crawl_sync.models import Site, SiteDraft


class SiteListResponse(BaseModel):
    """Response model for GET /sites."""

    sites: List[Site] = Field(default_factory=list, description="Sites matching the filters")
    total: int = Field(default=0, description="Number of sites returned")


class SiteResponse(BaseModel):
    """Response model for single-site mutations."""

    site: Optional[Site] = Field(default=None, description="Record after the mutation")


class SiteRequest(SiteDraft):
    """Request model for POST /sites and PUT /sites/{id}."""


class CrawlStartResponse(BaseModel):
    """Response model for POST /sites/{id}/crawl."""

    site_id: str = Field(..., description="Site the crawl was started for")
    job_id: str = Field(..., description="Job id assigned by the crawl service")


class PreviewRequest(BaseModel):
    """Request model for POST /preview."""

    url: str = Field(..., description="URL to preview before adding a site")


class StatsResponse(BaseModel):
    """Response model for GET /stats."""

    total_sites: int = Field(..., description="Number of known sites")
    active_sites: int = Field(..., description="Sites with status 'active'")
    crawling_sites: int = Field(..., description="Sites with a crawl in flight")
    total_pages: int = Field(..., description="Pages crawled across all sites")
    last_crawled_at: Optional[datetime] = Field(default=None, description="Most recent crawl time")
    counts_by_status: Dict[str, int] = Field(default_factory=dict, description="Site count per status")


class TrackerStatus(BaseModel):
    """Job tracker state reported by /health."""

    running: bool = Field(..., description="Whether the polling loop is scheduled")
    tracked_jobs: List[Dict[str, Any]] = Field(default_factory=list, description="Jobs being polled")
    in_flight: int = Field(default=0, description="Status requests outstanding")


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str = Field(..., description="Service status")
    sites: int = Field(default=0, description="Sites held in memory")
    tracker: TrackerStatus


class ErrorResponse(BaseModel):
    """Body returned for crawl service errors."""

    error: str = Field(..., description="Error class name")
    message: str = Field(..., description="Human-readable message")
    detail: Optional[Any] = Field(default=None, description="Upstream error detail")
