"""
Site and job data models.

Sites are frozen: every change produces a new record via ``model_copy`` so
that concurrent writers only ever swap whole records in the store.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Union
import math
import re
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


TEMP_ID_PREFIX = "temp-"


class SiteStatus(str, Enum):
    """Local status vocabulary shown to readers."""

    INACTIVE = "inactive"
    PENDING = "pending"
    CRAWLING = "crawling"
    ACTIVE = "active"
    ERROR = "error"


class RemoteJobStatus(str, Enum):
    """Closed set of job status tokens reported by the crawl service."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "RemoteJobStatus":
        """Map a loosely typed token from the wire onto the closed set."""
        if isinstance(raw, cls):
            return raw
        if not raw:
            return cls.UNKNOWN
        token = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
        return _JOB_TOKEN_ALIASES.get(token, cls.UNKNOWN)


_JOB_TOKEN_ALIASES = {
    "PENDING": RemoteJobStatus.PENDING,
    "QUEUED": RemoteJobStatus.PENDING,
    "RUNNING": RemoteJobStatus.RUNNING,
    "CRAWLING": RemoteJobStatus.RUNNING,
    "STARTED": RemoteJobStatus.RUNNING,
    "IN_PROGRESS": RemoteJobStatus.RUNNING,
    "COMPLETED": RemoteJobStatus.COMPLETED,
    "SUCCEEDED": RemoteJobStatus.COMPLETED,
    "SUCCESS": RemoteJobStatus.COMPLETED,
    "DONE": RemoteJobStatus.COMPLETED,
    "FINISHED": RemoteJobStatus.COMPLETED,
    "READY": RemoteJobStatus.COMPLETED,
    "FAILED": RemoteJobStatus.FAILED,
    "ERROR": RemoteJobStatus.FAILED,
    "CANCELLED": RemoteJobStatus.CANCELLED,
    "CANCELED": RemoteJobStatus.CANCELLED,
    "ABORTED": RemoteJobStatus.CANCELLED,
    "STOPPED": RemoteJobStatus.CANCELLED,
    "NOT_FOUND": RemoteJobStatus.NOT_FOUND,
    "NOTFOUND": RemoteJobStatus.NOT_FOUND,
    "MISSING": RemoteJobStatus.NOT_FOUND,
}


class Cadence(str, Enum):
    ONCE = "ONCE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class HeadlessMode(str, Enum):
    AUTO = "AUTO"
    ON = "ON"
    OFF = "OFF"


def normalize_url(value: Optional[str]) -> str:
    """
    Clean up a URL typed or pasted by a user.

    Strips whitespace, one pair of enclosing quotes or backticks, and
    collapses internal whitespace runs to a single space.
    """
    if not value:
        return ""
    trimmed = str(value).strip()
    unquoted = re.sub(r"^([`\"'])(.*)\1$", r"\2", trimmed, flags=re.DOTALL)
    return re.sub(r"\s+", " ", unquoted)


def new_temp_id() -> str:
    """Generate an id for an optimistic record awaiting acknowledgment."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(site_id: str) -> bool:
    return site_id.startswith(TEMP_ID_PREFIX)


def clamp_progress(raw: Union[int, float, str, None]) -> Optional[int]:
    """
    Coerce a reported progress value into an integer percentage.

    Returns None for absent or unparseable values; otherwise the value is
    rounded down and clamped to [0, 100]. Infinities clamp to the bounds.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    return math.floor(max(0.0, min(100.0, value)))


class CrawlConfig(BaseModel):
    """How a site is crawled."""

    model_config = ConfigDict(frozen=True)

    depth: int = Field(default=2, ge=0, description="Link depth to follow")
    cadence: Cadence = Field(default=Cadence.ONCE, description="Re-crawl cadence")
    headless_mode: HeadlessMode = Field(default=HeadlessMode.AUTO, description="Browser rendering mode")
    include_patterns: List[str] = Field(default_factory=list, description="URL allowlist patterns")
    exclude_patterns: List[str] = Field(default_factory=list, description="URL denylist patterns")


class SiteDraft(BaseModel):
    """User input for creating or updating a site."""

    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Base URL to crawl")
    description: str = Field(default="", description="Free-form description")
    config: CrawlConfig = Field(default_factory=CrawlConfig)

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value

    @field_validator("url")
    @classmethod
    def _url_required(cls, value: str) -> str:
        value = normalize_url(value)
        if not value:
            raise ValueError("URL is required")
        return value


class Site(BaseModel):
    """
    A configured crawl target.

    ``job_id`` is set only while a crawl is in flight; ``progress`` belongs
    to that job and is reset whenever a new job starts.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque id from the system of record, or a temp id")
    name: str = Field(default="", description="Display name")
    url: str = Field(default="", description="Normalized base URL")
    description: str = Field(default="", description="Free-form description")
    config: CrawlConfig = Field(default_factory=CrawlConfig)

    status: SiteStatus = Field(default=SiteStatus.INACTIVE)
    pages_crawled: int = Field(default=0, ge=0)
    last_crawled_at: Optional[datetime] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    job_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    trained_at: Optional[datetime] = None

    @property
    def is_temporary(self) -> bool:
        return is_temp_id(self.id)

    @property
    def is_trained(self) -> bool:
        return self.trained_at is not None

    @classmethod
    def from_draft(cls, draft: SiteDraft, site_id: Optional[str] = None) -> "Site":
        """Build a local placeholder record for an optimistic insert."""
        return cls(
            id=site_id or new_temp_id(),
            name=draft.name,
            url=draft.url,
            description=draft.description,
            config=draft.config,
            status=SiteStatus.INACTIVE,
        )


class JobSnapshot(BaseModel):
    """One observation of a remote crawl job."""

    job_id: str
    status: RemoteJobStatus = RemoteJobStatus.UNKNOWN
    progress: Optional[float] = None
    pages_crawled: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    errors: List[str] = Field(default_factory=list)


class UrlPreview(BaseModel):
    """Metadata returned when previewing a URL before adding it."""

    url: str
    title: str = "No Title"
    content: str = ""
    text: str = ""
    status_code: int = 200
    metadata: dict = Field(default_factory=dict)
