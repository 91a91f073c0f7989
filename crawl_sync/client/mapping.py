"""
Translation between the crawl service wire schema and local models.

The service speaks snake_case with its own status vocabulary; everything
that leaves this module is a validated local model.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from crawl_sync.models import (
    CrawlConfig,
    JobSnapshot,
    RemoteJobStatus,
    Site,
    SiteDraft,
    SiteStatus,
    UrlPreview,
    clamp_progress,
    normalize_url,
)
from crawl_sync.telemetry import get_logger

from .errors import TransportError


logger = get_logger(__name__)


# Site-level status tokens from GET /crawl/sites
_SITE_STATUS_TOKENS = {
    "READY": SiteStatus.ACTIVE,
    "PENDING": SiteStatus.ACTIVE,
    "DISABLED": SiteStatus.INACTIVE,
    "CRAWLING": SiteStatus.CRAWLING,
    "RUNNING": SiteStatus.CRAWLING,
}


def site_status_from_wire(raw: Any) -> SiteStatus:
    """Map a site status token; unrecognised tokens are reported as errors."""
    if isinstance(raw, SiteStatus):
        return raw
    if not raw:
        return SiteStatus.ERROR
    token = str(raw).strip()
    if token.upper() in _SITE_STATUS_TOKENS:
        return _SITE_STATUS_TOKENS[token.upper()]
    try:
        return SiteStatus(token.lower())
    except ValueError:
        return SiteStatus.ERROR


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _float_or_none(raw: Any) -> Optional[float]:
    try:
        return float(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def draft_to_wire(draft: SiteDraft) -> Dict[str, Any]:
    """Serialize a draft into the service's create/update body."""
    return {
        "name": draft.name,
        "base_url": normalize_url(draft.url),
        "description": draft.description or "",
        "depth": draft.config.depth or 2,
        "cadence": draft.config.cadence.value,
        "headless_mode": draft.config.headless_mode.value,
        "allowlist": list(draft.config.include_patterns),
        "denylist": list(draft.config.exclude_patterns),
    }


def site_from_wire(data: Any) -> Optional[Site]:
    """
    Build a Site from one record of the service.

    Args:
        data: Decoded JSON object

    Returns:
        Site, or None when the record has no usable id or fails validation
    """
    if not isinstance(data, dict):
        return None

    site_id = data.get("id")
    if site_id is None or str(site_id).strip() == "":
        return None

    try:
        config = CrawlConfig(
            depth=data.get("depth") if data.get("depth") is not None else 2,
            cadence=str(data.get("cadence") or "ONCE").upper(),
            headless_mode=str(data.get("headless_mode") or "AUTO").upper(),
            include_patterns=data.get("allowlist") or [],
            exclude_patterns=data.get("denylist") or [],
        )
        return Site(
            id=str(site_id),
            name=data.get("name") or "",
            url=normalize_url(data.get("base_url") or data.get("url") or ""),
            description=data.get("description") or "",
            config=config,
            status=site_status_from_wire(data.get("status")),
            pages_crawled=data.get("documents_count") or data.get("pages_crawled") or 0,
            last_crawled_at=data.get("last_crawl_at"),
            progress=clamp_progress(_first(data, "progress_percentage", "progress")),
            job_id=_first(data, "current_job_id", "job_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            trained_at=data.get("trained_at"),
        )
    except PydanticValidationError as e:
        logger.warning("site_record_invalid", site_id=site_id, error=str(e))
        return None


def sites_from_wire(raw: Any) -> List[Site]:
    """
    Normalize a list response into Sites.

    Accepts a bare list or an envelope ``{"data": [...]}``; anything else
    yields an empty list. Invalid records are dropped.
    """
    if isinstance(raw, list):
        records = raw
    elif isinstance(raw, dict) and isinstance(raw.get("data"), list):
        records = raw["data"]
    else:
        records = []

    sites = []
    for record in records:
        site = site_from_wire(record)
        if site is None:
            logger.warning("site_record_dropped", record=record)
            continue
        sites.append(site)
    return sites


def job_snapshot_from_wire(data: Dict[str, Any], job_id: str) -> JobSnapshot:
    """
    Build a JobSnapshot from a GET /crawl/status response.

    Raises:
        TransportError: The body does not describe a job (bad timestamps,
            non-numeric counters)
    """
    errors = data.get("errors") or []
    try:
        return JobSnapshot(
            job_id=str(data.get("job_id") or job_id),
            status=RemoteJobStatus.parse(data.get("status")),
            progress=_float_or_none(_first(data, "progress_percentage", "progress")),
            pages_crawled=data.get("pages_fetched") or 0,
            started_at=_first(data, "started_at", "queued_at"),
            finished_at=data.get("finished_at"),
            errors=[str(e) for e in errors] if isinstance(errors, list) else [str(errors)],
        )
    except PydanticValidationError as e:
        logger.warning("job_status_invalid", job_id=job_id, error=str(e))
        raise TransportError(f"Status for job {job_id} was malformed", detail=data) from e


def job_id_from_wire(data: Any) -> Optional[str]:
    """Extract the job id from a POST /crawl/start response."""
    if not isinstance(data, dict):
        return None
    value = _first(data, "job_id", "id", "current_job_id")
    return str(value) if value else None


def preview_from_wire(data: Dict[str, Any], url: str) -> UrlPreview:
    meta = data.get("meta") or {}
    if not isinstance(meta, dict):
        meta = {}
    try:
        return UrlPreview(
            url=data.get("url") or url,
            title=meta.get("title") or "No Title",
            content=data.get("html_sample") or "",
            text=data.get("text_sample") or "",
            status_code=meta.get("status_code") or 200,
            metadata=meta,
        )
    except PydanticValidationError as e:
        logger.warning("preview_invalid", url=url, error=str(e))
        raise TransportError(f"Preview of {url} was malformed", detail=data) from e
