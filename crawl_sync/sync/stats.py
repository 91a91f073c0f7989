"""
Derived views over the site list: aggregate stats and search filtering.

Both are pure projections; they never touch the store.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from crawl_sync.models import Site, SiteStatus


@dataclass
class SiteStats:
    """Aggregate numbers shown above the site table."""

    total_sites: int = 0
    counts_by_status: Dict[str, int] = field(default_factory=dict)
    total_pages: int = 0
    last_crawled_at: Optional[datetime] = None

    @property
    def active_sites(self) -> int:
        return self.counts_by_status.get(SiteStatus.ACTIVE.value, 0)

    @property
    def crawling_sites(self) -> int:
        return self.counts_by_status.get(SiteStatus.CRAWLING.value, 0)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["active_sites"] = self.active_sites
        data["crawling_sites"] = self.crawling_sites
        return data


def _valid(sites: Optional[Iterable[Site]]) -> List[Site]:
    if not sites:
        return []
    return [s for s in sites if isinstance(s, Site) and s.id]


def compute_stats(sites: Optional[Iterable[Site]]) -> SiteStats:
    """
    Compute counts by status, total pages and most recent crawl time.

    Args:
        sites: Current site list (None is treated as empty)

    Returns:
        SiteStats with every status present in counts_by_status
    """
    valid = _valid(sites)
    counts = {status.value: 0 for status in SiteStatus}
    for site in valid:
        counts[site.status.value] += 1

    crawled = [s.last_crawled_at for s in valid if s.last_crawled_at is not None]

    return SiteStats(
        total_sites=len(valid),
        counts_by_status=counts,
        total_pages=sum(s.pages_crawled for s in valid),
        last_crawled_at=max(crawled, key=_sort_key) if crawled else None,
    )


def _sort_key(ts: datetime) -> float:
    # Mixed naive/aware timestamps cannot be compared directly
    return ts.timestamp()


def filter_sites(
    sites: Optional[Iterable[Site]],
    query: str = "",
    status: str = "all",
    cadence: str = "all",
) -> List[Site]:
    """
    Filter sites by free-text search, status and cadence.

    Args:
        sites: Current site list
        query: Case-insensitive substring of name, url or description
        status: Status value or "all"
        cadence: Cadence value or "all"

    Returns:
        Matching sites in their original order (always a list)
    """
    needle = (query or "").strip().lower()
    status = (status or "all").lower()
    cadence = (cadence or "all").lower()

    matched = []
    for site in _valid(sites):
        if needle and not any(
            needle in (value or "").lower()
            for value in (site.name, site.url, site.description)
        ):
            continue
        if status != "all" and site.status.value != status:
            continue
        if cadence != "all" and site.config.cadence.value.lower() != cadence:
            continue
        matched.append(site)
    return matched
