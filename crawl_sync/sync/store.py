"""
In-memory keyed collection of sites.

The store is the only shared mutable state of the engine. Every writer goes
through the methods below, and every write replaces whole records by id, so
a reader can never see a half-applied update.
"""

from typing import Dict, Iterable, List, Optional

from crawl_sync.models import Site


class SiteStore:
    """
    Ordered map of site id to Site.

    Order is what readers display: optimistic inserts go to the head,
    authoritative refreshes keep the order the service returned.
    """

    def __init__(self, sites: Optional[Iterable[Site]] = None):
        self._sites: Dict[str, Site] = {}
        self._version = 0
        if sites:
            self.upsert_many(sites)

    @property
    def version(self) -> int:
        """Monotonic counter bumped by every write."""
        return self._version

    def _bump(self) -> None:
        self._version += 1

    def list(self) -> List[Site]:
        """Return all sites in display order; always a list, possibly empty."""
        return list(self._sites.values())

    def get(self, site_id: str) -> Optional[Site]:
        return self._sites.get(site_id)

    def __contains__(self, site_id: object) -> bool:
        return site_id in self._sites

    def __len__(self) -> int:
        return len(self._sites)

    def upsert_many(self, sites: Iterable[Site]) -> None:
        """Insert or replace records by id; new ids are appended."""
        for site in sites:
            self._sites[site.id] = site
        self._bump()

    def insert_first(self, site: Site) -> None:
        """Put a record at the head of the display order."""
        rest = {k: v for k, v in self._sites.items() if k != site.id}
        self._sites = {site.id: site, **rest}
        self._bump()

    def replace(self, old_id: str, site: Site) -> None:
        """Swap the record under ``old_id`` for ``site`` keeping its position."""
        if old_id not in self._sites:
            self.upsert_many([site])
            return
        self._sites = {
            (site.id if k == old_id else k): (site if k == old_id else v)
            for k, v in self._sites.items()
            if k == old_id or k != site.id
        }
        self._bump()

    def patch(self, site_id: str, **fields) -> Optional[Site]:
        """
        Replace one record with a copy carrying the given field values.

        Args:
            site_id: Target record id
            **fields: Site attributes to overwrite

        Returns:
            The new record, or None if the id is unknown (target removed)
        """
        current = self._sites.get(site_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._sites[site_id] = updated
        self._bump()
        return updated

    def remove(self, site_id: str) -> Optional[Site]:
        removed = self._sites.pop(site_id, None)
        if removed is not None:
            self._bump()
        return removed

    def replace_all(self, sites: Iterable[Site]) -> None:
        """Supersede the whole collection with an authoritative list."""
        self._sites = {site.id: site for site in sites}
        self._bump()

    def snapshot(self) -> List[Site]:
        """Capture the current records for a later rollback."""
        # Records are frozen, so a shallow copy is a full snapshot
        return self.list()

    def restore(self, snapshot: List[Site]) -> None:
        self.replace_all(snapshot)
