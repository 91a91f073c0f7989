"""
Mapping from remote job observations to the local status vocabulary.

Pure functions only: the tracker feeds in what the service reported plus
what the store currently shows, and gets back what the store should show.
"""

from dataclasses import dataclass
from typing import Optional, Union

from crawl_sync.models import RemoteJobStatus, SiteStatus, clamp_progress


# Remote token -> local status. Tokens missing here pass the previous
# local status through unchanged.
STATUS_TABLE = {
    RemoteJobStatus.PENDING: SiteStatus.CRAWLING,
    RemoteJobStatus.RUNNING: SiteStatus.CRAWLING,
    RemoteJobStatus.COMPLETED: SiteStatus.ACTIVE,
    RemoteJobStatus.FAILED: SiteStatus.ERROR,
    RemoteJobStatus.CANCELLED: SiteStatus.INACTIVE,
}

TERMINAL_STATUSES = frozenset({
    RemoteJobStatus.COMPLETED,
    RemoteJobStatus.FAILED,
    RemoteJobStatus.CANCELLED,
})


@dataclass(frozen=True)
class Reconciled:
    """Outcome of reconciling one job observation."""

    status: Optional[SiteStatus]
    progress: Optional[int]
    terminal: bool


def reconcile(
    remote_status: Union[RemoteJobStatus, str, None],
    remote_progress: Union[int, float, str, None],
    previous_status: Optional[SiteStatus] = None,
    previous_progress: Optional[int] = None,
) -> Reconciled:
    """
    Reconcile a remote job observation against the current local view.

    Args:
        remote_status: Job status token (enum or raw string)
        remote_progress: Reported progress percentage
        previous_status: Status currently shown for the site
        previous_progress: Highest progress already shown for the same job

    Returns:
        Reconciled status, non-regressing progress, and terminal flag
    """
    token = RemoteJobStatus.parse(remote_status)
    status = STATUS_TABLE.get(token, previous_status)

    progress = clamp_progress(remote_progress)
    if previous_progress is not None:
        # Out-of-order responses must not move the bar backwards
        progress = previous_progress if progress is None else max(progress, previous_progress)

    return Reconciled(status=status, progress=progress, terminal=token in TERMINAL_STATUSES)
