"""
Async HTTP client for the remote crawl service.

Every method either returns validated local models or raises a
CrawlApiError subclass; httpx exceptions never escape.
"""

import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

import httpx

from crawl_sync.config.settings import ApiCfg
from crawl_sync.models import JobSnapshot, RemoteJobStatus, Site, SiteDraft, UrlPreview, normalize_url
from crawl_sync.telemetry import get_logger
from .errors import (
    JobNotFoundError,
    TransportError,
    ValidationError,
    error_from_response,
)
from .mapping import (
    draft_to_wire,
    job_id_from_wire,
    job_snapshot_from_wire,
    preview_from_wire,
    site_from_wire,
    sites_from_wire,
)


logger = get_logger(__name__)

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class CrawlServiceClient:
    """
    Client for the crawl service's site and job endpoints.

    Credentials come from a static token or a provider callable that is
    consulted on every request, so token refresh stays outside this class.
    """

    # Whether GET /crawl/sites/{id} can be used for canonical refreshes
    supports_single_site = True

    def __init__(
        self,
        base_url: str = "http://localhost:8000/api/v1",
        token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Service base URL including the API prefix
            token: Static bearer token
            token_provider: Callable (sync or async) returning the current token
            timeout_s: Per-request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_s,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, cfg: ApiCfg, **kwargs) -> "CrawlServiceClient":
        return cls(base_url=cfg.base_url, token=cfg.token, timeout_s=cfg.timeout_s, **kwargs)

    async def _auth_headers(self) -> dict:
        token = self._token
        if self._token_provider is not None:
            token = self._token_provider()
            if inspect.isawaitable(token):
                token = await token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        job_lookup: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body (None if empty)."""
        headers = await self._auth_headers()
        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        logger.debug("api_request", method=method, path=path, status=response.status_code)

        if response.is_error:
            raise error_from_response(response, job_lookup=job_lookup)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON") from e

    async def create_site(self, draft: SiteDraft) -> Site:
        data = await self._request("POST", "/crawl/sites", json=draft_to_wire(draft))
        site = site_from_wire(data)
        if site is None:
            raise TransportError("Create site response did not contain a valid site")
        return site

    async def list_sites(self) -> List[Site]:
        """Authoritative snapshot of every site; may omit in-flight job ids."""
        data = await self._request("GET", "/crawl/sites")
        return sites_from_wire(data)

    async def get_site(self, site_id: str) -> Site:
        data = await self._request("GET", f"/crawl/sites/{site_id}")
        site = site_from_wire(data)
        if site is None:
            raise TransportError(f"Site {site_id} response did not contain a valid site")
        return site

    async def update_site(self, site_id: str, draft: SiteDraft) -> Optional[Site]:
        data = await self._request("PUT", f"/crawl/sites/{site_id}", json=draft_to_wire(draft))
        return site_from_wire(data)

    async def delete_site(self, site_id: str) -> None:
        await self._request("DELETE", f"/crawl/sites/{site_id}")

    async def start_job(self, site_id: str) -> str:
        """
        Start a crawl for a site.

        Not idempotent on the service side: never retry blindly.

        Returns:
            Job id correlating subsequent status lookups
        """
        data = await self._request("POST", f"/crawl/start/{site_id}")
        job_id = job_id_from_wire(data)
        if not job_id:
            raise TransportError(f"Start crawl for {site_id} returned no job id", detail=data)
        return job_id

    async def get_job_status(self, job_id: str) -> JobSnapshot:
        """
        Look up job progress.

        Raises:
            JobNotFoundError: The service no longer tracks the job
        """
        data = await self._request("GET", f"/crawl/status/{job_id}", job_lookup=True)
        if not isinstance(data, dict):
            raise TransportError(f"Status for job {job_id} was not an object", detail=data)
        snapshot = job_snapshot_from_wire(data, job_id)
        if snapshot.status is RemoteJobStatus.NOT_FOUND:
            raise JobNotFoundError(status_code=404, detail=data)
        return snapshot

    async def preview_url(self, url: str) -> UrlPreview:
        url = normalize_url(url)
        if not url:
            raise ValidationError("URL is required")
        data = await self._request("PUT", "/crawl/preview", json={"url": url})
        if data is not None and not isinstance(data, dict):
            raise TransportError(f"Preview of {url} was not an object", detail=data)
        return preview_from_wire(data or {}, url)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
