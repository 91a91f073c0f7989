"""Test configuration and fixtures."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from crawl_sync.client import CrawlServiceClient
from crawl_sync.config import PollCfg, Settings
from crawl_sync.sync import SyncEngine


API_PREFIX = "/api/v1"
BASE_URL = f"http://crawl.test{API_PREFIX}"


class FakeCrawlService:
    """
    In-memory crawl service speaking the real wire schema.

    Served through ``httpx.MockTransport``. Tests steer it by editing
    ``sites``/``jobs`` directly, forcing error codes with ``fail`` and
    holding responses back with ``hold``.
    """

    def __init__(self):
        self.sites: Dict[str, dict] = {}
        self.jobs: Dict[str, dict] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail: Dict[Tuple[str, str], int] = {}
        self.omit_job_ids = False  # list endpoint lags behind started jobs
        self._gates: Dict[Tuple[str, str], asyncio.Event] = {}
        self._next_site = 1
        self._next_job = 1

    # ----- test helpers -----

    def add_site(self, name: str = "Docs", url: str = "https://docs.example.com", **fields) -> dict:
        site_id = str(self._next_site)
        self._next_site += 1
        record = {
            "id": site_id,
            "name": name,
            "base_url": url,
            "description": "",
            "status": "DISABLED",
            "depth": 2,
            "cadence": "ONCE",
            "headless_mode": "AUTO",
            "allowlist": [],
            "denylist": [],
            "documents_count": 0,
            "last_crawl_at": None,
            "current_job_id": None,
        }
        record.update(fields)
        self.sites[site_id] = record
        return record

    def set_job(self, job_id: str, status: str = "RUNNING", progress: Optional[float] = None, **fields) -> dict:
        job = self.jobs.setdefault(job_id, {"job_id": job_id})
        job["status"] = status
        if progress is not None:
            job["progress_percentage"] = progress
        job.update(fields)
        return job

    def finish_job(self, job_id: str, status: str = "COMPLETED", pages: int = 10) -> None:
        """Finish a job the way the service does: job record and site record both change."""
        self.set_job(job_id, status=status, progress=100, pages_fetched=pages)
        for record in self.sites.values():
            if record.get("current_job_id") == job_id:
                record["current_job_id"] = None
                record["status"] = "READY" if status == "COMPLETED" else "ERROR"
                record["documents_count"] = pages
                record["last_crawl_at"] = datetime.now(timezone.utc).isoformat()

    def hold(self, method: str, path: str) -> asyncio.Event:
        """Block responses for a route until the returned event is set."""
        gate = asyncio.Event()
        self._gates[(method, path)] = gate
        return gate

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    # ----- transport -----

    async def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        self.calls.append((method, path))

        gate = self._gates.get((method, path))
        if gate is not None:
            await gate.wait()

        code = self.fail.get((method, path))
        if code is not None:
            return httpx.Response(code, json={"detail": f"forced {code}"})

        parts = path.strip("/").split("/")
        body = json.loads(request.content) if request.content else {}

        if parts[:2] == ["crawl", "sites"]:
            if len(parts) == 2:
                if method == "GET":
                    return httpx.Response(200, json=self._list())
                if method == "POST":
                    return self._create(body)
            else:
                site_id = parts[2]
                if site_id not in self.sites:
                    return httpx.Response(404, json={"detail": "Site not found"})
                if method == "GET":
                    return httpx.Response(200, json=self.sites[site_id])
                if method == "PUT":
                    self.sites[site_id].update(body)
                    return httpx.Response(200, json=self.sites[site_id])
                if method == "DELETE":
                    del self.sites[site_id]
                    return httpx.Response(204)

        if parts[:2] == ["crawl", "start"] and method == "POST":
            return self._start(parts[2])

        if parts[:2] == ["crawl", "status"] and method == "GET":
            job = self.jobs.get(parts[2])
            if job is None:
                return httpx.Response(404, json={"detail": "Job not found"})
            return httpx.Response(200, json=job)

        if parts == ["crawl", "preview"] and method == "PUT":
            return httpx.Response(200, json={
                "url": body.get("url"),
                "meta": {"title": "Example Docs", "status_code": 200},
                "text_sample": "Welcome to the docs",
            })

        return httpx.Response(405, json={"detail": "Method not allowed"})

    def _list(self) -> List[dict]:
        records = [dict(record) for record in self.sites.values()]
        if self.omit_job_ids:
            for record in records:
                record["current_job_id"] = None
        return records

    def _create(self, body: dict) -> httpx.Response:
        if any(record["name"] == body.get("name") for record in self.sites.values()):
            return httpx.Response(409, json={"detail": "Site already exists"})
        fields = {k: v for k, v in body.items() if k not in ("name", "base_url")}
        record = self.add_site(body.get("name"), body.get("base_url"), **fields)
        return httpx.Response(201, json=record)

    def _start(self, site_id: str) -> httpx.Response:
        record = self.sites.get(site_id)
        if record is None:
            return httpx.Response(404, json={"detail": "Site not found"})
        job_id = f"job-{self._next_job}"
        self._next_job += 1
        self.set_job(job_id, status="PENDING", progress=0)
        record["current_job_id"] = job_id
        record["status"] = "CRAWLING"
        return httpx.Response(200, json={"job_id": job_id, "status": "PENDING"})


@pytest.fixture
def service() -> FakeCrawlService:
    """Empty fake crawl service."""
    return FakeCrawlService()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short poll interval and no single-site refresh."""
    return Settings(poll=PollCfg(interval_s=0.01))


@pytest.fixture
def client_factory(service):
    """Build CrawlServiceClients wired to the fake service."""

    def make(**kwargs) -> CrawlServiceClient:
        return CrawlServiceClient(
            base_url=BASE_URL,
            transport=httpx.MockTransport(service.handler),
            **kwargs,
        )

    return make


@pytest_asyncio.fixture
async def api_client(client_factory):
    """CrawlServiceClient wired to the fake service."""
    client = client_factory()
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def engine(api_client, settings):
    """Engine over the fake service; the tracker loop is not started."""
    engine = SyncEngine(api_client, settings)
    yield engine
    await engine.stop()
