"""
CLI utility for starting a crawl and watching its progress.

Usage:
    python scripts/crawl_watch.py --list
    python scripts/crawl_watch.py --site 42
    python scripts/crawl_watch.py --site 42 --no-start --interval 1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from crawl_sync.client import AuthenticationError, CrawlApiError, CrawlServiceClient
from crawl_sync.config import Settings
from crawl_sync.models import SiteStatus
from crawl_sync.sync import SyncEngine
from crawl_sync.telemetry import configure_logging


async def tail_progress(engine: SyncEngine, site_id: str, interval_s: float = 0.5) -> int:
    """
    Render a site's progress until its job is retired.

    Args:
        engine: Running engine (its tracker does the polling)
        site_id: Site to watch
        interval_s: Seconds between redraws

    Returns:
        Process exit code
    """
    while True:
        site = engine.store.get(site_id)
        if site is None:
            print(f"\n❌ Site {site_id} disappeared")
            return 1

        progress = site.progress or 0
        bar_length = 40
        filled = int(bar_length * progress / 100)
        bar = "=" * filled + "-" * (bar_length - filled)

        print(
            f"\r[{bar}] {progress:3d}% | {site.status.value:8s} | {site.pages_crawled} pages",
            end="",
            flush=True,
        )

        if site.job_id is None:
            print()  # New line after completion
            if site.status is SiteStatus.ERROR:
                print("\n❌ Crawl failed!")
                return 1
            print("\n✅ Crawl finished")
            print(f"   Pages: {site.pages_crawled}")
            if site.last_crawled_at:
                print(f"   Last crawled: {site.last_crawled_at.isoformat()}")
            return 0

        await asyncio.sleep(interval_s)


def print_sites(engine: SyncEngine) -> None:
    stats = engine.stats()
    print(f"{stats.total_sites} sites | {stats.active_sites} active | "
          f"{stats.crawling_sites} crawling | {stats.total_pages} pages")
    print()
    for site in engine.sites:
        progress = f"{site.progress}%" if site.progress is not None else "-"
        print(f"  {site.id:12s} {site.status.value:9s} {progress:>5s}  {site.name}  ({site.url})")


async def watch(settings: Settings, site_id: str = None, start: bool = True, list_only: bool = False) -> int:
    client = CrawlServiceClient.from_settings(settings.api)
    async with client:
        async with SyncEngine(client, settings) as engine:
            if list_only:
                print_sites(engine)
                return 0

            site = engine.store.get(site_id)
            if site is None:
                print(f"❌ Unknown site: {site_id}")
                return 1

            if start and site.job_id is None:
                print(f"🚀 Starting crawl for: {site.name} ({site.url})")
                try:
                    job_id = await engine.start_crawl(site_id)
                except AuthenticationError as e:
                    print(f"❌ {e.message}")
                    return 1
                except CrawlApiError as e:
                    print(f"❌ Failed to start crawl: {e.message}")
                    if e.detail:
                        print(f"   Detail: {e.detail}")
                    return 1
                print(f"✓ Job started: {job_id}\n")
            elif site.job_id is None:
                print(f"Site {site_id} has no crawl in flight")
                return 0

            return await tail_progress(engine, site_id, settings.poll.interval_s)


def main():
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Start a site crawl and monitor its progress"
    )
    parser.add_argument(
        "--site",
        type=str,
        help="Site id to crawl",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List known sites and exit",
    )
    parser.add_argument(
        "--no-start",
        action="store_true",
        help="Only watch a crawl that is already running",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Crawl service base URL (default from CRAWL_SYNC_API__BASE_URL)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug logs on the console",
    )

    args = parser.parse_args()
    if not args.list and not args.site:
        parser.error("one of --site or --list is required")

    settings = Settings()
    if args.base_url:
        settings.api = settings.api.model_copy(update={"base_url": args.base_url})
    if args.interval:
        settings.poll = settings.poll.model_copy(update={"interval_s": args.interval})

    configure_logging("DEBUG" if args.verbose else "WARNING", json_logs=False)

    try:
        return asyncio.run(watch(settings, args.site, start=not args.no_start, list_only=args.list))
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
