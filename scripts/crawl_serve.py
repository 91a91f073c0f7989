"""
Launch the crawl sync API in front of a crawl service.

Flags override the CRAWL_SYNC_* environment (and .env) for this process and
any reloader children. The engine keeps its site view in memory, so the
server always runs exactly one worker.

Usage:
    python scripts/crawl_serve.py
    python scripts/crawl_serve.py --upstream http://crawler:8000/api/v1 --port 8100
    python scripts/crawl_serve.py --interval 2 --log-level DEBUG --console-logs
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn
from pydantic import ValidationError

from crawl_sync.config import Settings

APP_PATH = "crawl_sync.api.main:app"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def env_overrides(args: argparse.Namespace) -> Dict[str, str]:
    """Translate flags into the settings variables they replace."""
    overrides = {}
    if args.upstream:
        overrides["CRAWL_SYNC_API__BASE_URL"] = args.upstream
    if args.token:
        overrides["CRAWL_SYNC_API__TOKEN"] = args.token
    if args.interval is not None:
        overrides["CRAWL_SYNC_POLL__INTERVAL_S"] = str(args.interval)
    if args.single_site_refresh:
        overrides["CRAWL_SYNC_POLL__SINGLE_SITE_REFRESH"] = "true"
    if args.log_level:
        overrides["CRAWL_SYNC_LOG__LEVEL"] = args.log_level
    if args.console_logs:
        overrides["CRAWL_SYNC_LOG__JSON_LOGS"] = "false"
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serve the crawl sync API for one crawl service"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Interface to bind",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8100,
        help="Port to bind (the crawl service itself usually owns 8000)",
    )
    parser.add_argument(
        "--upstream",
        type=str,
        default=None,
        help="Crawl service base URL (default from CRAWL_SYNC_API__BASE_URL)",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Bearer token for the crawl service",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Job polling interval in seconds",
    )
    parser.add_argument(
        "--single-site-refresh",
        action="store_true",
        help="Refresh a finished site through GET /crawl/sites/{id} instead of the list",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Log level for the engine and uvicorn",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on code changes (development only)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)

    os.environ.update(env_overrides(args))
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"❌ Invalid configuration:\n{e}")
        return 2

    level = settings.log.level.upper()
    if level not in LOG_LEVELS:
        level = "INFO"

    print(f"🚀 Crawl sync API on http://{args.host}:{args.port} (docs at /docs)")
    print(f"   upstream:      {settings.api.base_url}")
    print(f"   auth:          {'bearer token' if settings.api.token else 'none'}")
    print(f"   poll interval: {settings.poll.interval_s}s")

    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
