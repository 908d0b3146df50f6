"""
Run rental pipeline jobs from CLI.

Examples:
    python scripts/run_pipeline.py discover --source realestate_kh
    python scripts/run_pipeline.py process --source realestate_kh --max-items 50
    python scripts/run_pipeline.py build-index --date 2026-10-18
    python scripts/run_pipeline.py build-monthly --year-month 2026-09
    python scripts/run_pipeline.py mark-stale --threshold-days 7
    python scripts/run_pipeline.py daily
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
from datetime import date
from typing import Any

from db.models.job_run import JobRunStatus
from rentindex.domain.results import JobResult
from rentindex.services.pipeline_service import RentalPipelineService


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run rental listing pipeline jobs.")
    commands = parser.add_subparsers(dest="command", required=True)

    discover = commands.add_parser("discover", help="Crawl category pages and enqueue listing URLs.")
    discover.add_argument("--source", required=True, help="Source name from the sources config file.")
    discover.add_argument("--max-urls", dest="max_urls", type=int, default=None)

    process = commands.add_parser("process", help="Claim and scrape queued URLs.")
    process.add_argument("--source", required=True, help="Source name from the sources config file.")
    process.add_argument("--max-items", dest="max_items", type=int, default=None)

    build_index = commands.add_parser("build-index", help="Build the daily price index.")
    build_index.add_argument(
        "--date",
        dest="index_date",
        type=date.fromisoformat,
        default=None,
        help="UTC day as YYYY-MM-DD; defaults to yesterday.",
    )

    build_monthly = commands.add_parser("build-monthly", help="Build the monthly price index.")
    build_monthly.add_argument(
        "--year-month",
        dest="year_month",
        default=None,
        help="Month as YYYY-MM; defaults to the previous month.",
    )

    mark_stale = commands.add_parser("mark-stale", help="Deactivate listings not seen recently.")
    mark_stale.add_argument("--threshold-days", dest="threshold_days", type=int, default=None)

    commands.add_parser("daily", help="Run the full daily cycle for every enabled source.")
    return parser


def _run(service: RentalPipelineService, args: argparse.Namespace) -> dict[str, Any] | JobResult:
    if args.command == "discover":
        return service.discover(source=args.source, max_urls=args.max_urls)
    if args.command == "process":
        return service.process_queue(source=args.source, max_items=args.max_items)
    if args.command == "build-index":
        return service.build_daily_index(index_date=args.index_date)
    if args.command == "build-monthly":
        return service.build_monthly_index(year_month=args.year_month)
    if args.command == "mark-stale":
        return service.mark_stale(threshold_days=args.threshold_days)
    return service.run_daily().to_dict()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging()

    service = RentalPipelineService()

    def _request_shutdown(signum: int, _frame: object) -> None:
        logging.getLogger(__name__).warning("Received signal %s; finishing the current batch", signum)
        service.request_shutdown()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    outcome = _run(service, args)
    if isinstance(outcome, JobResult):
        payload = outcome.to_dict()
        failed = outcome.status != JobRunStatus.SUCCESS
    else:
        payload = outcome
        failed = bool(outcome.get("failed_jobs")) or bool(outcome.get("errors"))

    print(json.dumps(payload, indent=2, default=str))
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
