"""Command-line front end for following scan jobs.

    scanwatch status scan-1
    scanwatch watch scan-1 --interval-ms 5000 --timeout 600

Exit codes: 0 completed, 1 failed/cancelled or request error, 2 timed out.
``watch`` keeps polling through transient errors (5xx, timeouts, bad
payloads) and gives up with 1 on a 4xx such as an unknown job id.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from scanwatch.config import settings
from scanwatch.display import summarize
from scanwatch.integrations.logging_setup import configure_logging
from scanwatch.integrations.status_client import JobStatusClient, StatusRequestError
from scanwatch.models.job import JobSnapshot, JobStatus
from scanwatch.monitor import JobStatusMonitor, JobWatchCancelled

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scanwatch", description="Follow long-running scan jobs.")
    parser.add_argument("--base-url", default=None, help="Status API base URL (default: SCANWATCH_API_BASE_URL)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Print the current status snapshot as JSON")
    status.add_argument("job_id")

    watch = sub.add_parser("watch", help="Poll a job until it finishes")
    watch.add_argument("job_id")
    watch.add_argument("--interval-ms", type=int, default=settings.SCANWATCH_POLL_INTERVAL_MS)
    watch.add_argument("--timeout", type=float, default=settings.SCANWATCH_WAIT_TIMEOUT_S, help="Seconds")
    return parser


async def _status(client: JobStatusClient, job_id: str) -> int:
    try:
        snapshot = await client.get_status(job_id)
    except StatusRequestError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    print(snapshot.model_dump_json(indent=2))
    return EXIT_OK


async def _watch(client: JobStatusClient, job_id: str, interval_ms: int, timeout_s: float) -> int:
    monitor = JobStatusMonitor(client.get_status, interval_ms=interval_ms)

    def _print_line(snapshot: JobSnapshot) -> None:
        print(summarize(snapshot, job_id=job_id), flush=True)

    def _print_error(exc: Exception) -> None:
        print(summarize(monitor.snapshot, job_id=job_id, error=str(exc)), flush=True)
        if isinstance(exc, StatusRequestError) and exc.is_permanent:
            # Retrying will not make an unknown job appear
            monitor.unwatch()

    monitor.on_update = _print_line
    monitor.on_error = _print_error
    async with monitor:
        monitor.watch(job_id)
        try:
            final = await monitor.wait(timeout=timeout_s)
        except JobWatchCancelled:
            print(f"error: gave up watching job {job_id!r}", file=sys.stderr)
            return EXIT_FAILED
        except asyncio.TimeoutError:
            print(f"error: Job {job_id!r} did not finish within {timeout_s:g}s", file=sys.stderr)
            return EXIT_TIMEOUT
    return EXIT_OK if final.job_status is JobStatus.COMPLETED else EXIT_FAILED


async def _run(args: argparse.Namespace) -> int:
    async with JobStatusClient(base_url=args.base_url) as client:
        if args.command == "status":
            return await _status(client, args.job_id)
        return await _watch(client, args.job_id, args.interval_ms, args.timeout)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    log.debug("cli_invoked", command=args.command, job_id=args.job_id)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
