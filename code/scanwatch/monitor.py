"""Status monitor for long-running remote jobs.

A ``JobStatusMonitor`` follows one job id at a time: it asks the status
endpoint right away, then again every ``interval_ms``, keeps the latest
snapshot and error for its caller, and stops itself the first time it sees
a terminal status, firing ``on_complete`` or ``on_failed`` exactly once.

Each ``watch(job_id)`` starts a new session. Requests and results belong to
the session that issued them; anything that resolves after its session was
replaced is dropped.
"""
from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

import structlog

from scanwatch.config import settings
from scanwatch.models.job import ACTIVE_STATUSES, JobSnapshot, JobStatus
from scanwatch.progress import NormalizedProgress, normalize

log = structlog.get_logger(__name__)

StatusFetcher = Callable[[str], Awaitable[Union[JobSnapshot, Mapping]]]
SnapshotCallback = Callable[[JobSnapshot], Any]
ErrorCallback = Callable[[Exception], Any]

DEFAULT_ERROR_MESSAGE = "Failed to fetch job status"


class JobWatchCancelled(Exception):
    """The watched job was abandoned before it reached a terminal status."""

    def __init__(self, job_id: Optional[str]) -> None:
        super().__init__(f"Stopped watching job {job_id!r} before it finished")
        self.job_id = job_id


class JobWaitTimeout(TimeoutError):
    """A job did not reach a terminal status in the allotted time."""


class MonitorState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class _Session:
    """Everything that belongs to one watch() call."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.stopped = False
        self.timer: Optional[asyncio.Task] = None
        # In-flight guard: at most one outstanding request per session
        self.pending: Optional[asyncio.Task] = None
        self.terminal: Optional[JobSnapshot] = None
        # Task running the terminal callbacks, until they return
        self.finisher: Optional[asyncio.Task] = None
        # True once the terminal callback has run
        self.settled = False
        self.waiters: List[asyncio.Future] = []

    def resolve_waiters(self) -> None:
        for fut in self.waiters:
            if fut.done():
                continue
            if self.terminal is not None:
                fut.set_result(self.terminal)
            else:
                fut.set_exception(JobWatchCancelled(self.job_id))
        self.waiters.clear()


class JobStatusMonitor:
    """Polls the status of one job until it finishes.

    Usage::

        async with JobStatusMonitor(client.get_status, on_complete=refresh) as monitor:
            monitor.watch("scan-1")
            snapshot = await monitor.wait()

    ``on_update`` runs after every successful poll and ``on_error`` gets the
    exception of every failed one. ``watch``/``unwatch`` are synchronous and
    need a running event loop. They, ``refresh_now`` and ``wait`` are safe to
    call from inside any of the callbacks.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        interval_ms: int = 5000,
        on_complete: Optional[SnapshotCallback] = None,
        on_failed: Optional[SnapshotCallback] = None,
        on_update: Optional[SnapshotCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        complete_delay_ms: int = 0,
        failed_delay_ms: int = 0,
        job_id: Optional[str] = None,
    ) -> None:
        self._fetch = fetch_status
        self.interval_ms = interval_ms
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.on_update = on_update
        self.on_error = on_error
        self.complete_delay_ms = complete_delay_ms
        self.failed_delay_ms = failed_delay_ms

        self._session: Optional[_Session] = None
        self._snapshot: Optional[JobSnapshot] = None
        self._error: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()

        if job_id is not None:
            self.watch(job_id)

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def job_id(self) -> Optional[str]:
        return self._session.job_id if self._session else None

    @property
    def state(self) -> MonitorState:
        if self._session is None:
            return MonitorState.IDLE
        if self._session.stopped:
            return MonitorState.STOPPED
        return MonitorState.POLLING

    @property
    def snapshot(self) -> Optional[JobSnapshot]:
        return self._snapshot

    @property
    def status(self) -> Optional[str]:
        """Latest raw status, surfaced as-is even when unrecognised."""
        return self._snapshot.status if self._snapshot else None

    @property
    def job_status(self) -> Optional[JobStatus]:
        return JobStatus.parse(self.status)

    @property
    def progress(self) -> NormalizedProgress:
        if self._snapshot is None:
            return NormalizedProgress()
        return normalize(self._snapshot.progress)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_active(self) -> bool:
        return self.job_status in ACTIVE_STATUSES

    @property
    def is_polling(self) -> bool:
        return self.state is MonitorState.POLLING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def watch(self, job_id: Optional[str]) -> None:
        """Start following *job_id*; ``None`` means stop following anything."""
        if job_id is None:
            self.unwatch()
            return

        current = self._session
        if current is not None and current.job_id == job_id and not current.stopped:
            return

        self.unwatch()
        session = _Session(job_id)
        self._session = session
        session.timer = self._spawn(self._run_forever(session), name=f"job-monitor-{job_id}")
        log.info("job_monitor_started", job_id=job_id, interval_ms=self.interval_ms)

    def unwatch(self) -> None:
        """Stop following the current job and forget everything about it."""
        session, self._session = self._session, None
        self._snapshot = None
        self._error = None
        if session is None:
            return
        was_stopped = session.stopped
        session.stopped = True
        self._disarm(session)
        session.resolve_waiters()
        if not was_stopped:
            log.info("job_monitor_unwatched", job_id=session.job_id)

    async def aclose(self) -> None:
        """Unwatch and wait for every task this monitor still owns to finish."""
        self.unwatch()
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> "JobStatusMonitor":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def refresh_now(self) -> Optional[JobSnapshot]:
        """Poll once outside the schedule. The timer is left untouched."""
        session = self._session
        if session is None or session.stopped:
            return None
        return await self._tick(session)

    async def wait(self, timeout: Optional[float] = None) -> JobSnapshot:
        """Wait for the current job's terminal snapshot.

        Raises ``JobWatchCancelled`` when the job is unwatched first and
        ``asyncio.TimeoutError`` when *timeout* seconds pass.
        """
        session = self._session
        if session is None:
            raise JobWatchCancelled(None)
        if session.terminal is not None and (session.settled or session.finisher is asyncio.current_task()):
            # Also covers wait() awaited from inside on_update/on_complete
            return session.terminal
        fut = asyncio.get_running_loop().create_future()
        session.waiters.append(fut)
        return await asyncio.wait_for(fut, timeout)

    async def _run_forever(self, session: _Session) -> None:
        loop = asyncio.get_running_loop()
        interval_s = self.interval_ms / 1000
        next_due = loop.time()
        while self._is_current(session):
            await self._tick(session)
            next_due += interval_s
            delay = next_due - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            else:
                # Request outlasted the interval: fire once now, then restart the schedule
                next_due = loop.time()

    async def _tick(self, session: _Session) -> Optional[JobSnapshot]:
        if not self._is_current(session):
            return None
        if session.pending is None or session.pending.done():
            session.pending = self._spawn(self._request(session), name=f"job-status-{session.job_id}")
        else:
            log.debug("job_monitor_joining_inflight_request", job_id=session.job_id)
        # Shielded so cancelling the timer never cancels a request half-way
        return await asyncio.shield(session.pending)

    async def _request(self, session: _Session) -> Optional[JobSnapshot]:
        try:
            result = await self._fetch(session.job_id)
            snapshot = result if isinstance(result, JobSnapshot) else JobSnapshot.model_validate(result)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(session):
                log.debug("job_monitor_stale_error_discarded", job_id=session.job_id)
                return None
            self._error = str(exc) or DEFAULT_ERROR_MESSAGE
            log.warning("job_monitor_poll_failed", job_id=session.job_id, error=self._error)
            self._release(session)
            await self._notify(self.on_error, exc, session)
            return None

        if not self._is_current(session):
            log.debug("job_monitor_stale_response_discarded", job_id=session.job_id, status=snapshot.status)
            return None

        self._snapshot = snapshot
        self._error = None
        log.debug("job_monitor_polled", job_id=session.job_id, status=snapshot.status)

        terminal = snapshot.is_terminal
        if terminal:
            self._stop(session, snapshot)
        # The fetch is over; callbacks may poll or wait without joining this task
        self._release(session)
        await self._notify(self.on_update, snapshot, session)
        if terminal:
            await self._settle(session, snapshot)
        return snapshot

    def _stop(self, session: _Session, snapshot: JobSnapshot) -> None:
        session.stopped = True
        self._disarm(session)
        session.terminal = snapshot
        session.finisher = asyncio.current_task()
        log.info("job_monitor_finished", job_id=session.job_id, status=snapshot.status)

    async def _settle(self, session: _Session, snapshot: JobSnapshot) -> None:
        if snapshot.job_status is JobStatus.COMPLETED:
            callback, delay_ms = self.on_complete, self.complete_delay_ms
        else:
            callback, delay_ms = self.on_failed, self.failed_delay_ms
        try:
            if callback is not None:
                if delay_ms > 0:
                    await asyncio.sleep(delay_ms / 1000)
                if session is self._session:
                    await self._notify(callback, snapshot, session)
                else:
                    log.debug("job_monitor_terminal_callback_skipped", job_id=session.job_id)
        finally:
            session.settled = True
            session.finisher = None
            session.resolve_waiters()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_current(self, session: _Session) -> bool:
        return session is self._session and not session.stopped

    def _release(self, session: _Session) -> None:
        if session.pending is asyncio.current_task():
            session.pending = None

    def _disarm(self, session: _Session) -> None:
        timer, session.timer = session.timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _notify(self, callback: Optional[Callable[[Any], Any]], arg: Any, session: _Session) -> None:
        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            log.exception("job_monitor_callback_failed", job_id=session.job_id, error=str(exc))


def create_job_monitor(
    fetch_status: StatusFetcher,
    on_complete: Optional[SnapshotCallback] = None,
    on_failed: Optional[SnapshotCallback] = None,
    on_update: Optional[SnapshotCallback] = None,
    on_error: Optional[ErrorCallback] = None,
) -> JobStatusMonitor:
    """Build a monitor from the configured interval and callback delays."""
    return JobStatusMonitor(
        fetch_status,
        interval_ms=settings.SCANWATCH_POLL_INTERVAL_MS,
        on_complete=on_complete,
        on_failed=on_failed,
        on_update=on_update,
        on_error=on_error,
        complete_delay_ms=settings.SCANWATCH_COMPLETE_DELAY_MS,
        failed_delay_ms=settings.SCANWATCH_FAILED_DELAY_MS,
    )


async def poll_until_complete(
    fetch_status: StatusFetcher,
    job_id: str,
    *,
    interval_ms: Optional[int] = None,
    timeout_s: Optional[float] = None,
    on_update: Optional[SnapshotCallback] = None,
) -> JobSnapshot:
    """Poll *job_id* until it reaches a terminal status and return that snapshot."""
    interval = interval_ms if interval_ms is not None else settings.SCANWATCH_POLL_INTERVAL_MS
    timeout = timeout_s if timeout_s is not None else settings.SCANWATCH_WAIT_TIMEOUT_S
    async with JobStatusMonitor(fetch_status, interval_ms=interval, on_update=on_update) as monitor:
        monitor.watch(job_id)
        try:
            return await monitor.wait(timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise JobWaitTimeout(f"Job {job_id!r} did not finish within {timeout:g}s") from exc
