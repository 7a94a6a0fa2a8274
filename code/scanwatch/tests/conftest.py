"""Shared fakes for the scanwatch tests.

- ``ScriptedBackend``: an in-process status fetcher with one scripted reply
  per call and optional gates to hold a request in flight.
- ``build_status_app``: a FastAPI stand-in for the scan status endpoint,
  mounted through ``httpx.ASGITransport``.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import pytest
import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from scanwatch.integrations.status_client import JobStatusClient


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def payload(job_id: str, status: str, progress: Any = None, **extra: Any) -> Dict[str, Any]:
    body = {
        "scan_id": job_id,
        "status": status,
        "target": "example.com",
        "tools_used": ["nmap", "nuclei"],
        "started_at": "2026-10-19T08:00:00Z",
        "progress": progress,
    }
    body.update(extra)
    return body


async def settle(rounds: int = 20) -> None:
    """Let every ready task on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ScriptedBackend:
    """Stands in for the status endpoint. The last reply per job repeats."""

    def __init__(self, script: Dict[str, List[Any]]) -> None:
        self.script = {job_id: list(replies) for job_id, replies in script.items()}
        self.calls: List[str] = []
        self.cancelled: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def gate(self, job_id: str) -> asyncio.Event:
        """Hold every request for *job_id* until the returned event is set."""
        event = asyncio.Event()
        self.gates[job_id] = event
        return event

    async def __call__(self, job_id: str) -> Any:
        self.calls.append(job_id)
        gate = self.gates.get(job_id)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(job_id)
                raise
        replies = self.script[job_id]
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def build_status_app(script: Dict[str, List[Any]]) -> FastAPI:
    app = FastAPI()
    calls: Dict[str, int] = {}
    app.state.calls = calls

    @app.get("/api/v1/scans/{job_id}/status")
    async def scan_status(job_id: str):
        replies = script.get(job_id)
        if replies is None:
            raise HTTPException(status_code=404, detail=f"Scan {job_id!r} not found")
        index = calls.get(job_id, 0)
        calls[job_id] = index + 1
        reply = replies[min(index, len(replies) - 1)]
        if isinstance(reply, str):
            return PlainTextResponse(reply)
        return reply

    return app


@pytest.fixture
def status_app() -> FastAPI:
    return build_status_app(
        {
            "scan-1": [
                payload("scan-1", "queued"),
                payload("scan-1", "running", 30),
                payload("scan-1", "running", {"current_tool": "nuclei", "completed_tools": 2, "total_tools": 4}),
                payload(
                    "scan-1",
                    "completed",
                    100,
                    completed_at="2026-10-19T08:00:42Z",
                    duration_seconds=41.6,
                    findings_count=12,
                ),
            ],
            "scan-done": [payload("scan-done", "completed", 100, findings_count=3, duration_seconds=9.2)],
            "scan-failed": [payload("scan-failed", "failed")],
            "scan-stuck": [payload("scan-stuck", "running", {"percent": 40, "current_tool": "nmap"})],
            "scan-broken": [{"status": "running"}],
            "scan-text": ["<html>gateway timeout</html>"],
            "scan-huge": [payload("scan-huge", "running", 10**400)],
        }
    )


@pytest.fixture
def make_client(status_app: FastAPI):
    """Factory for clients wired to the fake status app (CLI-compatible signature)."""

    def _make(base_url: Optional[str] = None) -> JobStatusClient:
        return JobStatusClient(base_url="http://test", transport=httpx.ASGITransport(app=status_app))

    return _make
