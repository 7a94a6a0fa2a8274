"""Scan status API client: the one endpoint the job monitor polls.

GET {base_url}/api/v1/scans/{job_id}/status
"""
from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from scanwatch.config import settings
from scanwatch.models.job import JobSnapshot

log = structlog.get_logger(__name__)


class StatusRequestError(Exception):
    """Raised when a status request fails or returns an unusable payload."""

    def __init__(self, job_id: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.status_code = status_code

    @property
    def is_permanent(self) -> bool:
        """True for 4xx answers that retrying will not change (e.g. unknown job)."""
        code = self.status_code
        return code is not None and 400 <= code < 500 and code not in (408, 429)


class JobStatusClient:
    """Async client for the scan status endpoint.

    Usage::

        async with JobStatusClient() as client:
            snapshot = await client.get_status("scan-1")

    Timeouts are enforced here through httpx; the monitor never adds its own.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        status_path: Optional[str] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.SCANWATCH_API_BASE_URL).rstrip("/")
        self.status_path = status_path or settings.SCANWATCH_STATUS_PATH
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.SCANWATCH_REQUEST_TIMEOUT_S,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    def status_url(self, job_id: str) -> str:
        return self.status_path.format(job_id=quote(job_id, safe=""))

    async def get_status(self, job_id: str) -> JobSnapshot:
        """Fetch and validate the current snapshot for *job_id*."""
        path = self.status_url(job_id)
        try:
            resp = await self._client.get(path)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            log.warning("status_request_http_error", job_id=job_id, status_code=code)
            raise StatusRequestError(
                job_id, f"Status request for {job_id!r} failed with HTTP {code}", status_code=code
            ) from exc
        except httpx.HTTPError as exc:
            log.warning("status_request_transport_error", job_id=job_id, error=str(exc))
            raise StatusRequestError(
                job_id, f"Status request for {job_id!r} failed: {str(exc) or type(exc).__name__}"
            ) from exc

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise StatusRequestError(job_id, f"Status response for {job_id!r} is not valid JSON") from exc

        try:
            return JobSnapshot.model_validate(data)
        except ValidationError as exc:
            log.warning("status_payload_invalid", job_id=job_id, errors=exc.error_count())
            raise StatusRequestError(job_id, f"Status response for {job_id!r} is malformed") from exc
        except (ValueError, OverflowError) as exc:
            log.warning("status_payload_invalid", job_id=job_id, error=str(exc))
            raise StatusRequestError(job_id, f"Status response for {job_id!r} is malformed") from exc

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JobStatusClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
