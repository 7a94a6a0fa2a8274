"""Status badges and one-line summaries for displaying a watched job."""
from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict

from scanwatch.models.job import ACTIVE_STATUSES, JobSnapshot, JobStatus
from scanwatch.progress import normalize

Tone = Literal["muted", "warn", "accent", "danger"]


class StatusBadge(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    tone: Tone
    spinner: bool = False


_BADGES: Dict[JobStatus, StatusBadge] = {
    JobStatus.QUEUED: StatusBadge(label="Queued", tone="muted"),
    JobStatus.RUNNING: StatusBadge(label="Running", tone="warn"),
    JobStatus.COMPLETED: StatusBadge(label="Complete", tone="accent"),
    JobStatus.FAILED: StatusBadge(label="Failed", tone="danger"),
    JobStatus.CANCELLED: StatusBadge(label="Cancelled", tone="muted"),
}


def status_badge(status: Optional[str], show_spinner: bool = True) -> StatusBadge:
    """Badge for a raw status string. Unknown statuses render as queued."""
    parsed = JobStatus.parse(status)
    badge = _BADGES.get(parsed) or _BADGES[JobStatus.QUEUED]
    spinning = show_spinner and parsed in ACTIVE_STATUSES
    return badge.model_copy(update={"spinner": spinning})


def display_status(status: Optional[str], initial_status: Optional[str] = None) -> str:
    """Status to show: polled, else the caller's initial guess, else queued."""
    return status or initial_status or JobStatus.QUEUED.value


def summarize(
    snapshot: Optional[JobSnapshot],
    *,
    job_id: Optional[str] = None,
    initial_status: Optional[str] = None,
    error: Optional[str] = None,
) -> str:
    """Render one line describing where a job stands.

    Active jobs show percent and the running step, completed jobs show
    findings and duration. The last error, if any, is appended so that a
    failed poll never hides the last known status.
    """
    status = display_status(snapshot.status if snapshot else None, initial_status)
    parts = [f"[{status_badge(status).label}]"]

    target = snapshot.target if snapshot and snapshot.target else None
    parts.append(target or job_id or "Scan in progress")

    if snapshot is not None and snapshot.is_active:
        progress = normalize(snapshot.progress)
        if progress.percent is not None:
            parts.append(f"{progress.percent}%")
        if progress.step:
            parts.append(f"running: {progress.step}")
    elif snapshot is not None and snapshot.job_status is JobStatus.COMPLETED:
        if snapshot.findings_count is not None:
            parts.append(f"{snapshot.findings_count} findings")
        if snapshot.duration_seconds is not None:
            parts.append(f"{round(snapshot.duration_seconds)}s duration")

    if error:
        parts.append(f"error: {error}")
    return " ".join(parts)
