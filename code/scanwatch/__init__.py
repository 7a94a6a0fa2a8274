"""scanwatch: follow long-running scan jobs until they finish."""
__version__ = "0.1.0"

from .models import JobSnapshot, JobStatus
from .monitor import (
    JobStatusMonitor,
    JobWaitTimeout,
    JobWatchCancelled,
    MonitorState,
    create_job_monitor,
    poll_until_complete,
)
from .progress import NormalizedProgress, normalize

__all__ = [
    "JobSnapshot",
    "JobStatus",
    "JobStatusMonitor",
    "JobWaitTimeout",
    "JobWatchCancelled",
    "MonitorState",
    "NormalizedProgress",
    "create_job_monitor",
    "normalize",
    "poll_until_complete",
]
