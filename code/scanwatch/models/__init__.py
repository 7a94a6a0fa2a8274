from .job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AbsentProgress,
    JobSnapshot,
    JobStatus,
    NumericProgress,
    Progress,
    StructuredProgress,
    parse_progress,
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "AbsentProgress",
    "JobSnapshot",
    "JobStatus",
    "NumericProgress",
    "Progress",
    "StructuredProgress",
    "parse_progress",
]
