"""Job status models: what the status endpoint returns for one poll."""
from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> Optional["JobStatus"]:
        """Return the matching member, or None for statuses we don't know."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})


# ---------------------------------------------------------------------------
# Progress: tagged union built at the wire boundary
# ---------------------------------------------------------------------------


class AbsentProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["absent"] = "absent"


class NumericProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = "numeric"
    value: float


class StructuredProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["structured"] = "structured"
    percent: Optional[float] = None
    current_tool: Optional[str] = None
    completed_tools: Optional[float] = None
    total_tools: Optional[float] = None


Progress = Annotated[
    Union[AbsentProgress, NumericProgress, StructuredProgress],
    Field(discriminator="kind"),
]

_PROGRESS_ADAPTER: TypeAdapter = TypeAdapter(Progress)
_PROGRESS_TYPES = (AbsentProgress, NumericProgress, StructuredProgress)


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a progress value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        # JSON integers have no size limit; anything past float range is unusable
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_progress(raw: Any) -> Union[AbsentProgress, NumericProgress, StructuredProgress]:
    """Turn whatever the backend sent as ``progress`` into a Progress variant.

    Never raises. Shapes we don't recognise become ``AbsentProgress``, and
    mistyped fields inside a structured record are dropped individually.
    """
    if isinstance(raw, _PROGRESS_TYPES):
        return raw
    if raw is None:
        return AbsentProgress()

    number = _as_number(raw)
    if number is not None:
        return NumericProgress(value=number)

    if isinstance(raw, Mapping):
        # Already-tagged payloads, e.g. a snapshot that went through model_dump()
        if raw.get("kind") in ("absent", "numeric", "structured"):
            try:
                return _PROGRESS_ADAPTER.validate_python(dict(raw))
            except ValidationError:
                return AbsentProgress()
        tool = raw.get("current_tool")
        return StructuredProgress(
            percent=_as_number(raw.get("percent")),
            current_tool=tool if isinstance(tool, str) else None,
            completed_tools=_as_number(raw.get("completed_tools")),
            total_tools=_as_number(raw.get("total_tools")),
        )

    return AbsentProgress()


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class JobSnapshot(BaseModel):
    """Full status payload as of one poll. Never mutated, only replaced."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    job_id: str = Field(validation_alias=AliasChoices("job_id", "scan_id"))
    status: str
    target: Optional[str] = None
    tools_used: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    findings_count: Optional[int] = None
    progress: Progress = Field(default_factory=AbsentProgress)

    @field_validator("status", mode="before")
    @classmethod
    def _status_as_string(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    @field_validator("tools_used", mode="before")
    @classmethod
    def _tools_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("progress", mode="before")
    @classmethod
    def _coerce_progress(cls, value: Any) -> Any:
        return parse_progress(value)

    @property
    def job_status(self) -> Optional[JobStatus]:
        return JobStatus.parse(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.job_status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.job_status in ACTIVE_STATUSES

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
