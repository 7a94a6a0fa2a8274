"""Progress normalization: any progress shape the backend sends -> 0-100 + step label."""
from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from scanwatch.models.job import NumericProgress, StructuredProgress, parse_progress


class NormalizedProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    percent: Optional[int] = None
    step: Optional[str] = None


def clamp_percent(value: float) -> int:
    """Round half-up and clamp into [0, 100]."""
    # Clamping first keeps huge ratios (e.g. 1e308 / 1e-308) away from floor()
    bounded = max(0.0, min(100.0, float(value)))
    return int(math.floor(bounded + 0.5))


def resolve_percent(progress: Any) -> Optional[int]:
    """Return a 0-100 percent, or None when nothing can be derived."""
    progress = parse_progress(progress)
    if isinstance(progress, NumericProgress):
        return clamp_percent(progress.value)
    if isinstance(progress, StructuredProgress):
        # An explicit percent wins over tool counts
        if progress.percent is not None:
            return clamp_percent(progress.percent)
        completed, total = progress.completed_tools, progress.total_tools
        if completed is not None and total is not None and total > 0:
            return clamp_percent(completed / total * 100)
    return None


def current_step(progress: Any) -> Optional[str]:
    progress = parse_progress(progress)
    if isinstance(progress, StructuredProgress):
        return progress.current_tool
    return None


def normalize(progress: Any) -> NormalizedProgress:
    """Derive the canonical percent and step label. Pure, never raises."""
    return NormalizedProgress(percent=resolve_percent(progress), step=current_step(progress))
