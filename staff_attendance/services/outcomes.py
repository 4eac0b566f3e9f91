from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from staff_attendance.models import OfficerAttendance

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DegradedStep:
    step: str
    error: str


@dataclass(slots=True)
class CheckInResult:
    success: bool
    validated: bool | None
    distance: float
    record: OfficerAttendance | None = None
    error: str | None = None
    error_code: str | None = None
    degraded: list[DegradedStep] = field(default_factory=list)


@dataclass(slots=True)
class CheckOutResult:
    success: bool
    validated: bool | None
    distance: float
    hours_worked: float = 0.0
    overtime_hours: float = 0.0
    record: OfficerAttendance | None = None
    error: str | None = None
    error_code: str | None = None
    degraded: list[DegradedStep] = field(default_factory=list)


def run_best_effort(
    step: str,
    func: Callable[..., T],
    *args: Any,
    degraded: list[DegradedStep],
    logger: logging.Logger,
    context: dict[str, Any] | None = None,
    **kwargs: Any,
) -> T | None:
    """Run a secondary step; a failure is logged and recorded, never raised."""
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        degraded.append(DegradedStep(step=step, error=str(exc) or exc.__class__.__name__))
        logger.warning(
            f"{step}_failed",
            exc_info=True,
            extra={"step": step, **(context or {})},
        )
        return None
