"""Exception types raised by the budget planner."""

from __future__ import annotations

import math
from typing import Any


class BudgetPlannerError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(BudgetPlannerError, ValueError):
    """A required input was rejected before any computation started."""


class ExternalServiceUnavailable(BudgetPlannerError):
    """The weighting service failed, timed out, or answered with garbage.

    The distributor always recovers from this by switching to the local
    weighting strategy; it never reaches callers of ``distribute``.
    """


class PersistenceError(BudgetPlannerError):
    """Reading or writing the daily budget history failed."""


def require_finite(name: str, value: Any, *, allow_negative: bool = False) -> float:
    """Return ``value`` as a float or raise :class:`ValidationError`."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    if not allow_negative and value < 0:
        raise ValidationError(f"{name} must not be negative, got {value!r}")
    return float(value)


def require_start_day(value: Any) -> int:
    """Validate a financial-month start day (1-31)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"financial month start day must be an integer, got {value!r}")
    if not 1 <= value <= 31:
        raise ValidationError(f"financial month start day must be between 1 and 31, got {value}")
    return value
