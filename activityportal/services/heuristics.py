from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable


# Penalties subtracted from a perfect score of 100 per risk signal.
RISK_BASE_SCORE = 100
RISK_PENALTY_HIGH_RISK_VENDOR = 10
RISK_PENALTY_FAILED_TASK = 5
RISK_PENALTY_HIGH_SEVERITY_EVENT = 15
RISK_PENALTY_FAILED_LOGIN = 2

# Lower bounds for each risk level, checked in order.
RISK_LEVELS = (("Low", 80), ("Medium", 60), ("High", 40))
RISK_LEVEL_FLOOR = "Critical"

# Vendor security score below which a vendor counts as high risk.
HIGH_RISK_VENDOR_SCORE = 50

# Vendor score bands used for distributions and search filters.
VENDOR_RISK_BANDS = (("low", 80), ("medium", 60), ("high", 40))
VENDOR_RISK_FLOOR = "critical"
VENDOR_NOT_ASSESSED = "not_assessed"


def delta_pct(current: Any, previous: Any) -> int:
    # Percent change vs the previous window; a rise from zero reads as +100.
    curr = _as_int(current)
    prev = _as_int(previous)
    if prev == 0:
        return 100 if curr > 0 else 0
    return round_half_up((curr - prev) / prev * 100)


def ratio_pct(part: Any, whole: Any) -> int:
    whole_value = _as_int(whole)
    if whole_value <= 0:
        return 0
    return round_half_up(_as_int(part) / whole_value * 100)


def share_pct(part: int, whole: int, *, digits: int = 1) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, digits)


def risk_score(
    *,
    high_risk_vendors: int,
    high_risk_tasks: int,
    high_severity_events: int,
    failed_logins: int,
) -> int:
    score = (
        RISK_BASE_SCORE
        - RISK_PENALTY_HIGH_RISK_VENDOR * high_risk_vendors
        - RISK_PENALTY_FAILED_TASK * high_risk_tasks
        - RISK_PENALTY_HIGH_SEVERITY_EVENT * high_severity_events
        - RISK_PENALTY_FAILED_LOGIN * failed_logins
    )
    return max(0, min(RISK_BASE_SCORE, score))


def risk_level(score: int) -> str:
    for level, floor in RISK_LEVELS:
        if score >= floor:
            return level
    return RISK_LEVEL_FLOOR


def vendor_risk_band(score: Any) -> str:
    if score is None:
        return VENDOR_NOT_ASSESSED
    value = float(score)
    for band, floor in VENDOR_RISK_BANDS:
        if value >= floor:
            return band
    return VENDOR_RISK_FLOOR


@dataclass(frozen=True)
class LoginAttempt:
    timestamp: datetime
    succeeded: bool


def estimate_session_minutes(
    attempts: Iterable[LoginAttempt],
    *,
    default_minutes: int,
    max_minutes: int,
) -> list[int]:
    """Estimate a session length for each login attempt.

    Attempts are taken in chronological order. A successful login lasts until
    the next attempt of any kind, capped at ``max_minutes``; the final login
    has no successor and gets ``default_minutes`` (also capped). Failed
    attempts never open a session.
    """
    ordered = list(attempts)
    minutes: list[int] = []
    for index, attempt in enumerate(ordered):
        if not attempt.succeeded:
            minutes.append(0)
            continue
        if index + 1 < len(ordered):
            gap = (ordered[index + 1].timestamp - attempt.timestamp).total_seconds() / 60
            estimate = max(0, round_half_up(gap))
        else:
            estimate = default_minutes
        minutes.append(min(estimate, max_minutes))
    return minutes


def round_half_up(value: float) -> int:
    # Halves round toward +infinity (2.5 -> 3, -2.5 -> -2).
    return math.floor(value + 0.5)


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0
