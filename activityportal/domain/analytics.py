from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from activityportal.domain.activity import as_utc


Granularity = Literal["hour", "day"]


@dataclass(frozen=True)
class MetricWindow:
    # Half-open [start, end) interval used by every KPI query.
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end < self.start:
            raise ValueError("window end precedes start")

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> "MetricWindow":
        # Equal-length window ending exactly where this one starts.
        return MetricWindow(start=self.start - self.length, end=self.start)

    @classmethod
    def trailing(cls, *, days: int, now: datetime) -> "MetricWindow":
        return cls(start=now - timedelta(days=days), end=now)


@dataclass(frozen=True)
class KPIResult:
    current_count: int
    previous_count: int
    delta_pct: int
    breakdown: dict[str, "KPIResult"] = field(default_factory=dict)
    derived: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RiskProfile:
    risk_score: int
    risk_level: str
    avg_vendor_score: int
    high_risk_vendors: int
    high_risk_tasks: int
    high_severity_events: int
    failed_logins: int


@dataclass(frozen=True)
class LoginSession:
    timestamp: datetime
    action: str
    ip: str | None
    user_agent: str | None
    session_minutes: int


@dataclass(frozen=True)
class Journey:
    # Per-actor composite; sub-results degrade to empty defaults independently.
    profile: dict[str, Any]
    login_sessions: list[LoginSession]
    activity_timeline: list[dict[str, Any]]
    vendor_journey: dict[str, Any]
    task_journey: dict[str, Any]
    document_journey: dict[str, Any]
    security_journey: dict[str, Any]
    feature_usage: dict[str, Any]
    risk_profile: RiskProfile
    window: MetricWindow

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
