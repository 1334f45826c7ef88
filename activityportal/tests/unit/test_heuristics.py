from __future__ import annotations

from datetime import datetime, timedelta, timezone

from activityportal.services.heuristics import (
    LoginAttempt,
    delta_pct,
    estimate_session_minutes,
    ratio_pct,
    risk_level,
    risk_score,
    round_half_up,
    share_pct,
    vendor_risk_band,
)


def test_delta_law() -> None:
    assert delta_pct(0, 0) == 0
    assert delta_pct(10, 0) == 100
    assert delta_pct(50, 100) == -50
    assert delta_pct(150, 100) == 50
    assert delta_pct("3", None) == 100


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(2.4) == 2


def test_ratios() -> None:
    assert ratio_pct(1, 3) == 33
    assert ratio_pct(2, 3) == 67
    assert ratio_pct(5, 0) == 0
    assert share_pct(1, 3) == 33.3
    assert share_pct(1, 0) == 0.0


def test_risk_score_and_level() -> None:
    assert risk_score(high_risk_vendors=0, high_risk_tasks=0, high_severity_events=0, failed_logins=0) == 100
    score = risk_score(high_risk_vendors=1, high_risk_tasks=2, high_severity_events=1, failed_logins=5)
    assert score == 100 - 10 - 10 - 15 - 10
    assert risk_level(score) == "High"
    assert risk_score(high_risk_vendors=20, high_risk_tasks=0, high_severity_events=0, failed_logins=0) == 0
    assert risk_level(100) == "Low"
    assert risk_level(80) == "Low"
    assert risk_level(40) == "High"
    assert risk_level(39) == "Critical"


def test_vendor_risk_band() -> None:
    assert vendor_risk_band(None) == "not_assessed"
    assert vendor_risk_band(80) == "low"
    assert vendor_risk_band(79.9) == "medium"
    assert vendor_risk_band(45) == "high"
    assert vendor_risk_band(12) == "critical"


def test_session_estimates() -> None:
    start = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    attempts = [
        LoginAttempt(start, True),
        LoginAttempt(start + timedelta(minutes=30), False),
        LoginAttempt(start + timedelta(minutes=45), True),
        LoginAttempt(start + timedelta(hours=20), True),
    ]

    minutes = estimate_session_minutes(attempts, default_minutes=120, max_minutes=480)
    assert minutes == [30, 0, 480, 120]


def test_session_estimate_default_is_capped() -> None:
    attempt = LoginAttempt(datetime(2026, 3, 1, tzinfo=timezone.utc), True)
    assert estimate_session_minutes([attempt], default_minutes=600, max_minutes=480) == [480]
    assert estimate_session_minutes([], default_minutes=120, max_minutes=480) == []
