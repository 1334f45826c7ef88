from __future__ import annotations

import pytest

from activityportal.services.identity import SyntheticId, assign, parse


def test_assign_is_deterministic() -> None:
    first = assign("vendors", "42", "create")
    second = assign("vendors", "42", "create")

    assert first == second == "vendors-create-42"


def test_assign_with_suffix() -> None:
    assert assign("tasks", 7, "update", 1767225600000) == "tasks-update-7@1767225600000"


def test_parse_round_trips_uuid_origin_ids() -> None:
    origin = "3f2b8c1e-9d4a-4f7e-8a61-0c5d2e9b7a10"
    identifier = assign("vendor_assessments", origin, "scan_completed")

    parsed = parse(identifier)
    assert parsed == SyntheticId("vendor_assessments", "scan_completed", origin)
    assert str(parsed) == identifier


def test_parse_keeps_suffix() -> None:
    parsed = parse("documents-update-abc@1700000000000")
    assert parsed is not None
    assert parsed.origin_id == "abc"
    assert parsed.suffix == "1700000000000"


@pytest.mark.parametrize("identifier", ["", "vendors", "vendors-create", "Vendors-create-1", "vendors-create-1@"])
def test_parse_rejects_malformed(identifier: str) -> None:
    assert parse(identifier) is None


def test_assign_rejects_invalid_names() -> None:
    with pytest.raises(ValueError):
        assign("bad-source", "1", "create")
    with pytest.raises(ValueError):
        assign("vendors", "1", "Create")
