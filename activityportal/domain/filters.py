from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from activityportal.domain.activity import as_utc


RiskBand = Literal["low", "medium", "high", "critical", "not_assessed"]
ReviewStatus = Literal["completed", "in_progress", "not_started"]


class PageOptions(BaseModel):
    # Shared paging and sorting options; unknown options are dropped.
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=100)
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None

    model_config = {"extra": "ignore"}

    @field_validator("sort_by", mode="before")
    @classmethod
    def _blank_sort(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("sort_order", mode="before")
    @classmethod
    def _normalize_order(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class VendorSearchFilters(PageOptions):
    search: str | None = Field(default=None, max_length=255)
    risk_level: RiskBand | None = None
    organization_id: str | None = None
    review_status: ReviewStatus | None = None
    has_contract: bool | None = None
    min_score: float | None = Field(default=None, ge=0, le=100)
    max_score: float | None = Field(default=None, ge=0, le=100)
    added_by: str | None = None

    @field_validator("search", "organization_id", "added_by", "risk_level", "review_status", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TabFilters(PageOptions):
    """Options for the detailed per-source activity listings.

    Each listing reads only the options that apply to its table: ``success``
    for logins, ``status``/``framework`` for tasks, ``status``/``type`` for
    documents, ``grade``/``min_score`` for scans and audits, ``result`` for
    security tests.
    """

    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = Field(default=None, max_length=255)
    success: bool | None = None
    status: str | None = None
    framework: str | None = None
    type: str | None = None
    grade: str | None = None
    min_score: float | None = Field(default=None, ge=0, le=100)
    result: str | None = None

    @field_validator("search", "status", "framework", "type", "grade", "result", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("date_from", "date_to")
    @classmethod
    def _normalize_dates(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)
