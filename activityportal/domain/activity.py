from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


# Closed action taxonomy for reconstructed activities.
ACTION_USER_LOGIN = "user.login"
ACTION_USER_LOGOUT = "user.logout"
ACTION_USER_CREATE = "user.create"
ACTION_USER_UPDATE = "user.update"
ACTION_USER_DELETE = "user.delete"
ACTION_ORGANIZATION_CREATE = "organization.create"
ACTION_VENDOR_CREATE = "vendor.create"
ACTION_VENDOR_UPDATE = "vendor.update"
ACTION_VENDOR_DELETE = "vendor.delete"
ACTION_VENDOR_ASSIGN = "vendor.assign"
ACTION_VENDOR_VIEW = "vendor.view"
ACTION_VENDOR_ASSESSMENT_INITIATED = "vendor.security_assessment_initiated"
ACTION_SCORE_VIEW = "score.view"
ACTION_SCORE_UPDATE = "score.update"
ACTION_INTEGRATION_CONNECT = "integration.connect"
ACTION_INTEGRATION_UPDATE = "integration.update"
ACTION_INTEGRATION_REMOVE = "integration.remove"
ACTION_INTEGRATION_TEST = "integration.test"
ACTION_TASK_CREATE = "task.create"
ACTION_TASK_UPDATE = "task.update"
ACTION_TASK_DELETE = "task.delete"
ACTION_DOCUMENT_CREATE = "document.create"
ACTION_DOCUMENT_UPDATE = "document.update"
ACTION_TEST_CREATE = "test.create"
ACTION_TEST_UPDATE = "test.update"
ACTION_TEST_DELETE = "test.delete"
ACTION_TEST_EXECUTE = "test.execute"
ACTION_SETTINGS_UPDATE = "settings.update"
ACTION_REPORT_EXPORT = "report.export"
ACTION_REPORT_GENERATE = "report.generate"
ACTION_GENERAL_VIEW = "general.view"
ACTION_GENERAL_SEARCH = "general.search"
ACTION_SECURITY_LOGIN_FAILED = "security.login_failed"
ACTION_SECURITY_ACCESS_DENIED = "security.access_denied"
ACTION_SECURITY_PASSWORD_RESET = "security.password_reset"
ACTION_SECURITY_SCAN_COMPLETED = "security.scan_completed"
ACTION_SECURITY_SCAN_RESULT = "security.scan_result"

ACTIONS = frozenset(
    {
        ACTION_USER_LOGIN,
        ACTION_USER_LOGOUT,
        ACTION_USER_CREATE,
        ACTION_USER_UPDATE,
        ACTION_USER_DELETE,
        ACTION_ORGANIZATION_CREATE,
        ACTION_VENDOR_CREATE,
        ACTION_VENDOR_UPDATE,
        ACTION_VENDOR_DELETE,
        ACTION_VENDOR_ASSIGN,
        ACTION_VENDOR_VIEW,
        ACTION_VENDOR_ASSESSMENT_INITIATED,
        ACTION_SCORE_VIEW,
        ACTION_SCORE_UPDATE,
        ACTION_INTEGRATION_CONNECT,
        ACTION_INTEGRATION_UPDATE,
        ACTION_INTEGRATION_REMOVE,
        ACTION_INTEGRATION_TEST,
        ACTION_TASK_CREATE,
        ACTION_TASK_UPDATE,
        ACTION_TASK_DELETE,
        ACTION_DOCUMENT_CREATE,
        ACTION_DOCUMENT_UPDATE,
        ACTION_TEST_CREATE,
        ACTION_TEST_UPDATE,
        ACTION_TEST_DELETE,
        ACTION_TEST_EXECUTE,
        ACTION_SETTINGS_UPDATE,
        ACTION_REPORT_EXPORT,
        ACTION_REPORT_GENERATE,
        ACTION_GENERAL_VIEW,
        ACTION_GENERAL_SEARCH,
        ACTION_SECURITY_LOGIN_FAILED,
        ACTION_SECURITY_ACCESS_DENIED,
        ACTION_SECURITY_PASSWORD_RESET,
        ACTION_SECURITY_SCAN_COMPLETED,
        ACTION_SECURITY_SCAN_RESULT,
    }
)

ENTITY_USER = "user"
ENTITY_VENDOR = "vendor"
ENTITY_SCORE = "score"
ENTITY_INTEGRATION = "integration"
ENTITY_TASK = "task"
ENTITY_DOCUMENT = "document"
ENTITY_TEST = "test"
ENTITY_ORGANIZATION = "organization"
ENTITY_REPORT = "report"
ENTITY_SETTINGS = "settings"
ENTITY_SECURITY = "security"
ENTITY_GENERAL = "general"

ENTITY_TYPES = frozenset(
    {
        ENTITY_USER,
        ENTITY_VENDOR,
        ENTITY_SCORE,
        ENTITY_INTEGRATION,
        ENTITY_TASK,
        ENTITY_DOCUMENT,
        ENTITY_TEST,
        ENTITY_ORGANIZATION,
        ENTITY_REPORT,
        ENTITY_SETTINGS,
        ENTITY_SECURITY,
        ENTITY_GENERAL,
    }
)


def as_utc(value: datetime | None) -> datetime | None:
    # Source tables hold naive UTC timestamps; normalize everything to aware UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)  # type: ignore[union-attr]


@dataclass(frozen=True)
class Activity:
    # One reconstructed event; never persisted.
    id: str
    timestamp: datetime
    action: str
    entity_type: str
    entity_id: str | None = None
    entity_name: str | None = None
    actor_id: str | None = None
    actor_email: str | None = None
    actor_name: str | None = None
    tenant_id: str | None = None
    organization_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    ip: str | None = None
    user_agent: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


class ActivityFilters(BaseModel):
    # Query options for merged activity listings; unknown options are dropped.
    q: str | None = Field(default=None, max_length=255)
    actor_id: str | None = Field(default=None, validation_alias=AliasChoices("actor_id", "user_id"))
    actor_email: str | None = None
    tenant_id: str | None = Field(default=None, validation_alias=AliasChoices("tenant_id", "organization_id"))
    entity_type: str | None = None
    action: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("q", "actor_id", "actor_email", "tenant_id", "entity_type", "action", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # Treat empty strings as absent so they never reach a predicate.
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("date_from", "date_to")
    @classmethod
    def _normalize_dates(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def has_text_filters(self) -> bool:
        # Free text and actor filters cannot be estimated from row counts.
        return bool(self.q or self.actor_id or self.actor_email)


@dataclass(frozen=True)
class ActivityPage:
    data: list[Activity]
    total: int
    page: int
    limit: int
    total_pages: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "data": [item.as_dict() for item in self.data],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }
