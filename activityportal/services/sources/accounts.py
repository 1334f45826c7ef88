from __future__ import annotations

from typing import Any

from activityportal.domain.activity import (
    ACTION_ORGANIZATION_CREATE,
    ACTION_SECURITY_LOGIN_FAILED,
    ACTION_USER_CREATE,
    ACTION_USER_LOGIN,
    ENTITY_ORGANIZATION,
    ENTITY_USER,
    Activity,
    as_utc,
)
from activityportal.services.identity import assign
from activityportal.services.sources.base import SourceAdapter, full_name, text_or_none


LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_ACTIONS = (LOGIN_SUCCESS, "LOGIN_FAILED_INVALID_PASSWORD", "LOGIN_FAILED_USER_NOT_FOUND")
LOGIN_DESCRIPTIONS = {
    "LOGIN_SUCCESS": "User logged in successfully",
    "LOGIN_FAILED_INVALID_PASSWORD": "Login failed - invalid password",
    "LOGIN_FAILED_USER_NOT_FOUND": "Login failed - user not found",
}
LOGIN_ACTIONS_SQL = ", ".join(f"'{action}'" for action in LOGIN_ACTIONS)


class SecurityLogSource(SourceAdapter):
    name = "security_log"
    select_sql = (
        'sl.id, sl.email, sl.action, sl."ipAddress" AS ip, sl."userAgent" AS user_agent, '
        'sl."createdAt" AS created_at, sl.details, sl.severity, u.id AS user_id, '
        'u."firstName" AS first_name, u."lastName" AS last_name, '
        'u."currentOrganizationId" AS tenant_id, o.name AS organization_name'
    )
    from_sql = (
        'public."SecurityLog" sl '
        "LEFT JOIN public.users u ON sl.email = u.email "
        'LEFT JOIN public."Organization" o ON u."currentOrganizationId" = o.id'
    )
    id_column = "sl.id"
    order_column = 'sl."createdAt"'
    tenant_column = 'u."currentOrganizationId"'
    base_conditions = (f"sl.action IN ({LOGIN_ACTIONS_SQL})",)
    default_limit = 50
    entity_types = frozenset({ENTITY_USER})
    actions = frozenset({ACTION_USER_LOGIN, ACTION_SECURITY_LOGIN_FAILED})
    action_conditions = {
        ACTION_USER_LOGIN: f"sl.action = '{LOGIN_SUCCESS}'",
        ACTION_SECURITY_LOGIN_FAILED: f"sl.action <> '{LOGIN_SUCCESS}'",
    }

    def project(self, row: dict[str, Any]) -> list[Activity]:
        raw_action = row.get("action") or ""
        succeeded = raw_action == LOGIN_SUCCESS
        email = row.get("email")
        subtype = "login" if succeeded else "login_failed"
        return [
            Activity(
                id=assign(self.name, row["id"], subtype),
                timestamp=as_utc(row["created_at"]),
                action=ACTION_USER_LOGIN if succeeded else ACTION_SECURITY_LOGIN_FAILED,
                entity_type=ENTITY_USER,
                entity_id=email,
                entity_name=email,
                actor_id=text_or_none(row.get("user_id")),
                actor_email=email,
                actor_name=full_name(row.get("first_name"), row.get("last_name")) or email,
                tenant_id=text_or_none(row.get("tenant_id")),
                organization_name=row.get("organization_name"),
                metadata={
                    "action_type": raw_action,
                    "description": LOGIN_DESCRIPTIONS.get(raw_action, "Login activity"),
                    "severity": row.get("severity"),
                    "details": row.get("details"),
                    "type": "user_login",
                    "event": LOGIN_DESCRIPTIONS.get(raw_action, "Login activity"),
                },
                ip=row.get("ip"),
                user_agent=row.get("user_agent"),
            )
        ]


class UserSignupSource(SourceAdapter):
    name = "users"
    select_sql = (
        'u.id AS user_id, u."currentOrganizationId" AS tenant_id, u.email, '
        'u."firstName" AS first_name, u."lastName" AS last_name, u."createdAt" AS created_at, '
        'u."authProvider" AS auth_provider, u."isEmailVerified" AS email_verified, '
        "o.name AS organization_name"
    )
    from_sql = 'public.users u LEFT JOIN public."Organization" o ON u."currentOrganizationId" = o.id'
    id_column = "u.id"
    order_column = 'u."createdAt"'
    tenant_column = 'u."currentOrganizationId"'
    base_conditions = ('u."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_types = frozenset({ENTITY_USER})
    actions = frozenset({ACTION_USER_CREATE})

    def project(self, row: dict[str, Any]) -> list[Activity]:
        user_id = text_or_none(row["user_id"])
        email = row.get("email")
        name = full_name(row.get("first_name"), row.get("last_name"))
        return [
            Activity(
                id=assign(self.name, user_id, "signup"),
                timestamp=as_utc(row["created_at"]),
                action=ACTION_USER_CREATE,
                entity_type=ENTITY_USER,
                entity_id=user_id,
                entity_name=name or email,
                actor_id=user_id,
                actor_email=email,
                actor_name=name,
                tenant_id=text_or_none(row.get("tenant_id")),
                organization_name=row.get("organization_name"),
                metadata={
                    "email": email,
                    "organization": row.get("organization_name"),
                    "auth_provider": row.get("auth_provider"),
                    "email_verified": row.get("email_verified"),
                    "type": "user_signup",
                    "event": "New user account created",
                },
            )
        ]


class OrganizationSource(SourceAdapter):
    name = "organizations"
    select_sql = (
        'o.id, o.name AS org_name, o."createdAt" AS created_at, o."ownerId" AS owner_id, '
        'u.email AS owner_email, u."firstName" AS first_name, u."lastName" AS last_name, '
        'o.country, o."employeeCount" AS employee_count'
    )
    from_sql = 'public."Organization" o LEFT JOIN public.users u ON o."ownerId" = u.id'
    id_column = "o.id"
    order_column = 'o."createdAt"'
    tenant_column = "o.id"
    base_conditions = ('o."createdAt" IS NOT NULL',)
    default_limit = 50
    entity_types = frozenset({ENTITY_ORGANIZATION})
    actions = frozenset({ACTION_ORGANIZATION_CREATE})

    def project(self, row: dict[str, Any]) -> list[Activity]:
        org_id = text_or_none(row["id"])
        owner_name = full_name(row.get("first_name"), row.get("last_name"))
        return [
            Activity(
                id=assign(self.name, org_id, "create"),
                timestamp=as_utc(row["created_at"]),
                action=ACTION_ORGANIZATION_CREATE,
                entity_type=ENTITY_ORGANIZATION,
                entity_id=org_id,
                entity_name=row.get("org_name"),
                actor_id=text_or_none(row.get("owner_id")),
                actor_email=row.get("owner_email"),
                actor_name=owner_name,
                tenant_id=org_id,
                organization_name=row.get("org_name"),
                metadata={
                    "organization_name": row.get("org_name"),
                    "country": row.get("country"),
                    "employee_count": row.get("employee_count"),
                    "created_by": owner_name,
                    "type": "organization_creation",
                    "event": "New organization created",
                },
            )
        ]
