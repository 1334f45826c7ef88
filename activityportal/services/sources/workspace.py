from __future__ import annotations

from typing import Any

from activityportal.domain.activity import (
    ACTION_DOCUMENT_CREATE,
    ACTION_DOCUMENT_UPDATE,
    ACTION_INTEGRATION_CONNECT,
    ACTION_INTEGRATION_UPDATE,
    ACTION_TASK_CREATE,
    ACTION_TASK_UPDATE,
    ACTION_TEST_CREATE,
    ACTION_TEST_UPDATE,
    ENTITY_DOCUMENT,
    ENTITY_INTEGRATION,
    ENTITY_TASK,
    ENTITY_TEST,
    Activity,
    as_utc,
    epoch_millis,
)
from activityportal.services.identity import assign
from activityportal.services.sources.base import SourceAdapter, full_name, text_or_none, updated_condition, was_updated


class OwnedRecordSource(SourceAdapter):
    """Workspace records that project a create event and, once edited, an update event.

    Subclasses select ``id``, ``label``, ``created_at``, ``updated_at``,
    ``owner_id``, ``organization_id`` plus owner/organization columns, and
    contribute record-specific metadata through ``describe``.
    """

    entity_type: str = ""
    create_action: str = ""
    update_action: str = ""
    record_kind: str = ""
    activities_per_row = 2

    def describe(self, row: dict[str, Any]) -> dict[str, Any]:
        return {}

    def project(self, row: dict[str, Any]) -> list[Activity]:
        record_id = text_or_none(row["id"])
        created_at = as_utc(row["created_at"])
        updated_at = as_utc(row.get("updated_at"))
        owner_name = full_name(row.get("first_name"), row.get("last_name"))
        label = row.get("label")
        kind = self.record_kind
        common = {
            "entity_type": self.entity_type,
            "entity_id": record_id,
            "entity_name": label,
            "actor_id": text_or_none(row.get("owner_id")),
            "actor_email": row.get("owner_email"),
            "actor_name": owner_name,
            "tenant_id": text_or_none(row.get("organization_id")),
            "organization_name": row.get("organization_name"),
        }
        details = self.describe(row)
        activities = [
            Activity(
                id=assign(self.name, record_id, "create"),
                timestamp=created_at,
                action=self.create_action,
                metadata={
                    **details,
                    "type": f"{kind}_creation",
                    "event": f"New {kind} created",
                },
                **common,
            )
        ]
        if was_updated(created_at, updated_at):
            activities.append(
                Activity(
                    id=assign(self.name, record_id, "update", epoch_millis(updated_at)),
                    timestamp=updated_at,
                    action=self.update_action,
                    metadata={
                        **details,
                        "type": f"{kind}_update",
                        "event": f"{kind.capitalize()} updated",
                    },
                    **common,
                )
            )
        return activities


def _owned_columns(alias: str, owner_column: str) -> str:
    return (
        f'{alias}."createdAt" AS created_at, {alias}."updatedAt" AS updated_at, '
        f'{alias}."{owner_column}" AS owner_id, {alias}."organizationId" AS organization_id, '
        'u.email AS owner_email, u."firstName" AS first_name, u."lastName" AS last_name, '
        "o.name AS organization_name"
    )


def _owned_joins(table: str, alias: str, owner_column: str) -> str:
    return (
        f'public."{table}" {alias} '
        f'LEFT JOIN public.users u ON {alias}."{owner_column}" = u.id '
        f'LEFT JOIN public."Organization" o ON {alias}."organizationId" = o.id'
    )


class TaskSource(OwnedRecordSource):
    name = "tasks"
    select_sql = f't.id, t.name AS label, t.status, t."assignedToId" AS assigned_to_id, {_owned_columns("t", "ownerId")}'
    from_sql = _owned_joins("Task", "t", "ownerId")
    id_column = "t.id"
    order_column = 't."createdAt"'
    earliest_column = 't."createdAt"'
    latest_column = 'COALESCE(t."updatedAt", t."createdAt")'
    tenant_column = 't."organizationId"'
    base_conditions = ('t."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_type = ENTITY_TASK
    entity_types = frozenset({ENTITY_TASK})
    create_action = ACTION_TASK_CREATE
    update_action = ACTION_TASK_UPDATE
    action_conditions = {ACTION_TASK_UPDATE: updated_condition("t")}
    actions = frozenset({ACTION_TASK_CREATE, ACTION_TASK_UPDATE})
    record_kind = "task"

    def describe(self, row: dict[str, Any]) -> dict[str, Any]:
        return {
            "task_name": row.get("label"),
            "status": row.get("status"),
            "assigned_to": text_or_none(row.get("assigned_to_id")),
        }


class DocumentSource(OwnedRecordSource):
    name = "documents"
    select_sql = f'd.id, d.name AS label, d.type AS document_type, d.status, {_owned_columns("d", "ownerId")}'
    from_sql = _owned_joins("Document", "d", "ownerId")
    id_column = "d.id"
    order_column = 'd."createdAt"'
    earliest_column = 'd."createdAt"'
    latest_column = 'COALESCE(d."updatedAt", d."createdAt")'
    tenant_column = 'd."organizationId"'
    base_conditions = ('d."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_type = ENTITY_DOCUMENT
    entity_types = frozenset({ENTITY_DOCUMENT})
    create_action = ACTION_DOCUMENT_CREATE
    update_action = ACTION_DOCUMENT_UPDATE
    action_conditions = {ACTION_DOCUMENT_UPDATE: updated_condition("d")}
    actions = frozenset({ACTION_DOCUMENT_CREATE, ACTION_DOCUMENT_UPDATE})
    record_kind = "document"

    def describe(self, row: dict[str, Any]) -> dict[str, Any]:
        return {
            "document_name": row.get("label"),
            "document_type": row.get("document_type"),
            "status": row.get("status"),
        }


class IntegrationSource(OwnedRecordSource):
    name = "integrations"
    select_sql = f'ic.id, ic."integrationId" AS label, ic.status, {_owned_columns("ic", "userId")}'
    from_sql = _owned_joins("IntegrationConnection", "ic", "userId")
    id_column = "ic.id"
    order_column = 'ic."createdAt"'
    earliest_column = 'ic."createdAt"'
    latest_column = 'COALESCE(ic."updatedAt", ic."createdAt")'
    tenant_column = 'ic."organizationId"'
    base_conditions = ('ic."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_type = ENTITY_INTEGRATION
    entity_types = frozenset({ENTITY_INTEGRATION})
    create_action = ACTION_INTEGRATION_CONNECT
    update_action = ACTION_INTEGRATION_UPDATE
    action_conditions = {ACTION_INTEGRATION_UPDATE: updated_condition("ic")}
    actions = frozenset({ACTION_INTEGRATION_CONNECT, ACTION_INTEGRATION_UPDATE})
    record_kind = "integration"

    def describe(self, row: dict[str, Any]) -> dict[str, Any]:
        return {"integration_id": row.get("label"), "status": row.get("status")}


class SecurityTestSource(OwnedRecordSource):
    name = "test_cases"
    select_sql = f'tc.id, tc.name AS label, tc.description, tc.status, {_owned_columns("tc", "ownerId")}'
    from_sql = _owned_joins("TestCase", "tc", "ownerId")
    id_column = "tc.id"
    order_column = 'tc."createdAt"'
    earliest_column = 'tc."createdAt"'
    latest_column = 'COALESCE(tc."updatedAt", tc."createdAt")'
    tenant_column = 'tc."organizationId"'
    base_conditions = ('tc."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_type = ENTITY_TEST
    entity_types = frozenset({ENTITY_TEST})
    create_action = ACTION_TEST_CREATE
    update_action = ACTION_TEST_UPDATE
    action_conditions = {ACTION_TEST_UPDATE: updated_condition("tc")}
    actions = frozenset({ACTION_TEST_CREATE, ACTION_TEST_UPDATE})
    record_kind = "test"

    def describe(self, row: dict[str, Any]) -> dict[str, Any]:
        return {"test_name": row.get("label"), "description": row.get("description"), "status": row.get("status")}
