from __future__ import annotations

from typing import Any

from activityportal.domain.activity import (
    ACTION_SECURITY_SCAN_COMPLETED,
    ACTION_SECURITY_SCAN_RESULT,
    ACTION_VENDOR_ASSESSMENT_INITIATED,
    ACTION_VENDOR_ASSIGN,
    ACTION_VENDOR_CREATE,
    ACTION_VENDOR_DELETE,
    ACTION_VENDOR_UPDATE,
    ENTITY_VENDOR,
    Activity,
    as_utc,
    epoch_millis,
)
from activityportal.services.identity import assign
from activityportal.services.sources.base import SourceAdapter, full_name, text_or_none, updated_condition, was_updated


SCANNER_NAME = "Automated Security System"

# First organization that tracks an assessed vendor; keeps one row per vendor.
_ASSIGNMENT_LATERAL = (
    "LEFT JOIN LATERAL ("
    'SELECT voo."organizationId" FROM public."VendorOnOrganization" voo '
    'WHERE voo."vendorId" = va.id ORDER BY voo."createdAt" ASC LIMIT 1'
    ") assignment ON TRUE "
    'LEFT JOIN public."Organization" o ON assignment."organizationId" = o.id'
)


class VendorSource(SourceAdapter):
    name = "vendors"
    select_sql = (
        'v.id, v.name, v.url, v.country, v."createdAt" AS created_at, v."updatedAt" AS updated_at, '
        'v."reviewStatus" AS review_status, v."isActive" AS is_active, v."ownerId" AS owner_id, '
        'v."organizationId" AS organization_id, u.email AS owner_email, '
        'u."firstName" AS first_name, u."lastName" AS last_name, o.name AS organization_name, '
        'v."contractStartDate" AS contract_start, v."contractEndDate" AS contract_end, '
        'v."servicesProvided" AS services_provided'
    )
    from_sql = (
        'public."Vendor" v '
        'LEFT JOIN public.users u ON v."ownerId" = u.id '
        'LEFT JOIN public."Organization" o ON v."organizationId" = o.id'
    )
    id_column = "v.id"
    order_column = 'v."createdAt"'
    earliest_column = 'v."createdAt"'
    latest_column = 'COALESCE(v."updatedAt", v."createdAt")'
    tenant_column = 'v."organizationId"'
    base_conditions = ('v."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_types = frozenset({ENTITY_VENDOR})
    actions = frozenset({ACTION_VENDOR_CREATE, ACTION_VENDOR_UPDATE, ACTION_VENDOR_DELETE})
    activities_per_row = 2
    action_conditions = {
        ACTION_VENDOR_UPDATE: updated_condition("v"),
        ACTION_VENDOR_DELETE: 'v."isActive" = false',
    }

    def project(self, row: dict[str, Any]) -> list[Activity]:
        vendor_id = text_or_none(row["id"])
        created_at = as_utc(row["created_at"])
        updated_at = as_utc(row.get("updated_at"))
        owner_name = full_name(row.get("first_name"), row.get("last_name"))
        common = {
            "entity_type": ENTITY_VENDOR,
            "entity_id": vendor_id,
            "entity_name": row.get("name"),
            "actor_id": text_or_none(row.get("owner_id")),
            "actor_email": row.get("owner_email"),
            "actor_name": owner_name,
            "tenant_id": text_or_none(row.get("organization_id")),
            "organization_name": row.get("organization_name"),
        }
        activities = [
            Activity(
                id=assign(self.name, vendor_id, "create"),
                timestamp=created_at,
                action=ACTION_VENDOR_CREATE,
                metadata={
                    "vendor_name": row.get("name"),
                    "vendor_url": row.get("url"),
                    "country": row.get("country"),
                    "services_provided": row.get("services_provided"),
                    "contract_start": row.get("contract_start"),
                    "contract_end": row.get("contract_end"),
                    "review_status": row.get("review_status"),
                    "created_by": owner_name,
                    "organization": row.get("organization_name"),
                    "type": "vendor_creation",
                    "event": "New vendor added to portfolio",
                },
                **common,
            )
        ]
        if was_updated(created_at, updated_at):
            activities.append(
                Activity(
                    id=assign(self.name, vendor_id, "update", epoch_millis(updated_at)),
                    timestamp=updated_at,
                    action=ACTION_VENDOR_UPDATE,
                    metadata={
                        "vendor_name": row.get("name"),
                        "vendor_url": row.get("url"),
                        "review_status": row.get("review_status"),
                        "is_active": row.get("is_active"),
                        "updated_by": owner_name,
                        "organization": row.get("organization_name"),
                        "type": "vendor_update",
                        "event": "Vendor information updated",
                    },
                    **common,
                )
            )
        if row.get("is_active") is False:
            activities.append(
                Activity(
                    id=assign(self.name, vendor_id, "delete"),
                    timestamp=updated_at or created_at,
                    action=ACTION_VENDOR_DELETE,
                    metadata={
                        "vendor_name": row.get("name"),
                        "vendor_url": row.get("url"),
                        "deleted_by": owner_name,
                        "organization": row.get("organization_name"),
                        "type": "vendor_deletion",
                        "event": "Vendor removed from portfolio",
                    },
                    **common,
                )
            )
        return activities


class VendorAssignmentSource(SourceAdapter):
    name = "vendor_assignments"
    select_sql = (
        'voo.id, voo."vendorId" AS vendor_id, voo."organizationId" AS organization_id, '
        'voo."createdAt" AS created_at, va.name AS vendor_name, va.domain AS vendor_domain, '
        "va.score AS vendor_score, va.grade AS vendor_grade, o.name AS organization_name, "
        'u.id AS user_id, u.email AS user_email, u."firstName" AS first_name, u."lastName" AS last_name'
    )
    # The organization owner stands in for the unrecorded assigning user.
    from_sql = (
        'public."VendorOnOrganization" voo '
        'LEFT JOIN public."VendorAPI" va ON voo."vendorId" = va.id '
        'LEFT JOIN public."Organization" o ON voo."organizationId" = o.id '
        'LEFT JOIN public.users u ON o."ownerId" = u.id'
    )
    id_column = "voo.id"
    order_column = 'voo."createdAt"'
    tenant_column = 'voo."organizationId"'
    base_conditions = ('voo."createdAt" IS NOT NULL',)
    default_limit = 100
    entity_types = frozenset({ENTITY_VENDOR})
    actions = frozenset({ACTION_VENDOR_ASSIGN})

    def project(self, row: dict[str, Any]) -> list[Activity]:
        vendor_label = row.get("vendor_name") or row.get("vendor_domain")
        user_name = full_name(row.get("first_name"), row.get("last_name"))
        return [
            Activity(
                id=assign(self.name, row["id"], "assign"),
                timestamp=as_utc(row["created_at"]),
                action=ACTION_VENDOR_ASSIGN,
                entity_type=ENTITY_VENDOR,
                entity_id=text_or_none(row.get("vendor_id")),
                entity_name=vendor_label,
                actor_id=text_or_none(row.get("user_id")),
                actor_email=row.get("user_email"),
                actor_name=user_name,
                tenant_id=text_or_none(row.get("organization_id")),
                organization_name=row.get("organization_name"),
                metadata={
                    "vendor_name": row.get("vendor_name"),
                    "vendor_domain": row.get("vendor_domain"),
                    "vendor_score": row.get("vendor_score"),
                    "vendor_grade": row.get("vendor_grade"),
                    "organization": row.get("organization_name"),
                    "assigned_by": user_name,
                    "type": "vendor_assignment",
                    "event": f"Added vendor {vendor_label} to organization portfolio for security tracking",
                },
            )
        ]


class VendorAssessmentSource(SourceAdapter):
    name = "vendor_assessments"
    select_sql = (
        "va.id, va.name, va.domain, va.score, va.grade, va.status, "
        'va."lastAssessmentDate" AS last_assessment_date, va."lastSecurityScan" AS last_security_scan, '
        'va."createdAt" AS created_at, assignment."organizationId" AS organization_id, '
        "o.name AS organization_name"
    )
    from_sql = f'public."VendorAPI" va {_ASSIGNMENT_LATERAL}'
    id_column = "va.id"
    order_column = 'va."lastSecurityScan"'
    earliest_column = 'LEAST(va."createdAt", va."lastSecurityScan")'
    latest_column = 'GREATEST(va."createdAt", va."lastSecurityScan")'
    tenant_column = 'assignment."organizationId"'
    base_conditions = ('va."lastSecurityScan" IS NOT NULL',)
    default_limit = 100
    entity_types = frozenset({ENTITY_VENDOR})
    actions = frozenset({ACTION_SECURITY_SCAN_COMPLETED, ACTION_VENDOR_ASSESSMENT_INITIATED})
    activities_per_row = 2
    action_conditions = {ACTION_VENDOR_ASSESSMENT_INITIATED: 'va."createdAt" IS NOT NULL'}

    def project(self, row: dict[str, Any]) -> list[Activity]:
        vendor_id = text_or_none(row["id"])
        # Scans are system-initiated and carry no actor.
        common = {
            "entity_type": ENTITY_VENDOR,
            "entity_id": vendor_id,
            "entity_name": row.get("name"),
            "tenant_id": text_or_none(row.get("organization_id")),
            "organization_name": row.get("organization_name"),
        }
        activities = [
            Activity(
                id=assign(self.name, vendor_id, "scan_completed"),
                timestamp=as_utc(row["last_security_scan"]),
                action=ACTION_SECURITY_SCAN_COMPLETED,
                metadata={
                    "vendor_name": row.get("name"),
                    "domain": row.get("domain"),
                    "security_score": row.get("score"),
                    "security_grade": row.get("grade"),
                    "scan_status": row.get("status"),
                    "last_scan_date": row.get("last_security_scan"),
                    "last_assessment_date": row.get("last_assessment_date"),
                    "organization": row.get("organization_name"),
                    "initiated_by": SCANNER_NAME,
                    "type": "security_scan_completed",
                    "event": "Security scan completed for vendor",
                },
                **common,
            )
        ]
        if row.get("created_at") is not None:
            activities.append(
                Activity(
                    id=assign(self.name, vendor_id, "assessment_initiated"),
                    timestamp=as_utc(row["created_at"]),
                    action=ACTION_VENDOR_ASSESSMENT_INITIATED,
                    metadata={
                        "vendor_name": row.get("name"),
                        "domain": row.get("domain"),
                        "organization": row.get("organization_name"),
                        "initiated_by": SCANNER_NAME,
                        "type": "vendor_security_onboarding",
                        "event": "Vendor added to security assessment portfolio",
                    },
                    **common,
                )
            )
        return activities


class AssessmentHistorySource(SourceAdapter):
    name = "assessment_history"
    select_sql = (
        'vh.id, vh."vendorAPIId" AS vendor_api_id, vh.score, vh.grade, vh."createdAt" AS created_at, '
        'va.name AS vendor_name, va.domain, assignment."organizationId" AS organization_id, '
        "o.name AS organization_name"
    )
    from_sql = (
        'public."VendorAPIHistory" vh '
        'LEFT JOIN public."VendorAPI" va ON vh."vendorAPIId" = va.id '
        f"{_ASSIGNMENT_LATERAL}"
    )
    id_column = "vh.id"
    order_column = 'vh."createdAt"'
    tenant_column = 'assignment."organizationId"'
    base_conditions = ('vh."createdAt" IS NOT NULL',)
    default_limit = 150
    entity_types = frozenset({ENTITY_VENDOR})
    actions = frozenset({ACTION_SECURITY_SCAN_RESULT})

    def project(self, row: dict[str, Any]) -> list[Activity]:
        return [
            Activity(
                id=assign(self.name, row["id"], "scan_result"),
                timestamp=as_utc(row["created_at"]),
                action=ACTION_SECURITY_SCAN_RESULT,
                entity_type=ENTITY_VENDOR,
                entity_id=text_or_none(row.get("vendor_api_id")),
                entity_name=row.get("vendor_name"),
                tenant_id=text_or_none(row.get("organization_id")),
                organization_name=row.get("organization_name"),
                metadata={
                    "vendor_name": row.get("vendor_name"),
                    "domain": row.get("domain"),
                    "security_score": row.get("score"),
                    "security_grade": row.get("grade"),
                    "scan_timestamp": row.get("created_at"),
                    "organization": row.get("organization_name"),
                    "initiated_by": SCANNER_NAME,
                    "type": "security_scan_result",
                    "event": f"Security scan result recorded - Grade: {row.get('grade')}, Score: {row.get('score')}",
                },
            )
        ]
