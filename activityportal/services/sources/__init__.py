from __future__ import annotations

# Re-export source adapters and the registry used by the merger.

from activityportal.services.sources.accounts import OrganizationSource, SecurityLogSource, UserSignupSource
from activityportal.services.sources.base import SourceAdapter, SourceSlice
from activityportal.services.sources.vendors import (
    AssessmentHistorySource,
    VendorAssessmentSource,
    VendorAssignmentSource,
    VendorSource,
)
from activityportal.services.sources.workspace import (
    DocumentSource,
    IntegrationSource,
    OwnedRecordSource,
    SecurityTestSource,
    TaskSource,
)


def default_sources() -> list[SourceAdapter]:
    # Fresh adapter instances in a stable order.
    return [
        SecurityLogSource(),
        UserSignupSource(),
        OrganizationSource(),
        VendorSource(),
        VendorAssignmentSource(),
        VendorAssessmentSource(),
        AssessmentHistorySource(),
        TaskSource(),
        DocumentSource(),
        IntegrationSource(),
        SecurityTestSource(),
    ]


def source_by_name(name: str, sources: list[SourceAdapter] | None = None) -> SourceAdapter | None:
    for source in sources or default_sources():
        if source.name == name:
            return source
    return None


__all__ = [
    "AssessmentHistorySource",
    "DocumentSource",
    "IntegrationSource",
    "OrganizationSource",
    "OwnedRecordSource",
    "SecurityLogSource",
    "SecurityTestSource",
    "SourceAdapter",
    "SourceSlice",
    "TaskSource",
    "UserSignupSource",
    "VendorAssessmentSource",
    "VendorAssignmentSource",
    "VendorSource",
    "default_sources",
    "source_by_name",
]
