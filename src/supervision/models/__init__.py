"""
Data models for the Supervision Visit Wizard.

This module contains data models for:
- Installation / NearbyInstallation / Coordinate: sites and position fixes
- Dotation / DotationGuard: expected guard roster
- GuardEvaluation: step 2 ratings
- Finding: compliance defects tracked across visits
- ChecklistItem / ChecklistResult / DocumentType / PhotoCategory: step 3-4 requirements
- CapturedPhoto: evidence, Local or Uploaded
- Visit: the aggregate root of one inspection
"""

from supervision.models.installation import Coordinate, Installation, NearbyInstallation
from supervision.models.dotation import Dotation, DotationGuard, DotationType, is_time_in_shift
from supervision.models.evaluation import GuardEvaluation
from supervision.models.finding import (
    Finding,
    FindingCategory,
    FindingSeverity,
    FindingStatus,
)
from supervision.models.checklist import (
    ChecklistItem,
    ChecklistResult,
    DocumentAnswer,
    DocumentType,
    InstallationRequirements,
    PhotoCategory,
    is_default_id,
)
from supervision.models.evidence import (
    CapturedPhoto,
    EvidenceKind,
    LocalEvidence,
    UploadedEvidence,
)
from supervision.models.visit import (
    ClientSurvey,
    InstallationState,
    LogbookEntry,
    Visit,
    VisitStatus,
    WizardStep,
)

__all__ = [
    "Coordinate",
    "Installation",
    "NearbyInstallation",
    "Dotation",
    "DotationGuard",
    "DotationType",
    "is_time_in_shift",
    "GuardEvaluation",
    "Finding",
    "FindingCategory",
    "FindingSeverity",
    "FindingStatus",
    "ChecklistItem",
    "ChecklistResult",
    "DocumentAnswer",
    "DocumentType",
    "InstallationRequirements",
    "PhotoCategory",
    "is_default_id",
    "CapturedPhoto",
    "EvidenceKind",
    "LocalEvidence",
    "UploadedEvidence",
    "ClientSurvey",
    "InstallationState",
    "LogbookEntry",
    "Visit",
    "VisitStatus",
    "WizardStep",
]
