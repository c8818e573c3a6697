"""
VisitDraft - the in-memory state of a visit being advanced through the wizard.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from supervision.models import (
    CapturedPhoto,
    ChecklistResult,
    ClientSurvey,
    Coordinate,
    DocumentAnswer,
    Dotation,
    EvidenceKind,
    Finding,
    GuardEvaluation,
    InstallationRequirements,
    InstallationState,
    LogbookEntry,
    NearbyInstallation,
    Visit,
    WizardStep,
)
from supervision.wizard.checklist_resolver import ComplianceBreakdown, compute_compliance


@dataclass
class VisitDraft:
    """
    Everything the operator has entered so far.

    Persisted fields mirror the server's Visit once check-in succeeds; the
    rest (local evidence, unsaved ratings) lives only here until its step is
    saved.
    """
    current_step: WizardStep = WizardStep.CHECK_IN
    max_reached_step: WizardStep = WizardStep.CHECK_IN
    visit: Optional[Visit] = None

    # Step 1
    location: Optional[Coordinate] = None
    candidates: List[NearbyInstallation] = field(default_factory=list)
    selection: Optional[NearbyInstallation] = None
    guards_found: Optional[int] = None
    geofence_override_reason: str = ""
    preview_dotation: Optional[Dotation] = None
    dotation: Optional[Dotation] = None

    # Step 2
    evaluations: List[GuardEvaluation] = field(default_factory=list)
    installation_state: InstallationState = InstallationState.NORMAL
    evaluations_saved: bool = False
    findings: List[Finding] = field(default_factory=list)

    # Step 3
    requirements: Optional[InstallationRequirements] = None
    checklist_results: Dict[str, ChecklistResult] = field(default_factory=dict)
    document_answers: Dict[str, DocumentAnswer] = field(default_factory=dict)
    logbook: LogbookEntry = field(default_factory=LogbookEntry)
    resolved_findings: List[Finding] = field(default_factory=list)

    # Step 4
    photos: List[CapturedPhoto] = field(default_factory=list)

    # Step 5
    general_comments: str = ""
    survey: ClientSurvey = field(default_factory=ClientSurvey)
    client_validation: Optional[CapturedPhoto] = None
    logbook_photo: Optional[CapturedPhoto] = None

    @property
    def visit_id(self) -> Optional[str]:
        return self.visit.id if self.visit else None

    @property
    def checked_in(self) -> bool:
        return self.visit is not None

    @property
    def is_closed(self) -> bool:
        return self.current_step == WizardStep.CLOSED

    @property
    def guards_expected(self) -> Optional[int]:
        """Frozen value after check-in; the live roster size before it."""
        if self.visit is not None:
            return self.visit.guards_expected
        if self.preview_dotation is not None:
            return self.preview_dotation.total_expected
        return None

    def compliance(self) -> ComplianceBreakdown:
        requirements = self.requirements or InstallationRequirements()
        return compute_compliance(
            requirements.checklist_items,
            self.checklist_results,
            requirements.document_types,
            self.document_answers,
        )

    def evidence_photos(self) -> List[CapturedPhoto]:
        """Photos queued for step 4: category and document evidence."""
        return [p for p in self.photos if p.kind in (EvidenceKind.CATEGORY, EvidenceKind.DOCUMENT)]

    def photos_in_category(self, category_id: str) -> List[CapturedPhoto]:
        return [p for p in self.photos if p.kind == EvidenceKind.CATEGORY and p.category_id == category_id]

    def document_checklist(self) -> Dict[str, bool]:
        """Document name -> checked map persisted with the visit."""
        requirements = self.requirements or InstallationRequirements()
        return {
            document.name: self.document_answers.get(document.code) == DocumentAnswer.YES
            for document in requirements.document_types
        }
