"""
Visit Session Controller - the five-step supervision wizard state machine.

Owns the in-memory draft of a visit, gates forward navigation on each step's
admission predicate, persists progress after every step and performs the
terminal checkout transaction.

Steps:
1. Check-in      - position fix, installation, geofence or override reason
2. Evaluation    - guard ratings, installation state, findings
3. Checklist     - checklist items, documents, logbook, open findings
4. Evidence      - mandatory/optional photos, sequential upload
5. Closure       - comments, client survey, validation, checkout
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from supervision.backend.base import SupervisionBackend
from supervision.models import (
    CapturedPhoto,
    ChecklistResult,
    Coordinate,
    DocumentAnswer,
    EvidenceKind,
    Finding,
    FindingCategory,
    FindingSeverity,
    FindingStatus,
    GuardEvaluation,
    Installation,
    InstallationState,
    LocalEvidence,
    NearbyInstallation,
    Visit,
    WizardStep,
)
from supervision.wizard.checklist_resolver import ChecklistAndDocumentResolver
from supervision.wizard.closure_summary import ClosureSummary, ClosureSummaryCalculator
from supervision.wizard.config import BackendSettings, settings
from supervision.wizard.dotation_resolver import DotationResolver
from supervision.wizard.draft import VisitDraft
from supervision.wizard.errors import (
    AdmissionError,
    BackendError,
    InvalidScoreError,
    StepNotReachableError,
    StepValidationError,
    ValidationError,
    VisitInvariantError,
    VisitSealedError,
)
from supervision.wizard.evidence_pipeline import EvidenceUploadPipeline, UploadReport
from supervision.wizard.finding_ledger import FindingLedger
from supervision.wizard.geolocation import GeolocationProbe
from supervision.wizard.image_compressor import ImageCompressor, PreviewRegistry
from supervision.wizard.installation_resolver import NearbyInstallationResolver, distance_to
from supervision.wizard.progress import ProgressView, WizardProgressIndicator

logger = logging.getLogger(__name__)

LAST_STEP = WizardStep.CLOSURE
VALIDATION_KINDS = ("signature", "photo")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_score(field_name: str, value: Any, minimum: int = 1, maximum: int = 5) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not minimum <= value <= maximum:
        raise InvalidScoreError(field_name, value, minimum, maximum)
    return value


class VisitSessionController:
    """
    Drives one visit through the wizard.

    Admission predicates are derived purely from draft state, so whether
    "Next" is enabled never depends on the network. Every mutator validates
    before any side effect; every failed persistence call leaves the current
    step, the watermark and the draft as they were.
    """

    def __init__(
        self,
        backend: SupervisionBackend,
        probe: GeolocationProbe,
        compressor: Optional[ImageCompressor] = None,
        config: Optional[BackendSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
        local_clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize a controller for a single visit.

        Args:
            backend: Supervision backend
            probe: Position source for check-in and checkout
            compressor: Image compressor for captured evidence
            config: Backend settings (entry/exit channel names)
            clock: Timestamp source (timezone-aware)
            local_clock: Local wall-clock source used for shift windows
        """
        self.session_id = uuid.uuid4().hex
        self.backend = backend
        self.probe = probe
        self.config = config or settings.backend
        self.compressor = compressor or ImageCompressor()
        self.previews = PreviewRegistry()

        self.installations = NearbyInstallationResolver(backend)
        self.dotations = DotationResolver(backend, clock=local_clock)
        self.requirements = ChecklistAndDocumentResolver(backend)
        self.ledger = FindingLedger(backend)
        self.evidence = EvidenceUploadPipeline(backend, self.previews)
        self.summaries = ClosureSummaryCalculator(clock=clock)
        self.progress_indicator = WizardProgressIndicator()

        self._clock = clock
        self.draft = VisitDraft()
        logger.info(f"VisitSessionController initialized (session {self.session_id})")

    # =========================================================================
    # Guards
    # =========================================================================

    @property
    def current_step(self) -> WizardStep:
        return self.draft.current_step

    @property
    def max_reached_step(self) -> WizardStep:
        return self.draft.max_reached_step

    @property
    def visit(self) -> Optional[Visit]:
        return self.draft.visit

    def _ensure_open(self) -> None:
        if self.draft.is_closed:
            raise VisitSealedError(self.draft.visit_id or "")

    def _ensure_before_check_in(self, action: str) -> None:
        self._ensure_open()
        if self.draft.checked_in:
            raise VisitInvariantError(self.draft.visit_id, f"cannot {action} after check-in")

    def _ensure_checked_in(self, step: WizardStep) -> Visit:
        """The visit exists and `step` is at or below the watermark."""
        self._ensure_open()
        if not self.draft.checked_in or step > self.draft.max_reached_step:
            raise StepNotReachableError(int(step), int(self.draft.max_reached_step))
        return self.draft.visit

    def _ensure_current(self, step: WizardStep) -> None:
        self._ensure_open()
        if self.draft.current_step != step:
            raise VisitInvariantError(
                self.draft.visit_id,
                f"step {int(step)} action requested while on step {int(self.draft.current_step)}",
            )

    def _persisted_step(self, next_step: WizardStep) -> int:
        """wizardStep to store: the watermark never moves back on the server."""
        return int(min(max(next_step, self.draft.max_reached_step), LAST_STEP))

    def _advance_to(self, step: WizardStep) -> None:
        previous = self.draft.current_step
        self.draft.current_step = step
        if step > self.draft.max_reached_step:
            self.draft.max_reached_step = step
        logger.info(f"Visit {self.draft.visit_id}: step {int(previous)} -> {int(step)}")

    # =========================================================================
    # Admission Predicates
    # =========================================================================

    def admission_issues(self, step: Optional[WizardStep] = None) -> List[str]:
        """
        Reasons the given step (default: current) cannot be left.

        Returns:
            List of issues (empty when "Next" is enabled)
        """
        step = WizardStep(step or self.draft.current_step)
        draft = self.draft
        issues = []

        if step == WizardStep.CHECK_IN:
            if draft.location is None:
                issues.append("Location not obtained")
            if draft.selection is None:
                issues.append("No installation selected")
            elif draft.selection.inside_geofence is not True and not draft.geofence_override_reason.strip():
                issues.append("Outside the installation geofence: an override reason is required")

        elif step == WizardStep.CHECKLIST:
            if draft.logbook.up_to_date is None:
                issues.append("Logbook status not answered")
            elif draft.logbook.up_to_date is False and not draft.logbook.notes.strip():
                issues.append("Logbook notes are required when the logbook is not up to date")

        elif step == WizardStep.EVIDENCE:
            requirements = draft.requirements
            mandatory = requirements.mandatory_photo_categories if requirements else []
            for category in mandatory:
                if not draft.photos_in_category(category.id):
                    issues.append(f"Missing mandatory photo: {category.name}")

        return issues

    def can_advance(self, step: Optional[WizardStep] = None) -> bool:
        if self.draft.is_closed:
            return False
        return not self.admission_issues(step)

    # =========================================================================
    # Step 1: Check-in
    # =========================================================================

    def list_installations(self) -> List[NearbyInstallation]:
        """Candidates for check-in, ranked by distance once a fix is known."""
        self._ensure_open()
        if self.draft.location is None:
            candidates = self.installations.list_assigned()
        else:
            candidates = self.installations.resolve(self.draft.location)
        self.draft.candidates = candidates
        return candidates

    def locate(self) -> List[NearbyInstallation]:
        """
        Obtain a position fix and rank installations against it.

        The nearest installation becomes the selection unless the operator
        already picked one that is still among the candidates.

        Raises:
            LocationUnavailable: No fresh fix; the draft is left as it was
        """
        self._ensure_before_check_in("relocate")
        coordinate = self.probe.get_current_location()
        candidates = self.installations.resolve(coordinate)

        self.draft.location = coordinate
        self.draft.candidates = candidates

        current = self.draft.selection
        match = None
        if current is not None:
            match = next((c for c in candidates if c.installation.id == current.installation.id), None)
            if match is None:
                match = NearbyInstallation(
                    installation=current.installation,
                    distance_m=distance_to(current.installation, coordinate),
                )
        else:
            match = self.installations.default_selection(candidates)
            if match is not None:
                self._preview_dotation(match.installation)

        self.draft.selection = match
        logger.info(
            f"Located at ({coordinate.lat:.5f}, {coordinate.lng:.5f}); "
            f"{len(candidates)} candidate installations"
        )
        return candidates

    def _preview_dotation(self, installation: Installation) -> None:
        try:
            self.draft.preview_dotation = self.dotations.resolve(installation.id)
        except BackendError as e:
            logger.warning(f"Roster preview unavailable for {installation.id}: {e.reason}")
            self.draft.preview_dotation = None

    def select_installation(self, installation_id: str) -> NearbyInstallation:
        """Override the default selection."""
        self._ensure_before_check_in("change installation")

        candidate = next(
            (c for c in self.draft.candidates if c.installation.id == installation_id), None,
        )
        if candidate is None:
            assigned = self.backend.list_assigned_installations()
            installation = next((i for i in assigned if i.id == installation_id), None)
            if installation is None:
                raise StepValidationError(int(WizardStep.CHECK_IN), [f"Unknown installation: {installation_id}"])
            distance = distance_to(installation, self.draft.location) if self.draft.location else None
            candidate = NearbyInstallation(installation=installation, distance_m=distance)

        self.draft.selection = candidate
        self._preview_dotation(candidate.installation)
        return candidate

    def set_guards_found(self, guards_found: int) -> None:
        """Operator head count. Revisable until checkout."""
        self._ensure_open()
        if isinstance(guards_found, bool) or not isinstance(guards_found, int) or guards_found < 0:
            raise ValidationError(
                f"Guards found must be a non-negative integer, got {guards_found!r}",
                {"field": "guards_found", "value": guards_found},
            )
        self.draft.guards_found = guards_found

    def set_geofence_override_reason(self, reason: str) -> None:
        self._ensure_before_check_in("change the override reason")
        self.draft.geofence_override_reason = reason or ""

    def check_in(self) -> Visit:
        """
        Leave step 1.

        First pass: resolves the roster, creates the visit and stores the
        frozen expected head count. Re-entry after a successful create only
        updates the visit; a second visit is never created.

        Raises:
            AdmissionError: Predicate fails (no network call is made)
            BackendError: A persistence call failed; the step is not advanced
        """
        self._ensure_current(WizardStep.CHECK_IN)

        if self.draft.checked_in:
            return self._reenter_check_in()

        issues = self.admission_issues(WizardStep.CHECK_IN)
        if issues:
            raise AdmissionError(issues)

        selection = self.draft.selection
        location = self.draft.location
        override = self.draft.geofence_override_reason.strip()
        if selection.inside_geofence:
            override = ""

        dotation = self.dotations.resolve(selection.installation.id)
        visit = self.backend.create_visit(
            selection.installation.id,
            location.lat,
            location.lng,
            started_via=self.config.started_via,
            geofence_override_reason=override or None,
        )
        # The visit exists from here on; retries must go through re-entry
        visit.guards_expected = dotation.total_expected
        self.draft.visit = visit
        self.draft.dotation = dotation
        logger.info(
            f"Checked in to {selection.installation.name}: visit {visit.id}, "
            f"distance {selection.distance_m} m, expected {dotation.total_expected} guards"
        )

        updated = self.backend.update_visit(visit.id, {
            "guardsExpected": dotation.total_expected,
            "guardsFound": self.draft.guards_found,
            "wizardStep": self._persisted_step(WizardStep.EVALUATION),
        })
        self._complete_check_in(updated)
        return self.draft.visit

    def _reenter_check_in(self) -> Visit:
        visit = self.draft.visit
        frozen = visit.guards_expected
        dotation = self.draft.dotation
        if frozen is None:
            dotation = dotation or self.dotations.resolve(visit.installation_id)
            frozen = dotation.total_expected

        # Re-sent unchanged: the first PATCH may have failed after create
        updated = self.backend.update_visit(visit.id, {
            "guardsExpected": frozen,
            "guardsFound": self.draft.guards_found,
            "wizardStep": self._persisted_step(WizardStep.EVALUATION),
        })
        visit.guards_expected = frozen
        self.draft.dotation = dotation
        self._complete_check_in(updated)
        return self.draft.visit

    def _complete_check_in(self, updated: Visit) -> None:
        frozen = self.draft.visit.guards_expected
        updated.guards_expected = frozen
        self.draft.visit = updated

        if not self.draft.evaluations and self.draft.dotation is not None:
            self.draft.evaluations = [
                GuardEvaluation.from_dotation_guard(g) for g in self.draft.dotation.guards
            ]
        if self.draft.requirements is None:
            self._load_requirements(updated.installation_id)

        self._advance_to(WizardStep.EVALUATION)

    def _load_requirements(self, installation_id: str) -> None:
        requirements = self.requirements.resolve(installation_id)
        self.draft.requirements = requirements
        self.ledger.register(requirements.open_findings)

    # =========================================================================
    # Step 2: Evaluation
    # =========================================================================

    def rate_guard(
        self,
        index: int,
        presentation: Optional[int] = None,
        order: Optional[int] = None,
        protocol: Optional[int] = None,
        observation: Optional[str] = None,
    ) -> GuardEvaluation:
        """Set any of a guard's scores (1-5) or observation. Omitted values are kept."""
        self._ensure_checked_in(WizardStep.EVALUATION)
        if not 0 <= index < len(self.draft.evaluations):
            raise ValidationError(f"No guard at position {index}", {"index": index})

        presentation = _check_score("presentation_score", presentation)
        order = _check_score("order_score", order)
        protocol = _check_score("protocol_score", protocol)

        evaluation = self.draft.evaluations[index]
        if presentation is not None:
            evaluation.presentation_score = presentation
        if order is not None:
            evaluation.order_score = order
        if protocol is not None:
            evaluation.protocol_score = protocol
        if observation is not None:
            evaluation.observation = observation
        return evaluation

    def add_unlisted_guard(
        self,
        guard_name: str,
        guard_id: Optional[str] = None,
        is_reinforcement: bool = True,
    ) -> GuardEvaluation:
        """Add a guard found on site but missing from the roster."""
        self._ensure_checked_in(WizardStep.EVALUATION)
        if self.draft.evaluations_saved:
            raise VisitInvariantError(self.draft.visit_id, "the evaluated roster is fixed once saved")
        if not (guard_name or "").strip():
            raise ValidationError("Guard name is required", {"field": "guard_name"})

        evaluation = GuardEvaluation(
            guard_name=guard_name.strip(),
            guard_id=guard_id,
            is_reinforcement=is_reinforcement,
        )
        self.draft.evaluations.append(evaluation)
        return evaluation

    def set_installation_state(self, state: Union[str, InstallationState]) -> None:
        self._ensure_checked_in(WizardStep.EVALUATION)
        try:
            self.draft.installation_state = InstallationState(state)
        except ValueError:
            raise ValidationError(f"Unknown installation state: {state!r}", {"field": "installation_state"})

    def record_finding(
        self,
        category: Union[str, FindingCategory],
        severity: Union[str, FindingSeverity],
        description: str,
        guard_id: Optional[str] = None,
        photo: Optional[bytes] = None,
        photo_filename: str = "finding.jpg",
        checklist_item_id: Optional[str] = None,
    ) -> Finding:
        """
        Record a finding observed in this visit (steps 2 and 3).

        When checklist_item_id is given the finding is linked to that item's
        result, which is created unchecked if missing.
        """
        visit = self._ensure_checked_in(WizardStep.EVALUATION)
        if self.draft.current_step not in (WizardStep.EVALUATION, WizardStep.CHECKLIST):
            raise VisitInvariantError(visit.id, "findings are recorded in steps 2 and 3")
        if checklist_item_id is not None:
            self._checklist_item(checklist_item_id)

        compressed = self.compressor.compress(photo, photo_filename) if photo else None
        finding = self.ledger.create(
            visit.id,
            category,
            severity,
            description,
            guard_id=guard_id,
            photo=compressed,
            location=self.draft.location,
        )
        self.draft.findings.append(finding)

        if checklist_item_id is not None:
            result = self.draft.checklist_results.get(checklist_item_id)
            if result is None:
                result = ChecklistResult(checklist_item_id=checklist_item_id, is_checked=False)
                self.draft.checklist_results[checklist_item_id] = result
            result.finding_id = finding.id
        return finding

    def save_evaluations(self) -> Visit:
        """Leave step 2: upsert every evaluation and store the installation state."""
        visit = self._ensure_checked_in(WizardStep.EVALUATION)
        self._ensure_current(WizardStep.EVALUATION)

        self.backend.save_evaluations(visit.id, self.draft.evaluations)
        updated = self.backend.update_visit(visit.id, {
            "installationState": self.draft.installation_state.value,
            "guardsFound": self.draft.guards_found,
            "wizardStep": self._persisted_step(WizardStep.CHECKLIST),
        })
        self._store_visit(updated)
        self.draft.evaluations_saved = True
        self._advance_to(WizardStep.CHECKLIST)
        return self.draft.visit

    def _store_visit(self, updated: Visit) -> None:
        updated.guards_expected = self.draft.visit.guards_expected
        self.draft.visit = updated

    # =========================================================================
    # Step 3: Checklist
    # =========================================================================

    def _checklist_item(self, item_id: str):
        requirements = self.draft.requirements
        items = requirements.checklist_items if requirements else []
        item = next((i for i in items if i.id == item_id), None)
        if item is None:
            raise ValidationError(f"Unknown checklist item: {item_id}", {"checklist_item_id": item_id})
        return item

    def set_checklist_item(self, item_id: str, checked: bool) -> ChecklistResult:
        self._ensure_checked_in(WizardStep.CHECKLIST)
        self._checklist_item(item_id)

        result = self.draft.checklist_results.get(item_id)
        if result is None:
            result = ChecklistResult(checklist_item_id=item_id)
            self.draft.checklist_results[item_id] = result
        result.is_checked = bool(checked)
        return result

    def answer_document(
        self,
        code: str,
        answer: Union[str, DocumentAnswer],
        photo: Optional[bytes] = None,
        photo_filename: str = "document.jpg",
        content_type: str = "image/jpeg",
    ) -> DocumentAnswer:
        """Answer a required document, optionally replacing its photo evidence."""
        self._ensure_checked_in(WizardStep.CHECKLIST)
        requirements = self.draft.requirements
        documents = requirements.document_types if requirements else []
        document = next((d for d in documents if d.code == code), None)
        if document is None:
            raise ValidationError(f"Unknown document type: {code}", {"document_code": code})
        try:
            answer = DocumentAnswer(answer)
        except ValueError:
            raise ValidationError(f"Unknown document answer: {answer!r}", {"field": "answer"})

        if photo:
            existing = next(
                (p for p in self.draft.photos if p.kind == EvidenceKind.DOCUMENT and p.document_code == code),
                None,
            )
            if existing is not None:
                self._discard_photo(existing)
            self.draft.photos.append(self._capture(
                photo, photo_filename, content_type,
                kind=EvidenceKind.DOCUMENT,
                category_name=document.name,
                document_code=code,
            ))

        self.draft.document_answers[code] = answer
        return answer

    def set_logbook(
        self,
        up_to_date: Optional[bool],
        last_entry_date: Optional[str] = None,
        notes: str = "",
    ) -> None:
        self._ensure_checked_in(WizardStep.CHECKLIST)
        self.draft.logbook.up_to_date = up_to_date
        self.draft.logbook.last_entry_date = last_entry_date or None
        self.draft.logbook.notes = notes or ""

    def attach_logbook_photo(
        self,
        content: bytes,
        filename: str = "logbook.jpg",
        content_type: str = "image/jpeg",
    ) -> CapturedPhoto:
        self._ensure_checked_in(WizardStep.CHECKLIST)
        if self.draft.logbook_photo is not None and not self.draft.logbook_photo.uploaded:
            self._release(self.draft.logbook_photo)
        photo = self._capture(
            content, filename, content_type,
            kind=EvidenceKind.LOGBOOK,
            category_name="Libro de novedades",
        )
        self.draft.logbook_photo = photo
        return photo

    def resolve_open_finding(
        self,
        finding_id: str,
        status: Union[str, FindingStatus] = FindingStatus.VERIFIED,
    ) -> Finding:
        """Move a finding opened in an earlier visit toward verified, linked to this visit."""
        visit = self._ensure_checked_in(WizardStep.CHECKLIST)
        updated = self.ledger.update_status(visit.installation_id, finding_id, status, visit.id)

        requirements = self.draft.requirements
        if requirements is not None:
            requirements.open_findings = [
                updated if f.id == finding_id else f for f in requirements.open_findings
            ]
        self.draft.resolved_findings = [
            f for f in self.draft.resolved_findings if f.id != finding_id
        ] + [updated]
        return updated

    def save_checklist(self) -> Visit:
        """
        Leave step 3.

        Uploads the logbook photo if any, upserts non-default checklist results
        and stores the logbook fields with the document checklist map.
        """
        visit = self._ensure_checked_in(WizardStep.CHECKLIST)
        self._ensure_current(WizardStep.CHECKLIST)
        issues = self.admission_issues(WizardStep.CHECKLIST)
        if issues:
            raise StepValidationError(int(WizardStep.CHECKLIST), issues)

        photo_url = self.draft.logbook.photo_url
        logbook_photo = self.draft.logbook_photo
        if logbook_photo is not None:
            photo_url = self.evidence.upload_one(visit.id, logbook_photo, self.draft.location).url

        results = self.requirements.persistable_results(self.draft.checklist_results.values())
        if results:
            self.backend.save_checklist_results(visit.id, results)

        logbook = self.draft.logbook
        updated = self.backend.update_visit(visit.id, {
            "bookUpToDate": logbook.up_to_date,
            "bookLastEntryDate": logbook.last_entry_date,
            "bookNotes": logbook.notes,
            "bookPhotoUrl": photo_url,
            "documentChecklist": self.draft.document_checklist(),
            "guardsFound": self.draft.guards_found,
            "wizardStep": self._persisted_step(WizardStep.EVIDENCE),
        })
        logbook.photo_url = photo_url
        self._store_visit(updated)
        self._advance_to(WizardStep.EVIDENCE)
        return self.draft.visit

    # =========================================================================
    # Step 4: Evidence
    # =========================================================================

    def _capture(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        kind: EvidenceKind,
        category_name: str,
        category_id: Optional[str] = None,
        document_code: Optional[str] = None,
    ) -> CapturedPhoto:
        if not content:
            raise ValidationError("Captured file is empty", {"filename": filename})
        compressed = self.compressor.compress(content, filename, content_type)
        preview_id = self.previews.create(compressed.content)
        return CapturedPhoto(
            capture_id=uuid.uuid4().hex,
            state=LocalEvidence(
                content=compressed.content,
                filename=compressed.filename,
                content_type=compressed.content_type,
                preview_id=preview_id,
            ),
            kind=kind,
            category_id=category_id,
            category_name=category_name,
            document_code=document_code,
            location=self.draft.location,
            captured_at=self._clock(),
        )

    def _release(self, photo: CapturedPhoto) -> None:
        if isinstance(photo.state, LocalEvidence):
            self.previews.release(photo.state.preview_id)

    def _discard_photo(self, photo: CapturedPhoto) -> None:
        if photo.uploaded:
            raise VisitInvariantError(
                self.draft.visit_id, f"photo {photo.capture_id} is already part of the visit record",
            )
        self._release(photo)
        self.draft.photos.remove(photo)

    def capture_photo(
        self,
        category_id: str,
        content: bytes,
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> CapturedPhoto:
        """Compress a captured image and queue it under a photo category."""
        self._ensure_checked_in(WizardStep.EVIDENCE)
        self._ensure_current(WizardStep.EVIDENCE)
        requirements = self.draft.requirements
        categories = requirements.photo_categories if requirements else []
        category = next((c for c in categories if c.id == category_id), None)
        if category is None:
            raise ValidationError(f"Unknown photo category: {category_id}", {"category_id": category_id})

        photo = self._capture(
            content, filename, content_type,
            kind=EvidenceKind.CATEGORY,
            category_name=category.name,
            category_id=category.id,
        )
        self.draft.photos.append(photo)
        return photo

    def remove_photo(self, capture_id: str) -> None:
        self._ensure_open()
        photo = next((p for p in self.draft.photos if p.capture_id == capture_id), None)
        if photo is None:
            raise ValidationError(f"Unknown photo: {capture_id}", {"capture_id": capture_id})
        self._discard_photo(photo)

    def preview(self, capture_id: str) -> Optional[bytes]:
        photo = next((p for p in self.draft.photos if p.capture_id == capture_id), None)
        if photo is None or not isinstance(photo.state, LocalEvidence) or not photo.state.preview_id:
            return None
        return self.previews.get(photo.state.preview_id)

    def upload_evidence(self) -> UploadReport:
        """
        Upload every queued photo that is not yet Uploaded.

        Raises:
            EvidenceUploadError: Queue stopped; replay resumes at the failed photo
        """
        visit = self._ensure_checked_in(WizardStep.EVIDENCE)
        return self.evidence.upload_pending(visit.id, self.draft.evidence_photos(), self.draft.location)

    def save_evidence(self) -> Visit:
        """Leave step 4: gate on mandatory categories, upload the queue, store the step."""
        visit = self._ensure_checked_in(WizardStep.EVIDENCE)
        self._ensure_current(WizardStep.EVIDENCE)
        issues = self.admission_issues(WizardStep.EVIDENCE)
        if issues:
            raise StepValidationError(int(WizardStep.EVIDENCE), issues)

        self.upload_evidence()
        updated = self.backend.update_visit(visit.id, {
            "wizardStep": self._persisted_step(WizardStep.CLOSURE),
        })
        self._store_visit(updated)
        self._advance_to(WizardStep.CLOSURE)
        return self.draft.visit

    # =========================================================================
    # Step 5: Closure
    # =========================================================================

    def set_general_comments(self, comments: str) -> None:
        self._ensure_checked_in(WizardStep.CLOSURE)
        self.draft.general_comments = comments or ""

    def set_client_survey(
        self,
        contacted: Optional[bool] = None,
        contact_name: Optional[str] = None,
        contact_role: Optional[str] = None,
        service_quality: Optional[int] = None,
        schedule_compliance: Optional[int] = None,
        personal_presentation: Optional[int] = None,
        professionalism: Optional[int] = None,
        comment: Optional[str] = None,
        urgent_risk: Optional[bool] = None,
        urgent_risk_detail: Optional[str] = None,
        nps: Optional[int] = None,
    ) -> None:
        """Update the client survey. Omitted values are kept."""
        self._ensure_checked_in(WizardStep.CLOSURE)
        scores = {
            "service_quality": _check_score("service_quality", service_quality),
            "schedule_compliance": _check_score("schedule_compliance", schedule_compliance),
            "personal_presentation": _check_score("personal_presentation", personal_presentation),
            "professionalism": _check_score("professionalism", professionalism),
        }
        nps = _check_score("nps", nps, 0, 10)

        survey = self.draft.survey
        for name, value in scores.items():
            if value is not None:
                setattr(survey, name, value)
        if nps is not None:
            survey.nps = nps
        if contacted is not None:
            survey.contacted = bool(contacted)
        if contact_name is not None:
            survey.contact_name = contact_name
        if contact_role is not None:
            survey.contact_role = contact_role
        if comment is not None:
            survey.comment = comment
        if urgent_risk is not None:
            survey.urgent_risk = bool(urgent_risk)
        if urgent_risk_detail is not None:
            survey.urgent_risk_detail = urgent_risk_detail

    def set_client_validation(
        self,
        content: bytes,
        kind: str = "signature",
        filename: str = "validation.png",
        content_type: str = "image/png",
    ) -> CapturedPhoto:
        """Attach the client's signature or a validation photo."""
        self._ensure_checked_in(WizardStep.CLOSURE)
        if kind not in VALIDATION_KINDS:
            raise ValidationError(f"Unknown validation kind: {kind!r}", {"field": "kind"})

        previous = self.draft.client_validation
        photo = self._capture(
            content, filename, content_type,
            kind=EvidenceKind.CLIENT_VALIDATION,
            category_name="Firma cliente" if kind == "signature" else "Validacion cliente",
        )
        if previous is not None:
            self._release(previous)
        self.draft.client_validation = photo
        self.draft.survey.validation_kind = kind
        return photo

    def summary(self) -> ClosureSummary:
        return self.summaries.calculate(self.draft)

    def _checkout_payload(self, coordinate: Coordinate, validation_url: Optional[str]) -> Dict[str, Any]:
        draft = self.draft
        survey = draft.survey
        return {
            "lat": coordinate.lat,
            "lng": coordinate.lng,
            "completedVia": self.config.completed_via,
            "generalComments": draft.general_comments,
            "installationState": draft.installation_state.value,
            "guardsExpected": draft.visit.guards_expected,
            "guardsFound": draft.guards_found,
            "bookUpToDate": draft.logbook.up_to_date,
            "bookLastEntryDate": draft.logbook.last_entry_date,
            "bookNotes": draft.logbook.notes,
            "bookPhotoUrl": draft.logbook.photo_url,
            "clientContacted": survey.contacted,
            "clientContactName": survey.contact_name if survey.contacted else None,
            "clientSatisfaction": survey.satisfaction(),
            "clientComment": survey.comment if survey.contacted else None,
            "clientValidationUrl": validation_url,
            "clientSurvey": survey.details() if survey.contacted else None,
        }

    def checkout(self) -> Visit:
        """
        Seal the visit.

        Re-checks the checklist and evidence gates, since earlier steps stay
        editable after they were saved. Then takes a second position fix,
        uploads any evidence still pending plus the client validation image,
        and submits the full closure payload in one request. On any failure
        the visit stays open at step 5 and can be retried; evidence already
        uploaded is not re-sent.

        Raises:
            StepValidationError: An earlier step's gate no longer holds
            LocationUnavailable: No checkout fix
            EvidenceUploadError: A pending photo failed to upload
            BackendError: Validation upload or checkout failed
        """
        visit = self._ensure_checked_in(WizardStep.CLOSURE)
        self._ensure_current(WizardStep.CLOSURE)
        for step in (WizardStep.CHECKLIST, WizardStep.EVIDENCE):
            issues = self.admission_issues(step)
            if issues:
                raise StepValidationError(int(step), issues)

        coordinate = self.probe.get_current_location()

        logbook_photo = self.draft.logbook_photo
        if logbook_photo is not None and not logbook_photo.uploaded:
            self.draft.logbook.photo_url = self.evidence.upload_one(visit.id, logbook_photo, coordinate).url
        self.evidence.upload_pending(visit.id, self.draft.evidence_photos(), coordinate)

        validation_url = None
        if self.draft.client_validation is not None:
            validation_url = self.evidence.upload_one(
                visit.id, self.draft.client_validation, coordinate,
            ).url

        closed = self.backend.checkout(visit.id, self._checkout_payload(coordinate, validation_url))
        self._store_visit(closed)
        self.draft.current_step = WizardStep.CLOSED
        released = self.previews.release_all()
        logger.info(
            f"Visit {visit.id} checked out (duration {closed.duration_minutes} min, "
            f"{released} previews released)"
        )
        return self.draft.visit

    # =========================================================================
    # Navigation
    # =========================================================================

    def go_to_step(self, step: int) -> WizardStep:
        """Revisit any step up to the highest one reached. Nothing is persisted."""
        self._ensure_open()
        try:
            target = WizardStep(step)
        except ValueError:
            raise StepNotReachableError(step, int(self.draft.max_reached_step))
        if target > self.draft.max_reached_step or target == WizardStep.CLOSED:
            raise StepNotReachableError(int(target), int(self.draft.max_reached_step))
        self.draft.current_step = target
        return target

    def advance(self) -> Visit:
        """Perform the current step's transition."""
        self._ensure_open()
        step = self.draft.current_step
        if step == WizardStep.CHECK_IN:
            return self.check_in()
        if step == WizardStep.EVALUATION:
            return self.save_evaluations()
        if step == WizardStep.CHECKLIST:
            return self.save_checklist()
        if step == WizardStep.EVIDENCE:
            return self.save_evidence()
        return self.checkout()

    def resume(self, visit_id: str) -> Visit:
        """
        Restore a visit persisted by an earlier session.

        The expected head count is taken from the server, never re-derived.
        Locally captured evidence of the earlier session is not recoverable.

        Raises:
            VisitSealedError: The visit was already checked out
            BackendError: The visit could not be loaded
        """
        if self.draft.checked_in:
            raise VisitInvariantError(self.draft.visit_id, "controller already holds a visit")

        visit = self.backend.get_visit(visit_id)
        if visit.is_closed:
            raise VisitSealedError(visit_id)

        step = WizardStep(min(max(int(visit.wizard_step), 1), int(LAST_STEP)))
        installation = next(
            (i for i in self.backend.list_assigned_installations() if i.id == visit.installation_id),
            None,
        ) or Installation(id=visit.installation_id, name=visit.installation_name or visit.installation_id)

        draft = VisitDraft(
            current_step=step,
            max_reached_step=step,
            visit=visit,
            location=visit.check_in_location,
            selection=NearbyInstallation(installation=installation, distance_m=visit.check_in_distance_m),
            guards_found=visit.guards_found,
            geofence_override_reason=visit.geofence_override_reason or "",
            installation_state=visit.installation_state,
            logbook=visit.logbook,
            general_comments=visit.general_comments,
            evaluations_saved=step > WizardStep.EVALUATION,
        )
        draft.candidates = [draft.selection]

        if step > WizardStep.CHECK_IN:
            evaluations = self.backend.get_evaluations(visit_id)
            if not evaluations:
                dotation = self.dotations.resolve(visit.installation_id)
                draft.dotation = dotation
                evaluations = [GuardEvaluation.from_dotation_guard(g) for g in dotation.guards]
            draft.evaluations = evaluations

        self.draft = draft
        self._load_requirements(visit.installation_id)

        by_name = {d.name: d.code for d in draft.requirements.document_types}
        for name, checked in visit.document_checklist.items():
            if name in by_name:
                draft.document_answers[by_name[name]] = DocumentAnswer.YES if checked else DocumentAnswer.NO

        logger.info(f"Resumed visit {visit_id} at step {int(step)}")
        return visit

    # =========================================================================
    # State Snapshot
    # =========================================================================

    def progress(self) -> ProgressView:
        return self.progress_indicator.render(self.draft)

    def state(self) -> Dict[str, Any]:
        """Serializable snapshot of the whole session."""
        draft = self.draft
        return {
            "sessionId": self.session_id,
            "visit": draft.visit.to_dict() if draft.visit else None,
            "currentStep": int(draft.current_step),
            "maxReachedStep": int(draft.max_reached_step),
            "closed": draft.is_closed,
            "canAdvance": self.can_advance(),
            "admissionIssues": [] if draft.is_closed else self.admission_issues(),
            "progress": self.progress().to_dict(),
            "location": draft.location.to_dict() if draft.location else None,
            "candidates": [c.to_dict() for c in draft.candidates],
            "selection": draft.selection.to_dict() if draft.selection else None,
            "guardsExpected": draft.guards_expected,
            "guardsFound": draft.guards_found,
            "geofenceOverrideReason": draft.geofence_override_reason,
            "evaluations": [e.to_dict() for e in draft.evaluations],
            "installationState": draft.installation_state.value,
            "findings": [f.to_dict() for f in draft.findings],
            "requirements": draft.requirements.to_dict() if draft.requirements else None,
            "checklistResults": [r.to_dict() for r in draft.checklist_results.values()],
            "documentAnswers": {code: a.value for code, a in draft.document_answers.items()},
            "logbook": draft.logbook.to_dict(),
            "photos": [p.to_dict() for p in draft.photos],
            "compliance": draft.compliance().to_dict(),
            "generalComments": draft.general_comments,
            "clientSurvey": draft.survey.to_dict(),
        }


# =============================================================================
# Factory Function
# =============================================================================

def create_visit_controller(
    backend: Optional[SupervisionBackend] = None,
    probe: Optional[GeolocationProbe] = None,
    **kwargs,
) -> VisitSessionController:
    """
    Factory function to create a visit controller.

    Args:
        backend: Supervision backend (default from configuration)
        probe: Position source (default: device-reported one-shot probe)

    Returns:
        Configured VisitSessionController instance
    """
    from supervision.backend import create_supervision_backend
    from supervision.wizard.geolocation import OneShotLocationProbe

    return VisitSessionController(
        backend=backend or create_supervision_backend(),
        probe=probe or OneShotLocationProbe(),
        **kwargs,
    )
