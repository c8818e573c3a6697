"""
In-memory supervision backend for development and testing.

Implements the same contracts as the HTTP server: distances are rounded to
whole metres, regular roster entries are filtered by shift window,
reinforcements by date, and closed visits reject every mutation.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from supervision.backend.base import SupervisionBackend
from supervision.models import (
    ChecklistItem,
    ChecklistResult,
    DocumentType,
    Dotation,
    DotationGuard,
    DotationType,
    Finding,
    FindingCategory,
    FindingSeverity,
    FindingStatus,
    GuardEvaluation,
    Installation,
    NearbyInstallation,
    PhotoCategory,
    UploadedEvidence,
    Visit,
    VisitStatus,
)
from supervision.models.installation import Coordinate
from supervision.wizard.config import EXPRESS_VISIT_MINUTES
from supervision.wizard.errors import BackendError
from supervision.wizard.geolocation import haversine_distance_m

logger = logging.getLogger(__name__)


def _copy(finding: Finding) -> Finding:
    return Finding.from_dict(finding.to_dict())


def _copy_visit(visit: Visit) -> Visit:
    return Visit.from_dict(visit.to_dict())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemorySupervisionBackend(SupervisionBackend):
    """
    In-memory backend implementation.

    Data is lost when the process stops. Useful for:
    - Unit testing
    - Local demos of the wizard
    - Running the wizard API without a server
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        """Initialize empty storage."""
        self._clock = clock
        self._installations: Dict[str, Installation] = {}
        self._assigned: List[str] = []
        self._roster: Dict[str, List[DotationGuard]] = {}
        self._checklists: Dict[str, List[ChecklistItem]] = {}
        self._document_types: Dict[str, List[DocumentType]] = {}
        self._photo_categories: Dict[str, List[PhotoCategory]] = {}
        self._findings: Dict[str, Finding] = {}
        self._visits: Dict[str, Visit] = {}
        self._evaluations: Dict[str, List[GuardEvaluation]] = {}
        self._checklist_results: Dict[str, Dict[str, ChecklistResult]] = {}
        self._photos: Dict[str, List[Dict[str, Any]]] = {}
        self._legacy_images: Dict[str, List[Dict[str, Any]]] = {}
        self._surveys: Dict[str, Dict[str, Any]] = {}
        logger.info("InMemorySupervisionBackend initialized")

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_installation(self, installation: Installation, assigned: bool = True) -> None:
        self._installations[installation.id] = installation
        if assigned and installation.id not in self._assigned:
            self._assigned.append(installation.id)

    def add_roster_entry(self, installation_id: str, guard: DotationGuard) -> None:
        self._roster.setdefault(installation_id, []).append(guard)

    def remove_roster_entry(self, installation_id: str, entry_id: str) -> None:
        self._roster[installation_id] = [
            g for g in self._roster.get(installation_id, []) if g.id != entry_id
        ]

    def set_checklist(
        self,
        installation_id: str,
        items: List[ChecklistItem],
        document_types: Optional[List[DocumentType]] = None,
    ) -> None:
        self._checklists[installation_id] = list(items)
        self._document_types[installation_id] = list(document_types or [])

    def set_photo_categories(self, installation_id: str, categories: List[PhotoCategory]) -> None:
        self._photo_categories[installation_id] = list(categories)

    def add_finding(self, finding: Finding) -> None:
        self._findings[finding.id] = finding

    # -------------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------------

    def photos_for(self, visit_id: str) -> List[Dict[str, Any]]:
        return list(self._photos.get(visit_id, []))

    def legacy_images_for(self, visit_id: str) -> List[Dict[str, Any]]:
        return list(self._legacy_images.get(visit_id, []))

    def checklist_results_for(self, visit_id: str) -> List[ChecklistResult]:
        return list(self._checklist_results.get(visit_id, {}).values())

    def survey_for(self, visit_id: str) -> Optional[Dict[str, Any]]:
        return self._surveys.get(visit_id)

    def finding(self, finding_id: str) -> Optional[Finding]:
        return self._findings.get(finding_id)

    def visits(self) -> List[Visit]:
        return list(self._visits.values())

    # -------------------------------------------------------------------------
    # Internal lookups
    # -------------------------------------------------------------------------

    def _installation(self, operation: str, installation_id: str) -> Installation:
        installation = self._installations.get(installation_id)
        if installation is None:
            raise BackendError(operation, f"installation {installation_id} not found", 404)
        return installation

    def _visit(self, operation: str, visit_id: str) -> Visit:
        visit = self._visits.get(visit_id)
        if visit is None:
            raise BackendError(operation, f"visit {visit_id} not found", 404)
        return visit

    def _open_visit(self, operation: str, visit_id: str) -> Visit:
        visit = self._visit(operation, visit_id)
        if visit.is_closed:
            raise BackendError(operation, "visit already closed", 409)
        return visit

    def _distance(self, installation: Installation, lat: float, lng: float) -> Optional[int]:
        if not installation.has_location:
            return None
        return int(round(haversine_distance_m(lat, lng, installation.lat, installation.lng)))

    # -------------------------------------------------------------------------
    # Visits
    # -------------------------------------------------------------------------

    def create_visit(
        self,
        installation_id: str,
        lat: float,
        lng: float,
        started_via: str,
        geofence_override_reason: Optional[str] = None,
    ) -> Visit:
        installation = self._installation("createVisit", installation_id)
        if installation_id not in self._assigned:
            raise BackendError("createVisit", "installation not assigned to supervisor", 403)

        now = self._clock()
        distance = self._distance(installation, lat, lng)
        visit = Visit(
            id=str(uuid.uuid4()),
            installation_id=installation_id,
            installation_name=installation.name,
            started_via=started_via,
            check_in_at=now,
            check_in_location=Coordinate(lat=lat, lng=lng, captured_at=now),
            check_in_distance_m=distance,
            check_in_geo_validated=(
                distance <= installation.geo_radius_m if distance is not None else False
            ),
            geofence_override_reason=geofence_override_reason,
        )
        self._visits[visit.id] = visit
        logger.info(f"Created visit {visit.id} at {installation.name} ({distance} m)")
        return _copy_visit(visit)

    def update_visit(self, visit_id: str, fields: Dict[str, Any]) -> Visit:
        visit = self._open_visit("updateVisit", visit_id)

        step = fields.get("wizardStep")
        if step is not None and not 1 <= int(step) <= 5:
            raise BackendError("updateVisit", f"wizardStep out of range: {step}", 400)

        data = visit.to_dict()
        data.update({k: v for k, v in fields.items() if k != "draftData"})
        updated = Visit.from_dict(data)
        # Coordinates do not survive the wire round trip with their accuracy
        updated.check_in_location = visit.check_in_location
        self._visits[visit_id] = updated
        return _copy_visit(updated)

    def get_visit(self, visit_id: str) -> Visit:
        return _copy_visit(self._visit("getVisit", visit_id))

    def checkout(self, visit_id: str, payload: Dict[str, Any]) -> Visit:
        visit = self._open_visit("checkout", visit_id)
        installation = self._installation("checkout", visit.installation_id)

        lat, lng = payload.get("lat"), payload.get("lng")
        if lat is None or lng is None:
            raise BackendError("checkout", "checkout coordinate required", 400)

        now = self._clock()
        distance = self._distance(installation, lat, lng)
        duration = None
        if visit.check_in_at is not None:
            duration = int(round((now - visit.check_in_at).total_seconds() / 60))

        data = visit.to_dict()
        data.update({k: v for k, v in payload.items() if k not in ("lat", "lng", "clientSurvey")})
        closed = Visit.from_dict(data)
        closed.check_in_location = visit.check_in_location
        closed.status = VisitStatus.CLOSED
        closed.check_out_at = now
        closed.check_out_location = Coordinate(lat=lat, lng=lng, captured_at=now)
        closed.check_out_geo_validated = (
            distance <= installation.geo_radius_m if distance is not None else None
        )
        closed.duration_minutes = duration
        closed.is_express_flagged = duration is not None and duration < EXPRESS_VISIT_MINUTES

        if payload.get("clientSurvey") is not None:
            self._surveys[visit_id] = dict(payload["clientSurvey"])

        self._visits[visit_id] = closed
        logger.info(f"Visit {visit_id} checked out after {duration} min")
        return _copy_visit(closed)

    # -------------------------------------------------------------------------
    # Installations
    # -------------------------------------------------------------------------

    def list_assigned_installations(self) -> List[Installation]:
        return [self._installations[i] for i in self._assigned]

    def nearby_installations(
        self,
        lat: float,
        lng: float,
        max_distance_m: int,
    ) -> List[NearbyInstallation]:
        results = []
        for installation in self.list_assigned_installations():
            distance = self._distance(installation, lat, lng)
            if distance is None or distance > max_distance_m:
                continue
            results.append(NearbyInstallation(installation=installation, distance_m=distance))
        results.sort(key=lambda n: n.distance_m)
        return results

    def get_dotation(self, installation_id: str, date: str, time: str) -> Dotation:
        self._installation("getDotation", installation_id)
        entries = [g for g in self._roster.get(installation_id, []) if g.covers(date, time)]
        return Dotation(
            regular=[g for g in entries if g.type == DotationType.REGULAR],
            reinforcement=[g for g in entries if g.type == DotationType.REINFORCEMENT],
        )

    def get_checklist(self, installation_id: str) -> Tuple[List[ChecklistItem], List[DocumentType]]:
        self._installation("getChecklist", installation_id)
        return (
            list(self._checklists.get(installation_id, [])),
            list(self._document_types.get(installation_id, [])),
        )

    def get_photo_categories(self, installation_id: str) -> List[PhotoCategory]:
        self._installation("getPhotoCategories", installation_id)
        return list(self._photo_categories.get(installation_id, []))

    # -------------------------------------------------------------------------
    # Findings
    # -------------------------------------------------------------------------

    def get_open_findings(self, installation_id: str) -> List[Finding]:
        return [
            _copy(f) for f in self._findings.values()
            if f.installation_id == installation_id and f.status == FindingStatus.OPEN
        ]

    def create_finding(self, visit_id: str, payload: Dict[str, Any]) -> Finding:
        visit = self._open_visit("createFinding", visit_id)
        try:
            category = FindingCategory(payload.get("category"))
            severity = FindingSeverity(payload.get("severity"))
        except ValueError as e:
            raise BackendError("createFinding", str(e), 400) from e

        description = (payload.get("description") or "").strip()
        if not description:
            raise BackendError("createFinding", "description required", 400)

        finding = Finding(
            id=str(uuid.uuid4()),
            visit_id=visit_id,
            installation_id=visit.installation_id,
            category=category,
            severity=severity,
            description=description,
            guard_id=payload.get("guardId"),
            photo_url=payload.get("photoUrl"),
            created_at=self._clock(),
        )
        self._findings[finding.id] = finding
        return _copy(finding)

    def update_finding_status(
        self,
        installation_id: str,
        finding_id: str,
        status: FindingStatus,
        verified_in_visit_id: str,
    ) -> Finding:
        finding = self._findings.get(finding_id)
        if finding is None or finding.installation_id != installation_id:
            raise BackendError("updateFindingStatus", f"finding {finding_id} not found", 404)

        finding.status = FindingStatus(status)
        finding.verified_in_visit_id = verified_in_visit_id
        if finding.status == FindingStatus.VERIFIED:
            finding.verified_at = self._clock()
        return _copy(finding)

    # -------------------------------------------------------------------------
    # Step records
    # -------------------------------------------------------------------------

    def get_evaluations(self, visit_id: str) -> List[GuardEvaluation]:
        self._visit("getEvaluations", visit_id)
        return [GuardEvaluation.from_dict(e.to_dict()) for e in self._evaluations.get(visit_id, [])]

    def save_evaluations(self, visit_id: str, evaluations: List[GuardEvaluation]) -> None:
        self._open_visit("saveEvaluations", visit_id)
        for evaluation in evaluations:
            if not evaluation.guard_name:
                raise BackendError("saveEvaluations", "guardName required", 400)
        self._evaluations[visit_id] = [GuardEvaluation.from_dict(e.to_dict()) for e in evaluations]

    def save_checklist_results(self, visit_id: str, results: List[ChecklistResult]) -> None:
        self._open_visit("saveChecklistResults", visit_id)
        stored = self._checklist_results.setdefault(visit_id, {})
        for result in results:
            stored[result.checklist_item_id] = ChecklistResult.from_dict(result.to_dict())

    # -------------------------------------------------------------------------
    # Evidence
    # -------------------------------------------------------------------------

    def upload_photo(
        self,
        visit_id: str,
        content: bytes,
        filename: str,
        content_type: str,
        category_name: str,
        category_id: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> UploadedEvidence:
        self._open_visit("uploadPhoto", visit_id)
        if not content:
            raise BackendError("uploadPhoto", "empty file", 400)

        photo_id = str(uuid.uuid4())
        url = f"memory://visits/{visit_id}/photos/{photo_id}/{filename}"
        self._photos.setdefault(visit_id, []).append({
            "id": photo_id,
            "photoUrl": url,
            "categoryId": category_id,
            "categoryName": category_name,
            "gpsLat": lat,
            "gpsLng": lng,
            "sizeBytes": len(content),
            "contentType": content_type,
        })
        return UploadedEvidence(id=photo_id, url=url)

    def upload_legacy_image(
        self,
        visit_id: str,
        content: bytes,
        filename: str,
        content_type: str,
        caption: str,
    ) -> None:
        self._open_visit("uploadLegacyImage", visit_id)
        self._legacy_images.setdefault(visit_id, []).append({
            "filename": filename,
            "caption": caption,
            "sizeBytes": len(content),
        })
