"""
Supervision Backend - the server operations the wizard depends on.

Provides:
- SupervisionBackend: Abstract base class defining the operation contracts

Every implementation reports any failure (non-2xx status, rejected payload,
transport error) as BackendError so callers treat all of them uniformly as
"step not advanced, error surfaced".
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from supervision.models import (
    ChecklistItem,
    ChecklistResult,
    DocumentType,
    Dotation,
    Finding,
    FindingStatus,
    GuardEvaluation,
    Installation,
    NearbyInstallation,
    PhotoCategory,
    UploadedEvidence,
    Visit,
)


# =============================================================================
# Abstract Base Class
# =============================================================================

class SupervisionBackend(ABC):
    """
    Abstract interface for supervision visit persistence.

    All backends (in-memory, HTTP) implement these operations so the
    controller behaves the same against any of them.
    """

    # -------------------------------------------------------------------------
    # Visits
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_visit(
        self,
        installation_id: str,
        lat: float,
        lng: float,
        started_via: str,
        geofence_override_reason: Optional[str] = None,
    ) -> Visit:
        """
        Check in: create an open visit at wizard step 1.

        Args:
            installation_id: Installation being supervised
            lat: Check-in latitude
            lng: Check-in longitude
            started_via: Entry channel ("mobile", "hub", ...)
            geofence_override_reason: Reason given when outside the geofence

        Returns:
            Created visit with its server-assigned id
        """
        pass

    @abstractmethod
    def update_visit(self, visit_id: str, fields: Dict[str, Any]) -> Visit:
        """
        Persist a partial set of visit fields (camelCase wire keys).

        Returns:
            Updated visit
        """
        pass

    @abstractmethod
    def get_visit(self, visit_id: str) -> Visit:
        """Load a visit by id."""
        pass

    @abstractmethod
    def checkout(self, visit_id: str, payload: Dict[str, Any]) -> Visit:
        """
        Seal a visit with the full closure payload.

        Returns:
            Closed visit
        """
        pass

    # -------------------------------------------------------------------------
    # Installations
    # -------------------------------------------------------------------------

    @abstractmethod
    def list_assigned_installations(self) -> List[Installation]:
        """Installations the current supervisor may visit (no distance)."""
        pass

    @abstractmethod
    def nearby_installations(
        self,
        lat: float,
        lng: float,
        max_distance_m: int,
    ) -> List[NearbyInstallation]:
        """Installations within max_distance_m of a point, nearest first."""
        pass

    @abstractmethod
    def get_dotation(self, installation_id: str, date: str, time: str) -> Dotation:
        """
        Expected roster for an installation.

        Args:
            installation_id: Installation identifier
            date: ISO date (YYYY-MM-DD)
            time: Local time (HH:MM)
        """
        pass

    @abstractmethod
    def get_checklist(self, installation_id: str) -> Tuple[List[ChecklistItem], List[DocumentType]]:
        """Configured checklist items and required document types."""
        pass

    @abstractmethod
    def get_photo_categories(self, installation_id: str) -> List[PhotoCategory]:
        """Configured photo evidence categories."""
        pass

    # -------------------------------------------------------------------------
    # Findings
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_open_findings(self, installation_id: str) -> List[Finding]:
        """Findings at an installation that are still open."""
        pass

    @abstractmethod
    def create_finding(self, visit_id: str, payload: Dict[str, Any]) -> Finding:
        """
        Record a finding in a visit.

        Args:
            visit_id: Visit the finding was observed in
            payload: guardId, category, severity, description, photoUrl
        """
        pass

    @abstractmethod
    def update_finding_status(
        self,
        installation_id: str,
        finding_id: str,
        status: FindingStatus,
        verified_in_visit_id: str,
    ) -> Finding:
        """Move a finding toward verified, recording the resolving visit."""
        pass

    # -------------------------------------------------------------------------
    # Step records
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_evaluations(self, visit_id: str) -> List[GuardEvaluation]:
        """Stored guard evaluations of a visit."""
        pass

    @abstractmethod
    def save_evaluations(self, visit_id: str, evaluations: List[GuardEvaluation]) -> None:
        """Replace the stored guard evaluations of a visit."""
        pass

    @abstractmethod
    def save_checklist_results(self, visit_id: str, results: List[ChecklistResult]) -> None:
        """Upsert checklist results of a visit."""
        pass

    # -------------------------------------------------------------------------
    # Evidence
    # -------------------------------------------------------------------------

    @abstractmethod
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
        """Primary evidence store. Returns the server id and URL."""
        pass

    @abstractmethod
    def upload_legacy_image(
        self,
        visit_id: str,
        content: bytes,
        filename: str,
        content_type: str,
        caption: str,
    ) -> None:
        """Legacy duplicate store kept for backward compatibility."""
        pass
