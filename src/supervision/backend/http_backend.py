"""
HTTP+JSON supervision backend.

Every endpoint answers with the envelope {success, data, error}. A non-2xx
status, success=false or a transport failure raises BackendError. There is no
automatic retry: a failed call leaves the transition for the operator to
re-attempt.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests import Session

from supervision.backend.base import SupervisionBackend
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
from supervision.wizard.config import BackendSettings, settings
from supervision.wizard.errors import BackendError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/ops/supervision"


class HttpSupervisionBackend(SupervisionBackend):
    """Client for the supervision REST endpoints."""

    def __init__(
        self,
        config: Optional[BackendSettings] = None,
        session: Optional[Session] = None,
    ):
        self.config = config or settings.backend
        self.session = session or Session()
        self.session.headers.update({"Accept": "application/json"})
        if self.config.api_token:
            self.session.headers.update({"Authorization": f"Bearer {self.config.api_token}"})
        logger.info(f"HttpSupervisionBackend initialized: {self.config.base_url}")

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{API_PREFIX}{path}"

    def _request(self, operation: str, method: str, path: str, **kwargs) -> Any:
        """
        Perform one request and unwrap the response envelope.

        Returns:
            The envelope's data member

        Raises:
            BackendError: For any failure
        """
        url = self._url(path)
        try:
            response = self.session.request(method, url, timeout=self.config.timeout_seconds, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{operation}: request to {url} failed: {e}")
            raise BackendError(operation, "network error", original_error=e) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            reason = self._error_reason(body) or f"HTTP {response.status_code}"
            logger.error(f"{operation} failed. Status: {response.status_code}, Response: {response.text[:500]}")
            raise BackendError(operation, reason, response.status_code)

        if not isinstance(body, dict) or not body.get("success"):
            reason = self._error_reason(body) or "unexpected response"
            logger.error(f"{operation} rejected: {reason}")
            raise BackendError(operation, reason, response.status_code)

        return body.get("data")

    @staticmethod
    def _error_reason(body: Any) -> Optional[str]:
        if not isinstance(body, dict):
            return None
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("code")
        return error

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
        payload = {
            "installationId": installation_id,
            "lat": lat,
            "lng": lng,
            "startedVia": started_via,
        }
        if geofence_override_reason:
            payload["geofenceOverrideReason"] = geofence_override_reason
        return Visit.from_dict(self._request("createVisit", "POST", "", json=payload))

    def update_visit(self, visit_id: str, fields: Dict[str, Any]) -> Visit:
        return Visit.from_dict(self._request("updateVisit", "PATCH", f"/{visit_id}", json=fields))

    def get_visit(self, visit_id: str) -> Visit:
        return Visit.from_dict(self._request("getVisit", "GET", f"/{visit_id}"))

    def checkout(self, visit_id: str, payload: Dict[str, Any]) -> Visit:
        return Visit.from_dict(self._request("checkout", "POST", f"/{visit_id}/checkout", json=payload))

    # -------------------------------------------------------------------------
    # Installations
    # -------------------------------------------------------------------------

    def list_assigned_installations(self) -> List[Installation]:
        data = self._request("listAssignedInstallations", "GET", "/installations")
        return [Installation.from_dict(item) for item in data or []]

    def nearby_installations(
        self,
        lat: float,
        lng: float,
        max_distance_m: int,
    ) -> List[NearbyInstallation]:
        data = self._request(
            "nearbyInstallations",
            "GET",
            "/nearby",
            params={"lat": lat, "lng": lng, "maxDistanceM": max_distance_m},
        )
        return [NearbyInstallation.from_dict(item) for item in data or []]

    def get_dotation(self, installation_id: str, date: str, time: str) -> Dotation:
        data = self._request(
            "getDotation",
            "GET",
            f"/installation-dotacion/{installation_id}",
            params={"date": date, "time": time},
        )
        return Dotation.from_dict(data or {})

    def get_checklist(self, installation_id: str) -> Tuple[List[ChecklistItem], List[DocumentType]]:
        data = self._request("getChecklist", "GET", f"/installation-checklist/{installation_id}")
        if isinstance(data, list):
            return [ChecklistItem.from_dict(i) for i in data], []
        data = data or {}
        return (
            [ChecklistItem.from_dict(i) for i in data.get("items", [])],
            [DocumentType.from_dict(d) for d in data.get("documentTypes", [])],
        )

    def get_photo_categories(self, installation_id: str) -> List[PhotoCategory]:
        data = self._request(
            "getPhotoCategories", "GET", f"/installation-photo-categories/{installation_id}"
        )
        return [PhotoCategory.from_dict(c) for c in data or []]

    # -------------------------------------------------------------------------
    # Findings
    # -------------------------------------------------------------------------

    def get_open_findings(self, installation_id: str) -> List[Finding]:
        data = self._request(
            "getOpenFindings",
            "GET",
            f"/installation-findings/{installation_id}",
            params={"status": FindingStatus.OPEN.value},
        )
        return [Finding.from_dict(f) for f in data or []]

    def create_finding(self, visit_id: str, payload: Dict[str, Any]) -> Finding:
        data = self._request("createFinding", "POST", f"/{visit_id}/findings", json=payload)
        return Finding.from_dict(data)

    def update_finding_status(
        self,
        installation_id: str,
        finding_id: str,
        status: FindingStatus,
        verified_in_visit_id: str,
    ) -> Finding:
        data = self._request(
            "updateFindingStatus",
            "PATCH",
            f"/installation-findings/{installation_id}",
            json={
                "findingId": finding_id,
                "status": FindingStatus(status).value,
                "verifiedInVisitId": verified_in_visit_id,
            },
        )
        return Finding.from_dict(data)

    # -------------------------------------------------------------------------
    # Step records
    # -------------------------------------------------------------------------

    def get_evaluations(self, visit_id: str) -> List[GuardEvaluation]:
        data = self._request("getEvaluations", "GET", f"/{visit_id}/evaluations")
        return [GuardEvaluation.from_dict(e) for e in data or []]

    def save_evaluations(self, visit_id: str, evaluations: List[GuardEvaluation]) -> None:
        self._request(
            "saveEvaluations",
            "POST",
            f"/{visit_id}/evaluations",
            json={"evaluations": [e.to_dict() for e in evaluations]},
        )

    def save_checklist_results(self, visit_id: str, results: List[ChecklistResult]) -> None:
        self._request(
            "saveChecklistResults",
            "POST",
            f"/{visit_id}/checklist",
            json={"results": [r.to_dict() for r in results]},
        )

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
        form = {"categoryName": category_name}
        if category_id:
            form["categoryId"] = category_id
        if lat is not None and lng is not None:
            form["gpsLat"] = str(lat)
            form["gpsLng"] = str(lng)

        data = self._request(
            "uploadPhoto",
            "POST",
            f"/{visit_id}/photos",
            data=form,
            files={"file": (filename, content, content_type)},
        )
        return UploadedEvidence(id=data["id"], url=data["photoUrl"])

    def upload_legacy_image(
        self,
        visit_id: str,
        content: bytes,
        filename: str,
        content_type: str,
        caption: str,
    ) -> None:
        self._request(
            "uploadLegacyImage",
            "POST",
            f"/{visit_id}/images",
            data={"caption": caption},
            files={"file": (filename, content, content_type)},
        )
