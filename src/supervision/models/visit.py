"""
Visit data model - the aggregate root of one supervision inspection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Dict, Any

from supervision.models.installation import Coordinate


class VisitStatus(str, Enum):
    """Visit lifecycle status."""
    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "VisitStatus":
        """Map server status values (in_progress/completed) onto the lifecycle."""
        if value in ("completed", cls.CLOSED.value):
            return cls.CLOSED
        return cls.OPEN

    def to_wire(self) -> str:
        return "completed" if self == VisitStatus.CLOSED else "in_progress"


class InstallationState(str, Enum):
    """Operator assessment of the site as a whole."""
    NORMAL = "normal"
    INCIDENCIA = "incidencia"
    CRITICO = "critico"


class WizardStep(IntEnum):
    """Wizard states. CLOSED is reached only through checkout."""
    CHECK_IN = 1
    EVALUATION = 2
    CHECKLIST = 3
    EVIDENCE = 4
    CLOSURE = 5
    CLOSED = 6

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS = {
    WizardStep.CHECK_IN: "Check-in",
    WizardStep.EVALUATION: "Evaluation",
    WizardStep.CHECKLIST: "Checklist",
    WizardStep.EVIDENCE: "Evidence",
    WizardStep.CLOSURE: "Closure",
    WizardStep.CLOSED: "Closed",
}


@dataclass
class LogbookEntry:
    """Guard logbook verification captured in step 3."""
    up_to_date: Optional[bool] = None
    last_entry_date: Optional[str] = None
    notes: str = ""
    photo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookUpToDate": self.up_to_date,
            "bookLastEntryDate": self.last_entry_date or None,
            "bookNotes": self.notes,
            "bookPhotoUrl": self.photo_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogbookEntry":
        last_entry = data.get("bookLastEntryDate")
        return cls(
            up_to_date=data.get("bookUpToDate"),
            last_entry_date=last_entry[:10] if last_entry else None,
            notes=data.get("bookNotes") or "",
            photo_url=data.get("bookPhotoUrl"),
        )


SURVEY_SCORE_FIELDS = (
    "service_quality",
    "schedule_compliance",
    "personal_presentation",
    "professionalism",
)


@dataclass
class ClientSurvey:
    """Closing client survey captured in step 5."""
    contacted: bool = False
    contact_name: str = ""
    contact_role: str = ""
    service_quality: Optional[int] = None
    schedule_compliance: Optional[int] = None
    personal_presentation: Optional[int] = None
    professionalism: Optional[int] = None
    comment: str = ""
    urgent_risk: bool = False
    urgent_risk_detail: str = ""
    nps: Optional[int] = None
    # "signature" or "photo"; None when the client did not validate
    validation_kind: Optional[str] = None

    def sub_scores(self) -> list:
        return [getattr(self, name) for name in SURVEY_SCORE_FIELDS]

    def satisfaction(self) -> Optional[float]:
        """
        Mean of the rated sub-scores, rounded to 2 decimals.

        Unrated sub-scores are excluded rather than counted as zero. None when
        the client was not contacted or nothing was rated.
        """
        if not self.contacted:
            return None
        rated = [s for s in self.sub_scores() if s is not None]
        if not rated:
            return None
        return round(sum(rated) / len(rated), 2)

    def details(self) -> Dict[str, Any]:
        """Survey detail payload sent with checkout."""
        return {
            "contactRole": self.contact_role or None,
            "serviceQuality": self.service_quality,
            "scheduleCompliance": self.schedule_compliance,
            "personalPresentation": self.personal_presentation,
            "professionalism": self.professionalism,
            "urgentRisk": self.urgent_risk,
            "urgentRiskDetail": self.urgent_risk_detail or None,
            "nps": self.nps,
            "validationKind": self.validation_kind,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientContacted": self.contacted,
            "clientContactName": self.contact_name,
            "clientComment": self.comment,
            "clientSatisfaction": self.satisfaction(),
            "clientSurvey": self.details(),
        }


@dataclass
class Visit:
    """
    Server-side record of one inspection.

    guards_expected is frozen at check-in; the controller owns that rule.
    """
    id: str
    installation_id: str
    status: VisitStatus = VisitStatus.OPEN
    wizard_step: int = WizardStep.CHECK_IN
    installation_name: Optional[str] = None
    started_via: Optional[str] = None
    completed_via: Optional[str] = None

    # Temporal
    check_in_at: Optional[datetime] = None
    check_in_location: Optional[Coordinate] = None
    check_in_distance_m: Optional[int] = None
    check_in_geo_validated: Optional[bool] = None
    geofence_override_reason: Optional[str] = None
    check_out_at: Optional[datetime] = None
    check_out_location: Optional[Coordinate] = None
    check_out_geo_validated: Optional[bool] = None
    duration_minutes: Optional[int] = None
    is_express_flagged: bool = False

    # Staffing
    guards_expected: Optional[int] = None
    guards_found: Optional[int] = None

    # Narrative
    installation_state: InstallationState = InstallationState.NORMAL
    general_comments: str = ""
    logbook: LogbookEntry = field(default_factory=LogbookEntry)
    document_checklist: Dict[str, bool] = field(default_factory=dict)

    # Client survey
    client_contacted: bool = False
    client_contact_name: Optional[str] = None
    client_satisfaction: Optional[float] = None
    client_comment: Optional[str] = None
    client_validation_url: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status == VisitStatus.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "installationId": self.installation_id,
            "installationName": self.installation_name,
            "status": self.status.to_wire(),
            "wizardStep": int(self.wizard_step),
            "startedVia": self.started_via,
            "completedVia": self.completed_via,
            "checkInAt": self.check_in_at.isoformat() if self.check_in_at else None,
            "checkInLat": self.check_in_location.lat if self.check_in_location else None,
            "checkInLng": self.check_in_location.lng if self.check_in_location else None,
            "checkInDistanciaM": self.check_in_distance_m,
            "checkInGeoValidada": self.check_in_geo_validated,
            "geofenceOverrideReason": self.geofence_override_reason,
            "checkOutAt": self.check_out_at.isoformat() if self.check_out_at else None,
            "checkOutLat": self.check_out_location.lat if self.check_out_location else None,
            "checkOutLng": self.check_out_location.lng if self.check_out_location else None,
            "checkOutGeoValidada": self.check_out_geo_validated,
            "durationMinutes": self.duration_minutes,
            "isExpressFlagged": self.is_express_flagged,
            "guardsExpected": self.guards_expected,
            "guardsFound": self.guards_found,
            "installationState": self.installation_state.value,
            "generalComments": self.general_comments,
            **self.logbook.to_dict(),
            "documentChecklist": dict(self.document_checklist),
            "clientContacted": self.client_contacted,
            "clientContactName": self.client_contact_name,
            "clientSatisfaction": self.client_satisfaction,
            "clientComment": self.client_comment,
            "clientValidationUrl": self.client_validation_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Visit":
        def _dt(key: str) -> Optional[datetime]:
            return datetime.fromisoformat(data[key]) if data.get(key) else None

        def _coord(prefix: str, at: Optional[datetime]) -> Optional[Coordinate]:
            lat, lng = data.get(f"{prefix}Lat"), data.get(f"{prefix}Lng")
            if lat is None or lng is None:
                return None
            if at is None:
                return Coordinate(lat=float(lat), lng=float(lng))
            return Coordinate(lat=float(lat), lng=float(lng), captured_at=at)

        installation = data.get("installation") or {}
        check_in_at = _dt("checkInAt")
        check_out_at = _dt("checkOutAt")

        return cls(
            id=data["id"],
            installation_id=data.get("installationId") or installation.get("id", ""),
            status=VisitStatus.from_wire(data.get("status")),
            wizard_step=int(data.get("wizardStep") or WizardStep.CHECK_IN),
            installation_name=data.get("installationName") or installation.get("name"),
            started_via=data.get("startedVia"),
            completed_via=data.get("completedVia"),
            check_in_at=check_in_at,
            check_in_location=_coord("checkIn", check_in_at),
            check_in_distance_m=data.get("checkInDistanciaM"),
            check_in_geo_validated=data.get("checkInGeoValidada"),
            geofence_override_reason=data.get("geofenceOverrideReason"),
            check_out_at=check_out_at,
            check_out_location=_coord("checkOut", check_out_at),
            check_out_geo_validated=data.get("checkOutGeoValidada"),
            duration_minutes=data.get("durationMinutes"),
            is_express_flagged=bool(data.get("isExpressFlagged", False)),
            guards_expected=data.get("guardsExpected"),
            guards_found=data.get("guardsFound"),
            installation_state=InstallationState(data.get("installationState") or "normal"),
            general_comments=data.get("generalComments") or "",
            logbook=LogbookEntry.from_dict(data),
            document_checklist=dict(data.get("documentChecklist") or {}),
            client_contacted=bool(data.get("clientContacted", False)),
            client_contact_name=data.get("clientContactName"),
            client_satisfaction=data.get("clientSatisfaction"),
            client_comment=data.get("clientComment"),
            client_validation_url=data.get("clientValidationUrl"),
        )
