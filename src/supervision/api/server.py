"""
Wizard HTTP API for the Supervision Visit Wizard.

Exposes wizard sessions over HTTP so a thin device UI can render controller
state and forward operator input. The controller owns every rule; endpoints
only translate requests into controller calls and return the state snapshot.

Endpoints:
- POST /api/supervision/sessions - Start (or resume) a wizard session
- GET /api/supervision/sessions/{session_id}/state - Session state snapshot
- POST /api/supervision/sessions/{session_id}/location - Report a position fix
- POST /api/supervision/sessions/{session_id}/advance - Perform the current step's transition
- POST /api/supervision/sessions/{session_id}/checkout - Seal the visit
- ... per-step mutation endpoints (see router below)

Usage:
    # Run server
    uvicorn supervision.api.server:app --port 8000

    # Or use in existing FastAPI app
    from supervision.api.server import router
    app.include_router(router)
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from supervision import __version__
from supervision.backend import SupervisionBackend, create_supervision_backend
from supervision.models import Coordinate, WizardStep
from supervision.wizard.errors import (
    AdmissionError,
    BackendError,
    EvidenceUploadError,
    LocationUnavailable,
    SessionNotFoundError,
    SupervisionError,
    ValidationError,
    VisitInvariantError,
    VisitStateError,
)
from supervision.wizard.geolocation import OneShotLocationProbe
from supervision.wizard.visit_controller import VisitSessionController

logger = logging.getLogger(__name__)


# =============================================================================
# Session Registry
# =============================================================================

@dataclass
class WizardSession:
    """A controller, the probe its device reports fixes into, and a lock."""
    controller: VisitSessionController
    probe: OneShotLocationProbe
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def session_id(self) -> str:
        return self.controller.session_id


class SessionRegistry:
    """Active wizard sessions, keyed by session id."""

    def __init__(self, backend: SupervisionBackend):
        self.backend = backend
        self._sessions: Dict[str, WizardSession] = {}
        self._lock = threading.Lock()

    def create(self) -> WizardSession:
        probe = OneShotLocationProbe()
        controller = VisitSessionController(self.backend, probe)
        session = WizardSession(controller=controller, probe=probe)
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info(f"Wizard session {session.session_id} started")
        return session

    def get(self, session_id: str) -> WizardSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.controller.previews.release_all()
        logger.info(f"Wizard session {session_id} discarded")

    def active(self) -> List[WizardSession]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> WizardSession:
    return registry.get(session_id)


# =============================================================================
# Request/Response Models
# =============================================================================

class StartSessionRequest(BaseModel):
    """Request to start a wizard session."""

    visit_id: Optional[str] = Field(None, description="Resume this open visit instead of starting fresh")


class LocationRequest(BaseModel):
    """A position fix reported by the device, or the reason none is available."""

    lat: Optional[float] = Field(None, ge=-90, le=90, description="Latitude")
    lng: Optional[float] = Field(None, ge=-180, le=180, description="Longitude")
    accuracy_m: Optional[float] = Field(None, ge=0, description="Reported accuracy in metres")
    error: Optional[str] = Field(None, description="Positioning failure reason")


class SelectInstallationRequest(BaseModel):
    installation_id: str = Field(..., description="Installation to check in to")


class CheckInDetailsRequest(BaseModel):
    """Operator input of step 1."""

    guards_found: Optional[int] = Field(None, description="Guards physically present")
    geofence_override_reason: Optional[str] = Field(None, description="Reason for checking in outside the geofence")


class RateGuardRequest(BaseModel):
    presentation_score: Optional[int] = Field(None, description="Presentation score (1-5)")
    order_score: Optional[int] = Field(None, description="Order score (1-5)")
    protocol_score: Optional[int] = Field(None, description="Protocol score (1-5)")
    observation: Optional[str] = Field(None, description="Free-text observation")


class UnlistedGuardRequest(BaseModel):
    guard_name: str = Field(..., description="Guard name")
    guard_id: Optional[str] = Field(None, description="Guard id, if known")
    is_reinforcement: bool = Field(True, description="Guard is not on the regular roster")


class InstallationStateRequest(BaseModel):
    state: str = Field(..., description="normal, incidencia or critico")


class FindingStatusRequest(BaseModel):
    status: str = Field("verified", description="in_progress or verified")


class ChecklistItemRequest(BaseModel):
    checked: bool = Field(..., description="Item complies")


class LogbookRequest(BaseModel):
    up_to_date: Optional[bool] = Field(None, description="Logbook is up to date")
    last_entry_date: Optional[str] = Field(None, description="Date of the last entry (YYYY-MM-DD)")
    notes: str = Field("", description="Notes (required when not up to date)")


class ClosureRequest(BaseModel):
    """Operator input of step 5. Omitted fields are left unchanged."""

    general_comments: Optional[str] = None
    client_contacted: Optional[bool] = None
    client_contact_name: Optional[str] = None
    client_contact_role: Optional[str] = None
    service_quality: Optional[int] = None
    schedule_compliance: Optional[int] = None
    personal_presentation: Optional[int] = None
    professionalism: Optional[int] = None
    client_comment: Optional[str] = None
    urgent_risk: Optional[bool] = None
    urgent_risk_detail: Optional[str] = None
    nps: Optional[int] = None


class GoToStepRequest(BaseModel):
    step: int = Field(..., description="Step to revisit (1-5)")


class StateResponse(BaseModel):
    """Response containing session state."""

    session_id: str
    state: Dict[str, Any]
    timestamp: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    active_sessions: int


def _state(session: WizardSession) -> StateResponse:
    return StateResponse(
        session_id=session.session_id,
        state=session.controller.state(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def _coordinate(request: LocationRequest) -> Optional[Coordinate]:
    if request.lat is None or request.lng is None:
        return None
    return Coordinate(lat=request.lat, lng=request.lng, accuracy_m=request.accuracy_m)


def _report_fix(session: WizardSession, request: LocationRequest) -> None:
    coordinate = _coordinate(request)
    if coordinate is None and not request.error:
        raise HTTPException(status_code=422, detail="lat and lng, or error, are required")
    session.probe.provide(coordinate=coordinate, error=request.error)


def _read(upload: UploadFile) -> bytes:
    content = upload.file.read()
    if not content:
        raise HTTPException(status_code=422, detail=f"Uploaded file {upload.filename} is empty")
    return content


# =============================================================================
# Error Handling
# =============================================================================

def error_status(error: SupervisionError) -> int:
    """HTTP status for a wizard error."""
    if isinstance(error, (AdmissionError, ValidationError)):
        return 422
    if isinstance(error, SessionNotFoundError):
        return 404
    if isinstance(error, VisitStateError):
        return 409
    if isinstance(error, LocationUnavailable):
        return 503
    if isinstance(error, (BackendError, EvidenceUploadError)):
        return 502
    return 500


async def supervision_error_handler(request: Request, exc: SupervisionError) -> JSONResponse:
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# =============================================================================
# Router
# =============================================================================

router = APIRouter(prefix="/api/supervision", tags=["Supervision Wizard"])


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------

@router.post("/sessions", response_model=StateResponse)
def start_session(request: StartSessionRequest, registry: SessionRegistry = Depends(get_registry)):
    """Start a wizard session, optionally resuming an open visit."""
    session = registry.create()
    if request.visit_id:
        try:
            session.controller.resume(request.visit_id)
        except SupervisionError:
            registry.remove(session.session_id)
            raise
    return _state(session)


@router.get("/sessions")
def list_sessions(registry: SessionRegistry = Depends(get_registry)):
    """List all active sessions."""
    sessions = registry.active()
    return {
        "sessions": [
            {
                "session_id": s.session_id,
                "visit_id": s.controller.draft.visit_id,
                "current_step": int(s.controller.current_step),
                "closed": s.controller.draft.is_closed,
                "created_at": s.created_at.isoformat(),
            }
            for s in sessions
        ],
        "count": len(sessions),
    }


@router.get("/sessions/{session_id}/state", response_model=StateResponse)
def get_session_state(session: WizardSession = Depends(get_session)):
    """Get current state for a session."""
    return _state(session)


@router.delete("/sessions/{session_id}")
def discard_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    registry.remove(session_id)
    return {"status": "discarded", "session_id": session_id}


# -----------------------------------------------------------------------------
# Step 1: Check-in
# -----------------------------------------------------------------------------

@router.get("/sessions/{session_id}/installations")
def list_installations(session: WizardSession = Depends(get_session)):
    with session.lock:
        candidates = session.controller.list_installations()
    return {"installations": [c.to_dict() for c in candidates]}


@router.post("/sessions/{session_id}/location", response_model=StateResponse)
def report_location(request: LocationRequest, session: WizardSession = Depends(get_session)):
    """Report a fix and rank installations against it."""
    with session.lock:
        _report_fix(session, request)
        session.controller.locate()
        return _state(session)


@router.post("/sessions/{session_id}/installation", response_model=StateResponse)
def select_installation(request: SelectInstallationRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.select_installation(request.installation_id)
        return _state(session)


@router.patch("/sessions/{session_id}/check-in", response_model=StateResponse)
def update_check_in(request: CheckInDetailsRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        if request.guards_found is not None:
            session.controller.set_guards_found(request.guards_found)
        if request.geofence_override_reason is not None:
            session.controller.set_geofence_override_reason(request.geofence_override_reason)
        return _state(session)


# -----------------------------------------------------------------------------
# Step 2: Evaluation
# -----------------------------------------------------------------------------

@router.patch("/sessions/{session_id}/evaluations/{index}", response_model=StateResponse)
def rate_guard(index: int, request: RateGuardRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.rate_guard(
            index,
            presentation=request.presentation_score,
            order=request.order_score,
            protocol=request.protocol_score,
            observation=request.observation,
        )
        return _state(session)


@router.post("/sessions/{session_id}/evaluations", response_model=StateResponse)
def add_unlisted_guard(request: UnlistedGuardRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.add_unlisted_guard(
            request.guard_name,
            guard_id=request.guard_id,
            is_reinforcement=request.is_reinforcement,
        )
        return _state(session)


@router.put("/sessions/{session_id}/installation-state", response_model=StateResponse)
def set_installation_state(request: InstallationStateRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.set_installation_state(request.state)
        return _state(session)


@router.post("/sessions/{session_id}/findings")
def record_finding(
    category: str = Form(...),
    severity: str = Form(...),
    description: str = Form(...),
    guard_id: Optional[str] = Form(None),
    checklist_item_id: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    session: WizardSession = Depends(get_session),
):
    """Record a finding, with an optional photo uploaded before it is created."""
    content = _read(photo) if photo is not None else None
    with session.lock:
        finding = session.controller.record_finding(
            category,
            severity,
            description,
            guard_id=guard_id,
            photo=content,
            photo_filename=photo.filename if photo is not None else "finding.jpg",
            checklist_item_id=checklist_item_id,
        )
    return {"finding": finding.to_dict()}


# -----------------------------------------------------------------------------
# Step 3: Checklist
# -----------------------------------------------------------------------------

@router.put("/sessions/{session_id}/checklist/{item_id}", response_model=StateResponse)
def set_checklist_item(item_id: str, request: ChecklistItemRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.set_checklist_item(item_id, request.checked)
        return _state(session)


@router.put("/sessions/{session_id}/documents/{code}", response_model=StateResponse)
def answer_document(
    code: str,
    answer: str = Form(...),
    photo: Optional[UploadFile] = File(None),
    session: WizardSession = Depends(get_session),
):
    content = _read(photo) if photo is not None else None
    with session.lock:
        session.controller.answer_document(
            code,
            answer,
            photo=content,
            photo_filename=photo.filename if photo is not None else "document.jpg",
            content_type=(photo.content_type or "image/jpeg") if photo is not None else "image/jpeg",
        )
        return _state(session)


@router.put("/sessions/{session_id}/logbook", response_model=StateResponse)
def set_logbook(request: LogbookRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.set_logbook(request.up_to_date, request.last_entry_date, request.notes)
        return _state(session)


@router.post("/sessions/{session_id}/logbook/photo", response_model=StateResponse)
def attach_logbook_photo(photo: UploadFile = File(...), session: WizardSession = Depends(get_session)):
    content = _read(photo)
    with session.lock:
        session.controller.attach_logbook_photo(content, photo.filename, photo.content_type or "image/jpeg")
        return _state(session)


@router.post("/sessions/{session_id}/open-findings/{finding_id}/status")
def resolve_open_finding(finding_id: str, request: FindingStatusRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        finding = session.controller.resolve_open_finding(finding_id, request.status)
    return {"finding": finding.to_dict()}


# -----------------------------------------------------------------------------
# Step 4: Evidence
# -----------------------------------------------------------------------------

@router.post("/sessions/{session_id}/photos")
def capture_photo(
    category_id: str = Form(...),
    photo: UploadFile = File(...),
    session: WizardSession = Depends(get_session),
):
    content = _read(photo)
    with session.lock:
        captured = session.controller.capture_photo(category_id, content, photo.filename, photo.content_type or "image/jpeg")
    return {"photo": captured.to_dict()}


@router.delete("/sessions/{session_id}/photos/{capture_id}", response_model=StateResponse)
def remove_photo(capture_id: str, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.remove_photo(capture_id)
        return _state(session)


@router.get("/sessions/{session_id}/photos/{capture_id}/preview")
def get_preview(capture_id: str, session: WizardSession = Depends(get_session)):
    preview = session.controller.preview(capture_id)
    if preview is None:
        raise HTTPException(status_code=404, detail="Preview not available")
    return Response(content=preview, media_type="image/jpeg")


@router.post("/sessions/{session_id}/evidence/upload")
def upload_evidence(session: WizardSession = Depends(get_session)):
    """Upload pending evidence without leaving step 4."""
    with session.lock:
        report = session.controller.upload_evidence()
    return report.to_dict()


# -----------------------------------------------------------------------------
# Step 5: Closure
# -----------------------------------------------------------------------------

@router.patch("/sessions/{session_id}/closure", response_model=StateResponse)
def update_closure(request: ClosureRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        controller = session.controller
        if request.general_comments is not None:
            controller.set_general_comments(request.general_comments)
        controller.set_client_survey(
            contacted=request.client_contacted,
            contact_name=request.client_contact_name,
            contact_role=request.client_contact_role,
            service_quality=request.service_quality,
            schedule_compliance=request.schedule_compliance,
            personal_presentation=request.personal_presentation,
            professionalism=request.professionalism,
            comment=request.client_comment,
            urgent_risk=request.urgent_risk,
            urgent_risk_detail=request.urgent_risk_detail,
            nps=request.nps,
        )
        return _state(session)


@router.post("/sessions/{session_id}/client-validation", response_model=StateResponse)
def set_client_validation(
    kind: str = Form("signature"),
    image: UploadFile = File(...),
    session: WizardSession = Depends(get_session),
):
    content = _read(image)
    with session.lock:
        session.controller.set_client_validation(content, kind, image.filename, image.content_type or "image/png")
        return _state(session)


@router.get("/sessions/{session_id}/summary")
def get_summary(session: WizardSession = Depends(get_session)):
    with session.lock:
        return session.controller.summary().to_dict()


# -----------------------------------------------------------------------------
# Navigation
# -----------------------------------------------------------------------------

@router.post("/sessions/{session_id}/advance", response_model=StateResponse)
def advance(session: WizardSession = Depends(get_session)):
    """Perform the current step's transition (check-in, save, upload)."""
    with session.lock:
        controller = session.controller
        if controller.current_step == WizardStep.CLOSURE:
            # The probe would wait for a fix this request cannot carry
            raise VisitInvariantError(controller.draft.visit_id, "step 5 is left through /checkout with a position fix")
        controller.advance()
        return _state(session)


@router.post("/sessions/{session_id}/goto", response_model=StateResponse)
def go_to_step(request: GoToStepRequest, session: WizardSession = Depends(get_session)):
    with session.lock:
        session.controller.go_to_step(request.step)
        return _state(session)


@router.post("/sessions/{session_id}/checkout", response_model=StateResponse)
def checkout(
    request: LocationRequest,
    session: WizardSession = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Report the checkout fix, seal the visit and close the session."""
    with session.lock:
        _report_fix(session, request)
        session.controller.checkout()
        state = _state(session)
    registry.remove(session.session_id)
    return state


# =============================================================================
# Application Factory
# =============================================================================

def create_app(backend: Optional[SupervisionBackend] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        backend: Supervision backend (default from configuration)
    """
    app = FastAPI(
        title="Supervision Wizard API",
        description="Field supervision visit wizard sessions",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = SessionRegistry(backend or create_supervision_backend())
    app.add_exception_handler(SupervisionError, supervision_error_handler)
    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service="supervision-wizard",
            version=__version__,
            active_sessions=len(app.state.registry),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supervision.api.server:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
