"""
Supervision Visit Wizard components.

Key Components:
- VisitSessionController: Five-step visit state machine (visit_controller)
- NearbyInstallationResolver / DotationResolver / ChecklistAndDocumentResolver:
  step inputs resolved from the backend
- FindingLedger: Findings recorded in and resolved across visits
- EvidenceUploadPipeline: Sequential evidence upload queue
- ClosureSummaryCalculator / WizardProgressIndicator: Derived, read-only views

Only the leaf modules are re-exported here; the components that talk to the
backend are imported from their own modules.
"""

# Configuration
from supervision.wizard.config import (
    settings,
    validate_config,
    GEOLOCATION_TIMEOUT_SECONDS,
    NEARBY_MAX_DISTANCE_M,
    LOW_GUARD_RATING_THRESHOLD,
    MIN_COMPLIANCE_RATIO,
    EXPRESS_VISIT_MINUTES,
)

# Error classes
from supervision.wizard.errors import (
    SupervisionError,
    AdmissionError,
    ValidationError,
    StepValidationError,
    StepNotReachableError,
    InvalidScoreError,
    InvalidFindingError,
    InvalidFindingTransitionError,
    FindingLinkageError,
    BackendError,
    EvidenceUploadError,
    LocationUnavailable,
    VisitStateError,
    VisitSealedError,
    VisitInvariantError,
    SessionNotFoundError,
)

# Device services
from supervision.wizard.geolocation import (
    GeolocationProbe,
    OneShotLocationProbe,
    StaticLocationProbe,
    haversine_distance_m,
)
from supervision.wizard.image_compressor import (
    CompressedImage,
    ImageCompressor,
    PreviewRegistry,
)

__all__ = [
    # Config
    "settings",
    "validate_config",
    "GEOLOCATION_TIMEOUT_SECONDS",
    "NEARBY_MAX_DISTANCE_M",
    "LOW_GUARD_RATING_THRESHOLD",
    "MIN_COMPLIANCE_RATIO",
    "EXPRESS_VISIT_MINUTES",
    # Errors
    "SupervisionError",
    "AdmissionError",
    "ValidationError",
    "StepValidationError",
    "StepNotReachableError",
    "InvalidScoreError",
    "InvalidFindingError",
    "InvalidFindingTransitionError",
    "FindingLinkageError",
    "BackendError",
    "EvidenceUploadError",
    "LocationUnavailable",
    "VisitStateError",
    "VisitSealedError",
    "VisitInvariantError",
    "SessionNotFoundError",
    # Device services
    "GeolocationProbe",
    "OneShotLocationProbe",
    "StaticLocationProbe",
    "haversine_distance_m",
    "CompressedImage",
    "ImageCompressor",
    "PreviewRegistry",
]
