"""
Configuration for the Supervision Visit Wizard.

This module centralizes all configuration settings for the wizard, including
the backend connection, geolocation fix policy, image compression budget and
the thresholds used to raise (non-blocking) anomaly flags.

Usage:
    from supervision.wizard.config import settings

    base_url = settings.backend.base_url
    timeout = settings.geolocation.timeout_seconds
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Final


# =============================================================================
# Enumerations
# =============================================================================

class BackendType(Enum):
    """Available backend implementations."""
    MEMORY = "memory"
    HTTP = "http"


# =============================================================================
# Configuration Data Classes
# =============================================================================

@dataclass(frozen=True)
class BackendSettings:
    """Supervision backend (HTTP+JSON) configuration."""
    base_url: str
    api_token: str | None = None
    timeout_seconds: float = 30.0
    backend_type: str = BackendType.HTTP.value
    started_via: str = "mobile"
    completed_via: str = "mobile"

    @classmethod
    def from_env(cls) -> BackendSettings:
        """Create settings from environment variables."""
        return cls(
            base_url=os.getenv("SUPERVISION_API_URL", "http://localhost:3000").rstrip("/"),
            api_token=os.getenv("SUPERVISION_API_TOKEN") or None,
            timeout_seconds=float(os.getenv("SUPERVISION_API_TIMEOUT", "30")),
            backend_type=os.getenv("SUPERVISION_BACKEND", BackendType.HTTP.value),
        )


@dataclass(frozen=True)
class GeolocationSettings:
    """
    Position fix policy.

    A single high-accuracy fix is requested per transition. maximum_age_seconds
    of 0 means a fix is never reused for a second request.
    """
    timeout_seconds: float = 15.0
    maximum_age_seconds: float = 0.0
    high_accuracy: bool = True
    nearby_max_distance_m: int = 30000


@dataclass(frozen=True)
class CompressionSettings:
    """
    Image compression budget.

    Qualities are integer JPEG percentages: 80 -> 70 -> ... -> 30.
    """
    max_size_kb: int = 800
    max_dimension_px: int = 1920
    initial_quality: int = 80
    quality_step: int = 10
    min_quality: int = 30
    preview_max_px: int = 320


@dataclass(frozen=True)
class AnomalyThresholds:
    """Thresholds for anomaly flags. None of these ever block a transition."""
    low_guard_rating: float = 3.0
    min_compliance_ratio: float = 0.8
    express_visit_minutes: int = 15


@dataclass(frozen=True)
class ServerSettings:
    """Wizard API server settings."""
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> ServerSettings:
        return cls(
            host=os.getenv("SUPERVISION_HOST", "0.0.0.0"),
            port=int(os.getenv("SUPERVISION_PORT", "8000")),
        )


# =============================================================================
# Main Settings Container
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """
    Central configuration container for the wizard.

    Access settings via the global `settings` instance:
        from supervision.wizard.config import settings

        radius = settings.geolocation.nearby_max_distance_m
    """
    backend: BackendSettings
    geolocation: GeolocationSettings
    compression: CompressionSettings
    anomalies: AnomalyThresholds
    server: ServerSettings

    @classmethod
    def load(cls) -> Settings:
        """Load settings from environment and defaults."""
        return cls(
            backend=BackendSettings.from_env(),
            geolocation=GeolocationSettings(),
            compression=CompressionSettings(),
            anomalies=AnomalyThresholds(),
            server=ServerSettings.from_env(),
        )


# =============================================================================
# Global Settings Instance
# =============================================================================

settings: Final[Settings] = Settings.load()


# Shorthand exports used across the wizard modules.
GEOLOCATION_TIMEOUT_SECONDS: Final[float] = settings.geolocation.timeout_seconds
NEARBY_MAX_DISTANCE_M: Final[int] = settings.geolocation.nearby_max_distance_m

LOW_GUARD_RATING_THRESHOLD: Final[float] = settings.anomalies.low_guard_rating
MIN_COMPLIANCE_RATIO: Final[float] = settings.anomalies.min_compliance_ratio
EXPRESS_VISIT_MINUTES: Final[int] = settings.anomalies.express_visit_minutes


# =============================================================================
# Utility Functions
# =============================================================================

def validate_config(config: Settings | None = None) -> list[str]:
    """
    Validate configuration settings.

    Returns:
        List of validation errors (empty if valid)
    """
    config = config or settings
    errors = []

    if not config.backend.base_url.startswith(("http://", "https://")):
        errors.append(f"Backend URL must be http(s): {config.backend.base_url}")

    if config.backend.backend_type not in {b.value for b in BackendType}:
        errors.append(f"Unknown backend type: {config.backend.backend_type}")

    if config.backend.timeout_seconds <= 0:
        errors.append(f"Backend timeout must be positive: {config.backend.timeout_seconds}")

    compression = config.compression
    if not 0 < compression.min_quality <= compression.initial_quality <= 100:
        errors.append(
            f"Quality range invalid: floor {compression.min_quality}, start {compression.initial_quality}"
        )
    if compression.quality_step <= 0:
        errors.append(f"Quality step must be positive: {compression.quality_step}")

    if not 0.0 <= config.anomalies.min_compliance_ratio <= 1.0:
        errors.append(f"Compliance threshold out of range: {config.anomalies.min_compliance_ratio}")

    return errors
