"""
GeolocationProbe - single best-effort position fix per request.

Provides:
- GeolocationProbe: Abstract interface used by check-in and checkout
- OneShotLocationProbe: Fixes reported by the device, each consumed once
- StaticLocationProbe: Fixed position for demos and tests
- haversine_distance_m: Great-circle distance in metres
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from supervision.models import Coordinate
from supervision.wizard.config import GeolocationSettings, settings
from supervision.wizard.errors import LocationUnavailable

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Abstract Base Class
# =============================================================================

class GeolocationProbe(ABC):
    """
    Wraps the device positioning capability.

    Implementations return a fresh fix or raise LocationUnavailable. They must
    never substitute a stale or default coordinate.
    """

    @abstractmethod
    def get_current_location(self) -> Coordinate:
        """
        Request a single high-accuracy fix.

        Returns:
            Fresh coordinate

        Raises:
            LocationUnavailable: On timeout, permission denial or hardware error
        """
        pass


# =============================================================================
# Device-reported Implementation
# =============================================================================

class OneShotLocationProbe(GeolocationProbe):
    """
    Probe fed by fixes the device reports (e.g. through the wizard API).

    Each reported fix serves at most one request. A request waits up to the
    configured timeout for a fix; fixes older than that window are discarded
    as stale. A reported error (permission denied, hardware failure) fails the
    next request with that reason.
    """

    def __init__(
        self,
        config: Optional[GeolocationSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or settings.geolocation
        self._clock = clock
        self._condition = threading.Condition()
        self._pending: Optional[Coordinate] = None
        self._error: Optional[str] = None

    def provide(self, coordinate: Optional[Coordinate] = None, error: Optional[str] = None) -> None:
        """Report a fix, or the reason no fix could be obtained."""
        with self._condition:
            if error:
                self._pending = None
                self._error = error
            else:
                self._pending = coordinate
                self._error = None
            self._condition.notify_all()

    def _is_fresh(self, coordinate: Coordinate) -> bool:
        window = self.config.maximum_age_seconds + self.config.timeout_seconds
        age = (self._clock() - coordinate.captured_at).total_seconds()
        return age <= window

    def get_current_location(self) -> Coordinate:
        with self._condition:
            if self._pending is None and self._error is None:
                self._condition.wait_for(
                    lambda: self._pending is not None or self._error is not None,
                    timeout=self.config.timeout_seconds,
                )

            if self._error:
                reason, self._error = self._error, None
                logger.warning(f"Location request failed: {reason}")
                raise LocationUnavailable(reason)

            coordinate, self._pending = self._pending, None

        if coordinate is None:
            raise LocationUnavailable(
                f"no position fix within {self.config.timeout_seconds:.0f}s"
            )
        if not self._is_fresh(coordinate):
            raise LocationUnavailable("position fix is stale")
        return coordinate


# =============================================================================
# Static Implementation
# =============================================================================

class StaticLocationProbe(GeolocationProbe):
    """
    Returns the same position on every request, stamped with the request time.

    With no position configured every request fails, which models a device
    whose positioning is unavailable.
    """

    def __init__(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        accuracy_m: Optional[float] = 5.0,
        failure_reason: str = "position unavailable",
    ):
        self.lat = lat
        self.lng = lng
        self.accuracy_m = accuracy_m
        self.failure_reason = failure_reason

    def move_to(self, lat: float, lng: float) -> None:
        self.lat = lat
        self.lng = lng

    def get_current_location(self) -> Coordinate:
        if self.lat is None or self.lng is None:
            raise LocationUnavailable(self.failure_reason)
        return Coordinate(lat=self.lat, lng=self.lng, accuracy_m=self.accuracy_m)
