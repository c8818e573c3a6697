"""
Installation and position data models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any


DEFAULT_GEO_RADIUS_M = 100


@dataclass(frozen=True)
class Coordinate:
    """A single position fix."""
    lat: float
    lng: float
    accuracy_m: Optional[float] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "accuracyM": self.accuracy_m,
            "capturedAt": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinate":
        captured_at = datetime.now(timezone.utc)
        if data.get("capturedAt"):
            captured_at = datetime.fromisoformat(data["capturedAt"])
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            accuracy_m=data.get("accuracyM"),
            captured_at=captured_at,
        )


@dataclass
class Installation:
    """
    A guarded site.

    lat/lng may be missing for installations that were never geocoded; such
    installations have no computable distance.
    """
    id: str
    name: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    geo_radius_m: int = DEFAULT_GEO_RADIUS_M
    address: Optional[str] = None
    commune: Optional[str] = None
    client_name: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "geoRadiusM": self.geo_radius_m,
            "address": self.address,
            "commune": self.commune,
            "clientName": self.client_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Installation":
        client = data.get("client") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            lat=data.get("lat"),
            lng=data.get("lng"),
            geo_radius_m=data.get("geoRadiusM") or DEFAULT_GEO_RADIUS_M,
            address=data.get("address"),
            commune=data.get("commune"),
            client_name=data.get("clientName") or client.get("name"),
        )


@dataclass
class NearbyInstallation:
    """
    An installation ranked against a coordinate.

    distance_m is None when no coordinate was supplied or the installation has
    no location; inside_geofence is derived from it and never stored apart.
    """
    installation: Installation
    distance_m: Optional[int] = None

    @property
    def inside_geofence(self) -> Optional[bool]:
        if self.distance_m is None:
            return None
        return self.distance_m <= self.installation.geo_radius_m

    def to_dict(self) -> Dict[str, Any]:
        data = self.installation.to_dict()
        data["distanceM"] = self.distance_m
        data["insideGeofence"] = self.inside_geofence
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NearbyInstallation":
        distance = data.get("distanceM")
        return cls(
            installation=Installation.from_dict(data),
            distance_m=int(round(distance)) if distance is not None else None,
        )
