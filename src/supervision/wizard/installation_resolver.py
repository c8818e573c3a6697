"""
NearbyInstallationResolver - ranks assigned installations against a position.
"""

import logging
from typing import List, Optional

from supervision.backend.base import SupervisionBackend
from supervision.models import Coordinate, Installation, NearbyInstallation
from supervision.wizard.config import NEARBY_MAX_DISTANCE_M
from supervision.wizard.geolocation import haversine_distance_m

logger = logging.getLogger(__name__)


def distance_to(installation: Installation, coordinate: Coordinate) -> Optional[int]:
    """Whole-metre distance, or None for installations without a location."""
    if not installation.has_location:
        return None
    return int(round(haversine_distance_m(
        coordinate.lat, coordinate.lng, installation.lat, installation.lng,
    )))


def _sort_key(item: NearbyInstallation):
    # Unknown distances go last, keeping their relative order
    return (item.distance_m is None, item.distance_m or 0)


class NearbyInstallationResolver:
    """
    Resolves which installations an operator can check in to.

    Distances are always whole metres; the geofence flag is derived from the
    distance and the installation radius, never taken from the server.
    """

    def __init__(self, backend: SupervisionBackend, max_distance_m: int = NEARBY_MAX_DISTANCE_M):
        self.backend = backend
        self.max_distance_m = max_distance_m

    def list_assigned(self) -> List[NearbyInstallation]:
        """Assigned installations before any coordinate is known (distance unknown)."""
        return [
            NearbyInstallation(installation=installation)
            for installation in self.backend.list_assigned_installations()
        ]

    def resolve(self, coordinate: Coordinate) -> List[NearbyInstallation]:
        """
        Rank installations by distance from a coordinate, nearest first.

        Falls back to ranking every assigned installation locally when the
        nearby search returns nothing, so an operator beyond the search radius
        can still select a site and give an override reason.
        """
        nearby = self.backend.nearby_installations(
            coordinate.lat, coordinate.lng, self.max_distance_m,
        )
        if nearby:
            ranked = [
                NearbyInstallation(
                    installation=item.installation,
                    distance_m=distance_to(item.installation, coordinate),
                )
                for item in nearby
            ]
        else:
            logger.warning(
                f"No installations within {self.max_distance_m} m of "
                f"({coordinate.lat:.5f}, {coordinate.lng:.5f}), ranking all assigned"
            )
            ranked = [
                NearbyInstallation(
                    installation=installation,
                    distance_m=distance_to(installation, coordinate),
                )
                for installation in self.backend.list_assigned_installations()
            ]

        ranked.sort(key=_sort_key)
        return ranked

    @staticmethod
    def default_selection(ranked: List[NearbyInstallation]) -> Optional[NearbyInstallation]:
        """Nearest installation with a known distance."""
        for item in ranked:
            if item.distance_m is not None:
                return item
        return None
