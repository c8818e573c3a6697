"""
DotationResolver - expected guard roster at a point in time.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from supervision.backend.base import SupervisionBackend
from supervision.models import Dotation

logger = logging.getLogger(__name__)


class DotationResolver:
    """
    Computes the expected roster for an installation.

    Regular entries come from the standing shift assignment active at the
    query time (night shifts cross midnight); reinforcement entries are
    date-specific additions. The visit controller calls this at check-in
    only; the result is never recomputed for an open visit.
    """

    def __init__(self, backend: SupervisionBackend, clock: Callable[[], datetime] = datetime.now):
        self.backend = backend
        self._clock = clock

    def resolve(self, installation_id: str, at: Optional[datetime] = None) -> Dotation:
        """
        Resolve the roster for an installation.

        Args:
            installation_id: Installation identifier
            at: Local date and time of the query (default: now)

        Returns:
            Dotation with regular and reinforcement entries
        """
        at = at or self._clock()
        at_date = at.date().isoformat()
        at_time = at.strftime("%H:%M")

        dotation = self.backend.get_dotation(installation_id, at_date, at_time)

        # Servers that return the whole roster are narrowed to the shift window
        regular = [g for g in dotation.regular if g.covers(at_date, at_time)]
        reinforcement = [g for g in dotation.reinforcement if g.covers(at_date, at_time)]
        resolved = Dotation(regular=regular, reinforcement=reinforcement)

        logger.info(
            f"Dotation for {installation_id} at {at_date} {at_time}: "
            f"{len(regular)} regular + {len(reinforcement)} reinforcement"
        )
        return resolved
