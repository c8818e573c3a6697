"""
GuardEvaluation data model for step 2 of the visit.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

from supervision.models.dotation import DotationGuard


SCORE_FIELDS = ("presentation_score", "order_score", "protocol_score")


@dataclass
class GuardEvaluation:
    """
    Evaluation of one roster member.

    Each score is an integer 1-5 or None until rated. The record is stored
    independently of the visit; the visit-level average is derived, never
    merged back into it.
    """
    guard_name: str
    guard_id: Optional[str] = None
    is_reinforcement: bool = False
    presentation_score: Optional[int] = None
    order_score: Optional[int] = None
    protocol_score: Optional[int] = None
    observation: str = ""
    # Roster slot this evaluation was seeded from; None for unlisted guards
    dotation_entry_id: Optional[str] = None

    @property
    def is_fully_rated(self) -> bool:
        return all(getattr(self, name) is not None for name in SCORE_FIELDS)

    @property
    def average(self) -> Optional[float]:
        """Mean of the three scores, or None until all three are rated."""
        if not self.is_fully_rated:
            return None
        total = self.presentation_score + self.order_score + self.protocol_score
        return round(total / 3, 2)

    @classmethod
    def from_dotation_guard(cls, guard: DotationGuard) -> "GuardEvaluation":
        return cls(
            guard_name=guard.guard_name,
            guard_id=guard.guard_id,
            is_reinforcement=guard.is_reinforcement,
            dotation_entry_id=guard.id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guardId": self.guard_id,
            "guardName": self.guard_name,
            "isReinforcement": self.is_reinforcement,
            "presentationScore": self.presentation_score,
            "orderScore": self.order_score,
            "protocolScore": self.protocol_score,
            "observation": self.observation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardEvaluation":
        return cls(
            guard_name=data.get("guardName", ""),
            guard_id=data.get("guardId"),
            is_reinforcement=bool(data.get("isReinforcement", False)),
            presentation_score=data.get("presentationScore"),
            order_score=data.get("orderScore"),
            protocol_score=data.get("protocolScore"),
            observation=data.get("observation") or "",
        )
