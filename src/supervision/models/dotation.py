"""
Dotation (expected guard roster) data models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.strip().split(":")[:2]
    return int(hours) * 60 + int(minutes)


def is_time_in_shift(at_time: str, shift_start: Optional[str], shift_end: Optional[str]) -> bool:
    """
    Check whether an HH:MM time falls inside a shift.

    Night shifts (end before start) cross midnight. Entries without both
    bounds are always inside.
    """
    if not shift_start or not shift_end:
        return True
    now = _minutes(at_time)
    start = _minutes(shift_start)
    end = _minutes(shift_end)
    if start <= end:
        return start <= now <= end
    return now >= start or now <= end


class DotationType(str, Enum):
    """Origin of a roster entry."""
    REGULAR = "regular"
    REINFORCEMENT = "reinforcement"


@dataclass
class DotationGuard:
    """
    One expected guard slot.

    Regular entries carry the shift bounds (HH:MM) of their standing
    assignment; reinforcement entries carry the date range they cover.
    """
    id: str
    guard_name: str
    type: DotationType = DotationType.REGULAR
    guard_id: Optional[str] = None
    guard_rut: Optional[str] = None
    puesto_name: Optional[str] = None
    slot_number: Optional[int] = None
    shift_start: Optional[str] = None
    shift_end: Optional[str] = None
    starts_on: Optional[str] = None
    ends_on: Optional[str] = None

    @property
    def is_reinforcement(self) -> bool:
        return self.type == DotationType.REINFORCEMENT

    def covers(self, at_date: str, at_time: str) -> bool:
        """Whether this entry is active at the given ISO date and HH:MM time."""
        if self.is_reinforcement:
            if self.starts_on and at_date < self.starts_on[:10]:
                return False
            if self.ends_on and at_date > self.ends_on[:10]:
                return False
            return True
        return is_time_in_shift(at_time, self.shift_start, self.shift_end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "guardId": self.guard_id,
            "guardName": self.guard_name,
            "guardRut": self.guard_rut,
            "puestoName": self.puesto_name,
            "slotNumber": self.slot_number,
            "shiftStart": self.shift_start,
            "shiftEnd": self.shift_end,
            "startsOn": self.starts_on,
            "endsOn": self.ends_on,
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DotationGuard":
        return cls(
            id=data["id"],
            guard_name=data.get("guardName") or "Sin asignar",
            type=DotationType(data.get("type", DotationType.REGULAR.value)),
            guard_id=data.get("guardId"),
            guard_rut=data.get("guardRut"),
            puesto_name=data.get("puestoName"),
            slot_number=data.get("slotNumber"),
            shift_start=data.get("shiftStart"),
            shift_end=data.get("shiftEnd"),
            starts_on=data.get("startsOn"),
            ends_on=data.get("endsOn"),
        )


@dataclass
class Dotation:
    """Expected roster for an installation at a point in time."""
    regular: List[DotationGuard] = field(default_factory=list)
    reinforcement: List[DotationGuard] = field(default_factory=list)

    @property
    def total_expected(self) -> int:
        """Count of all entries, not a capacity figure."""
        return len(self.regular) + len(self.reinforcement)

    @property
    def guards(self) -> List[DotationGuard]:
        return [*self.regular, *self.reinforcement]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "regular": [g.to_dict() for g in self.regular],
            "reinforcement": [g.to_dict() for g in self.reinforcement],
            "totalExpected": self.total_expected,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dotation":
        regular = [
            DotationGuard.from_dict({**g, "type": DotationType.REGULAR.value})
            for g in data.get("regular", [])
        ]
        reinforcement = [
            DotationGuard.from_dict({**g, "type": DotationType.REINFORCEMENT.value})
            for g in data.get("reinforcement", [])
        ]
        return cls(regular=regular, reinforcement=reinforcement)
