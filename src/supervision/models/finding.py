"""
Finding data model.

A finding references the visit that opened it and, once resolved, the visit
that verified it. Both are plain ids; neither visit owns the finding.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class FindingCategory(str, Enum):
    """Area of the compliance defect."""
    PERSONAL = "personal"
    INFRASTRUCTURE = "infrastructure"
    DOCUMENTATION = "documentation"
    OPERATIONAL = "operational"


class FindingSeverity(str, Enum):
    """Severity of the compliance defect."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class FindingStatus(str, Enum):
    """Resolution status. Ordered; a finding only ever moves forward."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    VERIFIED = "verified"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_move_to(self, target: "FindingStatus") -> bool:
        return target.rank >= self.rank


_STATUS_RANK = {
    FindingStatus.OPEN: 0,
    FindingStatus.IN_PROGRESS: 1,
    FindingStatus.VERIFIED: 2,
}


@dataclass
class Finding:
    """A recorded compliance defect."""
    id: str
    visit_id: str
    installation_id: str
    category: FindingCategory
    severity: FindingSeverity
    description: str
    status: FindingStatus = FindingStatus.OPEN
    guard_id: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    verified_in_visit_id: Optional[str] = None
    verified_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "visitId": self.visit_id,
            "installationId": self.installation_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "description": self.description,
            "status": self.status.value,
            "guardId": self.guard_id,
            "photoUrl": self.photo_url,
            "createdAt": self.created_at.isoformat(),
            "verifiedInVisitId": self.verified_in_visit_id,
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        created_at = datetime.now(timezone.utc)
        if data.get("createdAt"):
            created_at = datetime.fromisoformat(data["createdAt"])

        verified_at = None
        if data.get("verifiedAt"):
            verified_at = datetime.fromisoformat(data["verifiedAt"])

        return cls(
            id=data["id"],
            visit_id=data.get("visitId", ""),
            installation_id=data.get("installationId", ""),
            category=FindingCategory(data["category"]),
            severity=FindingSeverity(data["severity"]),
            description=data.get("description", ""),
            status=FindingStatus(data.get("status", FindingStatus.OPEN.value)),
            guard_id=data.get("guardId"),
            photo_url=data.get("photoUrl"),
            created_at=created_at,
            verified_in_visit_id=data.get("verifiedInVisitId"),
            verified_at=verified_at,
        )
