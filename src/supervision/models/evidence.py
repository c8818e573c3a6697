"""
Evidence data models.

A captured photo is either Local (file bytes plus a preview, not yet part of
the visit record) or Uploaded (server id and URL). Only the Uploaded variant
satisfies a mandatory-evidence rule.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Union

from supervision.models.installation import Coordinate


class EvidenceKind(str, Enum):
    """What a captured photo documents."""
    CATEGORY = "category"
    DOCUMENT = "document"
    LOGBOOK = "logbook"
    CLIENT_VALIDATION = "client_validation"


@dataclass(frozen=True)
class LocalEvidence:
    """A captured file held on the device."""
    content: bytes
    filename: str
    content_type: str = "image/jpeg"
    preview_id: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadedEvidence:
    """A file the server has accepted."""
    id: str
    url: str


EvidenceState = Union[LocalEvidence, UploadedEvidence]


@dataclass
class CapturedPhoto:
    """One evidence photo and its place in the upload queue."""
    capture_id: str
    state: EvidenceState
    kind: EvidenceKind = EvidenceKind.CATEGORY
    category_id: Optional[str] = None
    category_name: str = ""
    document_code: Optional[str] = None
    location: Optional[Coordinate] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    legacy_copied: bool = False

    @property
    def uploaded(self) -> bool:
        return isinstance(self.state, UploadedEvidence)

    @property
    def caption(self) -> str:
        if self.document_code:
            return f"{self.category_name} ({self.document_code})"
        return self.category_name

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "captureId": self.capture_id,
            "kind": self.kind.value,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "documentCode": self.document_code,
            "capturedAt": self.captured_at.isoformat(),
            "location": self.location.to_dict() if self.location else None,
            "uploaded": self.uploaded,
            "legacyCopied": self.legacy_copied,
        }
        if isinstance(self.state, UploadedEvidence):
            data["photoId"] = self.state.id
            data["photoUrl"] = self.state.url
        else:
            data["sizeBytes"] = self.state.size_bytes
            data["previewId"] = self.state.preview_id
        return data
