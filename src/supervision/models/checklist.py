"""
Checklist, document and photo-category data models for steps 3 and 4.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List

from supervision.models.finding import Finding


DEFAULT_ID_PREFIX = "default-"


def is_default_id(item_id: Optional[str]) -> bool:
    """Built-in fallback requirements never exist on the server."""
    return bool(item_id) and item_id.startswith(DEFAULT_ID_PREFIX)


@dataclass
class ChecklistItem:
    """A configured checklist item for an installation."""
    id: str
    name: str
    description: Optional[str] = None
    is_mandatory: bool = True

    @property
    def is_default(self) -> bool:
        return is_default_id(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isMandatory": self.is_mandatory,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description"),
            is_mandatory=bool(data.get("isMandatory", True)),
        )


@dataclass
class ChecklistResult:
    """Outcome for one checklist item. A missing result counts as unchecked."""
    checklist_item_id: str
    is_checked: bool = False
    finding_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checklistItemId": self.checklist_item_id,
            "isChecked": self.is_checked,
            "findingId": self.finding_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistResult":
        return cls(
            checklist_item_id=data["checklistItemId"],
            is_checked=bool(data.get("isChecked", False)),
            finding_id=data.get("findingId"),
        )


class DocumentAnswer(str, Enum):
    """Operator answer for a required document."""
    YES = "yes"
    NO = "no"
    UNANSWERED = "unanswered"


@dataclass
class DocumentType:
    """A document the installation must keep on site."""
    code: str
    name: str
    is_mandatory: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "name": self.name, "isMandatory": self.is_mandatory}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentType":
        return cls(
            code=data["code"],
            name=data.get("name", data["code"]),
            is_mandatory=bool(data.get("isMandatory", True)),
        )


@dataclass
class PhotoCategory:
    """A photo evidence category. Mandatory categories gate step 4."""
    id: str
    name: str
    is_mandatory: bool = False

    @property
    def is_default(self) -> bool:
        return is_default_id(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "isMandatory": self.is_mandatory}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhotoCategory":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            is_mandatory=bool(data.get("isMandatory", False)),
        )


@dataclass
class InstallationRequirements:
    """Everything step 3 and step 4 need to know about an installation."""
    checklist_items: List[ChecklistItem] = field(default_factory=list)
    document_types: List[DocumentType] = field(default_factory=list)
    photo_categories: List[PhotoCategory] = field(default_factory=list)
    open_findings: List[Finding] = field(default_factory=list)
    used_defaults: bool = False

    @property
    def mandatory_photo_categories(self) -> List[PhotoCategory]:
        return [c for c in self.photo_categories if c.is_mandatory]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checklistItems": [i.to_dict() for i in self.checklist_items],
            "documentTypes": [d.to_dict() for d in self.document_types],
            "photoCategories": [c.to_dict() for c in self.photo_categories],
            "openFindings": [f.to_dict() for f in self.open_findings],
            "usedDefaults": self.used_defaults,
        }
