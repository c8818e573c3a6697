"""
ChecklistAndDocumentResolver - step 3 and step 4 requirements of an installation.

Provides:
- ChecklistAndDocumentResolver: Fetches checklist, documents, photo categories
  and open findings, falling back to built-in defaults
- ComplianceBreakdown / compute_compliance: The step 3 compliance ratio
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from supervision.backend.base import SupervisionBackend
from supervision.models import (
    ChecklistItem,
    ChecklistResult,
    DocumentAnswer,
    DocumentType,
    InstallationRequirements,
    PhotoCategory,
    is_default_id,
)
from supervision.wizard.errors import BackendError

logger = logging.getLogger(__name__)


# =============================================================================
# Built-in Defaults
# =============================================================================

DEFAULT_CHECKLIST_ITEMS = [
    ChecklistItem(id="default-uniform", name="Guardias con uniforme completo"),
    ChecklistItem(id="default-credential", name="Credencial visible"),
    ChecklistItem(id="default-communication", name="Equipo de comunicacion operativo"),
    ChecklistItem(id="default-post-order", name="Puesto limpio y ordenado", is_mandatory=False),
]

DEFAULT_DOCUMENT_TYPES = [
    DocumentType(code="OS10", name="Credencial OS-10"),
    DocumentType(code="LIBRO_NOVEDADES", name="Libro de novedades"),
    DocumentType(code="DIRECTIVA", name="Directiva de funcionamiento"),
]

DEFAULT_PHOTO_CATEGORIES = [
    PhotoCategory(id="default-frontis", name="Frontis de la instalacion", is_mandatory=True),
    PhotoCategory(id="default-post", name="Puesto de guardia", is_mandatory=True),
    PhotoCategory(id="default-other", name="Otros", is_mandatory=False),
]


# =============================================================================
# Compliance Ratio
# =============================================================================

@dataclass(frozen=True)
class ComplianceBreakdown:
    """Counts behind the compliance ratio."""
    checked_items: int
    total_items: int
    documents_yes: int
    documents_no: int
    documents_unanswered: int

    @property
    def total_documents(self) -> int:
        return self.documents_yes + self.documents_no + self.documents_unanswered

    @property
    def denominator(self) -> int:
        return self.total_items + self.total_documents

    @property
    def ratio(self) -> Optional[float]:
        """Checked over total; None (not zero) when there is nothing to check."""
        if self.denominator == 0:
            return None
        return (self.checked_items + self.documents_yes) / self.denominator

    def to_dict(self) -> Dict[str, object]:
        return {
            "checkedItems": self.checked_items,
            "totalItems": self.total_items,
            "documentsYes": self.documents_yes,
            "documentsNo": self.documents_no,
            "documentsUnanswered": self.documents_unanswered,
            "ratio": self.ratio,
        }


def compute_compliance(
    checklist_items: Iterable[ChecklistItem],
    results: Dict[str, ChecklistResult],
    document_types: Iterable[DocumentType],
    document_answers: Dict[str, DocumentAnswer],
) -> ComplianceBreakdown:
    """
    Compute the step 3 compliance breakdown.

    An item without a result counts as unchecked. A document answered "No"
    and an unanswered document both count as unchecked; they are only
    reported apart.
    """
    items = list(checklist_items)
    checked = sum(
        1 for item in items
        if item.id in results and results[item.id].is_checked
    )

    yes = no = unanswered = 0
    for document in document_types:
        answer = document_answers.get(document.code, DocumentAnswer.UNANSWERED)
        if answer == DocumentAnswer.YES:
            yes += 1
        elif answer == DocumentAnswer.NO:
            no += 1
        else:
            unanswered += 1

    return ComplianceBreakdown(
        checked_items=checked,
        total_items=len(items),
        documents_yes=yes,
        documents_no=no,
        documents_unanswered=unanswered,
    )


# =============================================================================
# Resolver
# =============================================================================

class ChecklistAndDocumentResolver:
    """
    Resolves what an installation requires in steps 3 and 4.

    Each fetch fails independently: a failed checklist or photo-category fetch
    falls back to the built-in defaults (ids prefixed "default-"), a failed
    open-findings fetch yields no open findings.
    """

    def __init__(self, backend: SupervisionBackend):
        self.backend = backend

    def _checklist(self, installation_id: str):
        try:
            return self.backend.get_checklist(installation_id), False
        except BackendError as e:
            logger.warning(f"Checklist unavailable for {installation_id}, using defaults: {e.reason}")
            return (list(DEFAULT_CHECKLIST_ITEMS), list(DEFAULT_DOCUMENT_TYPES)), True

    def _photo_categories(self, installation_id: str):
        try:
            return self.backend.get_photo_categories(installation_id), False
        except BackendError as e:
            logger.warning(f"Photo categories unavailable for {installation_id}, using defaults: {e.reason}")
            return list(DEFAULT_PHOTO_CATEGORIES), True

    def resolve(self, installation_id: str) -> InstallationRequirements:
        """
        Fetch the requirements of an installation.

        Returns:
            InstallationRequirements; used_defaults is set when any fallback applied
        """
        (items, documents), checklist_defaulted = self._checklist(installation_id)
        categories, categories_defaulted = self._photo_categories(installation_id)

        try:
            open_findings = self.backend.get_open_findings(installation_id)
        except BackendError as e:
            logger.warning(f"Open findings unavailable for {installation_id}: {e.reason}")
            open_findings = []

        return InstallationRequirements(
            checklist_items=items,
            document_types=documents,
            photo_categories=categories,
            open_findings=open_findings,
            used_defaults=checklist_defaulted or categories_defaulted,
        )

    @staticmethod
    def persistable_results(results: Iterable[ChecklistResult]) -> List[ChecklistResult]:
        """Results worth sending: built-in default items never exist on the server."""
        return [r for r in results if not is_default_id(r.checklist_item_id)]
