"""
FindingLedger - compliance findings recorded in, and resolved across, visits.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from supervision.backend.base import SupervisionBackend
from supervision.models import (
    Coordinate,
    Finding,
    FindingCategory,
    FindingSeverity,
    FindingStatus,
)
from supervision.wizard.errors import (
    FindingLinkageError,
    InvalidFindingError,
    InvalidFindingTransitionError,
)
from supervision.wizard.image_compressor import CompressedImage

logger = logging.getLogger(__name__)

FINDING_PHOTO_CATEGORY = "Hallazgo"


def _coerce(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise InvalidFindingError(
            f"Invalid {field_name} {value!r}; expected one of: {allowed}",
            {"field": field_name, "value": value},
        )


class FindingLedger:
    """
    Append-only record of findings.

    Findings are created in the visit where they are observed. Status changes
    require the id of the visit doing the resolving, which must differ from
    the visit that opened the finding, and only ever move forward.
    """

    def __init__(self, backend: SupervisionBackend):
        self.backend = backend
        self._known: Dict[str, Finding] = {}
        self._created: Dict[str, List[str]] = {}

    def register(self, findings: Iterable[Finding]) -> None:
        """Track findings loaded from earlier visits."""
        for finding in findings:
            self._known[finding.id] = finding

    def get(self, finding_id: str) -> Optional[Finding]:
        return self._known.get(finding_id)

    def created_in(self, visit_id: str) -> List[Finding]:
        return [self._known[i] for i in self._created.get(visit_id, [])]

    def create(
        self,
        visit_id: str,
        category: Union[str, FindingCategory],
        severity: Union[str, FindingSeverity],
        description: str,
        guard_id: Optional[str] = None,
        photo: Optional[CompressedImage] = None,
        location: Optional[Coordinate] = None,
    ) -> Finding:
        """
        Record a finding.

        The payload is validated before any network call. A photo, when given,
        is uploaded first; if that upload fails no finding is created.

        Raises:
            InvalidFindingError: Unknown category/severity or empty description
            BackendError: Photo upload or creation failed
        """
        category = _coerce(FindingCategory, category, "category")
        severity = _coerce(FindingSeverity, severity, "severity")
        description = (description or "").strip()
        if not description:
            raise InvalidFindingError("Finding description is required", {"field": "description"})

        photo_url = None
        if photo is not None:
            uploaded = self.backend.upload_photo(
                visit_id,
                photo.content,
                photo.filename,
                photo.content_type,
                category_name=FINDING_PHOTO_CATEGORY,
                lat=location.lat if location else None,
                lng=location.lng if location else None,
            )
            photo_url = uploaded.url

        finding = self.backend.create_finding(visit_id, {
            "guardId": guard_id,
            "category": category.value,
            "severity": severity.value,
            "description": description,
            "photoUrl": photo_url,
        })
        self._known[finding.id] = finding
        self._created.setdefault(visit_id, []).append(finding.id)
        logger.info(f"Finding {finding.id} ({severity.value}/{category.value}) recorded in visit {visit_id}")
        return finding

    def update_status(
        self,
        installation_id: str,
        finding_id: str,
        status: Union[str, FindingStatus],
        verifying_visit_id: Optional[str],
    ) -> Finding:
        """
        Move a finding toward verified.

        Requesting the current status is a no-op. Moving backward is rejected.

        Raises:
            FindingLinkageError: Missing resolving visit id, unknown finding, or
                the finding was opened by the resolving visit
            InvalidFindingTransitionError: Backward move
            BackendError: Status update failed
        """
        if not verifying_visit_id:
            raise FindingLinkageError(finding_id, "resolving visit id is required")

        finding = self._known.get(finding_id)
        if finding is None:
            raise FindingLinkageError(finding_id, "finding is not known to this visit")
        if finding.visit_id == verifying_visit_id:
            raise FindingLinkageError(finding_id, "a finding must be resolved from a later visit")

        target = _coerce(FindingStatus, status, "status")
        if target == finding.status:
            return finding
        if not finding.status.can_move_to(target):
            raise InvalidFindingTransitionError(finding_id, finding.status.value, target.value)

        previous = finding.status
        updated = self.backend.update_finding_status(
            installation_id, finding_id, target, verifying_visit_id,
        )
        self._known[finding_id] = updated
        logger.info(f"Finding {finding_id}: {previous.value} -> {target.value} (visit {verifying_visit_id})")
        return updated
