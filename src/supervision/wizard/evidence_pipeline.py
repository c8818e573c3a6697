"""
EvidenceUploadPipeline - sequential upload queue for captured evidence.

Photos are uploaded one at a time in capture order. A photo that is already
Uploaded is never re-sent, so replaying the queue after a failure resumes at
the first photo that has not been accepted.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from supervision.backend.base import SupervisionBackend
from supervision.models import CapturedPhoto, Coordinate, LocalEvidence, UploadedEvidence, is_default_id
from supervision.wizard.errors import BackendError, EvidenceUploadError
from supervision.wizard.image_compressor import PreviewRegistry

logger = logging.getLogger(__name__)


@dataclass
class UploadReport:
    """Outcome of one queue run."""
    uploaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    legacy_failed: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "uploaded": list(self.uploaded),
            "skipped": list(self.skipped),
            "legacyFailed": list(self.legacy_failed),
        }


class EvidenceUploadPipeline:
    """
    Uploads evidence to the primary store and a legacy duplicate store.

    Each upload carries the photo's category (default categories travel
    without an id) and a coordinate: the capture coordinate when the photo has
    one, else the most recent known position. The legacy copy is best-effort;
    its failure is logged and recorded but does not stop the queue.
    """

    def __init__(self, backend: SupervisionBackend, previews: Optional[PreviewRegistry] = None):
        self.backend = backend
        self.previews = previews or PreviewRegistry()

    def upload_one(
        self,
        visit_id: str,
        photo: CapturedPhoto,
        fallback_location: Optional[Coordinate] = None,
        legacy_copy: bool = False,
    ) -> UploadedEvidence:
        """
        Upload a single photo and promote it to Uploaded.

        Raises:
            BackendError: Primary upload failed; the photo stays Local
        """
        if isinstance(photo.state, UploadedEvidence):
            return photo.state

        local: LocalEvidence = photo.state
        location = photo.location or fallback_location
        if location is None:
            logger.warning(f"Uploading {photo.capture_id} without a coordinate")

        uploaded = self.backend.upload_photo(
            visit_id,
            local.content,
            local.filename,
            local.content_type,
            category_name=photo.category_name,
            category_id=None if is_default_id(photo.category_id) else photo.category_id,
            lat=location.lat if location else None,
            lng=location.lng if location else None,
        )

        if legacy_copy:
            try:
                self.backend.upload_legacy_image(
                    visit_id,
                    local.content,
                    local.filename,
                    local.content_type,
                    caption=photo.caption,
                )
                photo.legacy_copied = True
            except BackendError as e:
                logger.warning(f"Legacy copy of {photo.capture_id} failed: {e.reason}")

        photo.state = uploaded
        self.previews.release(local.preview_id)
        logger.info(f"Uploaded {photo.kind.value} photo {photo.capture_id} ({photo.category_name})")
        return uploaded

    def upload_pending(
        self,
        visit_id: str,
        photos: List[CapturedPhoto],
        fallback_location: Optional[Coordinate] = None,
    ) -> UploadReport:
        """
        Upload every photo that is not yet Uploaded, in order.

        Stops at the first failed upload; photos before it stay Uploaded, the
        failed one and the rest stay Local.

        Raises:
            EvidenceUploadError: With the counts and the failed capture id
        """
        report = UploadReport()
        for photo in photos:
            if photo.uploaded:
                report.skipped.append(photo.capture_id)
                continue
            try:
                self.upload_one(visit_id, photo, fallback_location, legacy_copy=True)
            except BackendError as e:
                pending = sum(1 for p in photos if not p.uploaded)
                uploaded = len(photos) - pending
                logger.error(
                    f"Evidence upload stopped at {photo.capture_id}: {e.reason} "
                    f"({uploaded} uploaded, {pending} pending)"
                )
                raise EvidenceUploadError(uploaded, pending, photo.capture_id, e.reason) from e

            report.uploaded.append(photo.capture_id)
            if not photo.legacy_copied:
                report.legacy_failed.append(photo.capture_id)

        return report
