import unittest
import uuid
from unittest.mock import MagicMock

from supervision.models import (
    CapturedPhoto,
    Coordinate,
    EvidenceKind,
    LocalEvidence,
    UploadedEvidence,
)
from supervision.wizard.errors import BackendError, EvidenceUploadError
from supervision.wizard.evidence_pipeline import EvidenceUploadPipeline
from supervision.wizard.image_compressor import PreviewRegistry

from tests.helpers import image_bytes


def local_photo(category_id="cat-frontis", location=None, previews=None) -> CapturedPhoto:
    content = image_bytes()
    preview_id = previews.create(content) if previews is not None else None
    return CapturedPhoto(
        capture_id=uuid.uuid4().hex,
        state=LocalEvidence(content=content, filename="photo.jpg", preview_id=preview_id),
        kind=EvidenceKind.CATEGORY,
        category_id=category_id,
        category_name="Frontis",
        location=location,
    )


class EvidenceUploadPipelineTests(unittest.TestCase):
    def setUp(self):
        self.backend = MagicMock()
        self.backend.upload_photo.side_effect = lambda *a, **kw: UploadedEvidence(
            id=uuid.uuid4().hex, url="https://cdn.example/photo.jpg",
        )
        self.previews = PreviewRegistry()
        self.pipeline = EvidenceUploadPipeline(self.backend, self.previews)

    def test_uploads_in_order_and_promotes(self):
        photos = [local_photo(previews=self.previews) for _ in range(3)]
        report = self.pipeline.upload_pending("v1", photos)
        self.assertEqual(report.uploaded, [p.capture_id for p in photos])
        self.assertTrue(all(p.uploaded for p in photos))
        self.assertEqual(len(self.previews), 0)
        self.assertEqual(self.backend.upload_legacy_image.call_count, 3)

    def test_partial_failure_keeps_remaining_queue(self):
        photos = [local_photo() for _ in range(3)]
        uploaded = UploadedEvidence(id="p1", url="https://cdn.example/p1.jpg")
        self.backend.upload_photo.side_effect = [uploaded, BackendError("uploadPhoto", "HTTP 500", 500)]

        with self.assertRaises(EvidenceUploadError) as ctx:
            self.pipeline.upload_pending("v1", photos)

        error = ctx.exception
        self.assertEqual(error.uploaded_count, 1)
        self.assertEqual(error.pending_count, 2)
        self.assertEqual(error.failed_capture_id, photos[1].capture_id)
        self.assertEqual([p.uploaded for p in photos], [True, False, False])

    def test_replay_never_resends_uploaded_photos(self):
        photos = [local_photo() for _ in range(3)]
        self.backend.upload_photo.side_effect = [
            UploadedEvidence(id="p1", url="u1"),
            BackendError("uploadPhoto", "network error"),
            UploadedEvidence(id="p2", url="u2"),
            UploadedEvidence(id="p3", url="u3"),
        ]
        with self.assertRaises(EvidenceUploadError):
            self.pipeline.upload_pending("v1", photos)

        report = self.pipeline.upload_pending("v1", photos)

        self.assertEqual(report.skipped, [photos[0].capture_id])
        self.assertEqual(report.uploaded, [photos[1].capture_id, photos[2].capture_id])
        self.assertEqual(self.backend.upload_photo.call_count, 4)

    def test_legacy_copy_failure_does_not_stop_queue(self):
        photos = [local_photo(), local_photo()]
        self.backend.upload_legacy_image.side_effect = BackendError("uploadLegacyImage", "HTTP 502", 502)
        report = self.pipeline.upload_pending("v1", photos)
        self.assertEqual(len(report.uploaded), 2)
        self.assertEqual(report.legacy_failed, [p.capture_id for p in photos])

    def test_default_category_sent_without_id(self):
        self.pipeline.upload_one("v1", local_photo(category_id="default-frontis"))
        self.assertIsNone(self.backend.upload_photo.call_args.kwargs["category_id"])

    def test_capture_location_preferred_over_fallback(self):
        capture = Coordinate(lat=-33.1, lng=-70.1)
        fallback = Coordinate(lat=-34.0, lng=-71.0)
        self.pipeline.upload_one("v1", local_photo(location=capture), fallback)
        self.assertEqual(self.backend.upload_photo.call_args.kwargs["lat"], -33.1)

        self.pipeline.upload_one("v1", local_photo(), fallback)
        self.assertEqual(self.backend.upload_photo.call_args.kwargs["lat"], -34.0)

    def test_uploaded_photo_returns_existing_state(self):
        photo = local_photo()
        first = self.pipeline.upload_one("v1", photo)
        self.assertIs(self.pipeline.upload_one("v1", photo), first)
        self.assertEqual(self.backend.upload_photo.call_count, 1)


if __name__ == "__main__":
    unittest.main()
