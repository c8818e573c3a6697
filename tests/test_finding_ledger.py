import unittest
from unittest.mock import MagicMock

from supervision.backend.demo import DEMO_INSTALLATION_ID
from supervision.models import FindingSeverity, FindingStatus
from supervision.wizard.errors import (
    BackendError,
    FindingLinkageError,
    InvalidFindingError,
    InvalidFindingTransitionError,
)
from supervision.wizard.finding_ledger import FINDING_PHOTO_CATEGORY, FindingLedger
from supervision.wizard.image_compressor import ImageCompressor

from tests.helpers import image_bytes, make_backend


class FindingLedgerTests(unittest.TestCase):
    def setUp(self):
        self.backend = make_backend()
        self.visit = self.backend.create_visit(DEMO_INSTALLATION_ID, -33.4372, -70.6506, "mobile")
        self.ledger = FindingLedger(self.backend)
        self.ledger.register(self.backend.get_open_findings(DEMO_INSTALLATION_ID))

    def test_create_records_finding_in_visit(self):
        finding = self.ledger.create(self.visit.id, "personal", "minor", "  Guardia sin credencial ")
        self.assertEqual(finding.visit_id, self.visit.id)
        self.assertEqual(finding.severity, FindingSeverity.MINOR)
        self.assertEqual(finding.description, "Guardia sin credencial")
        self.assertEqual(self.ledger.created_in(self.visit.id), [finding])

    def test_invalid_payload_rejected_before_network(self):
        backend = MagicMock()
        ledger = FindingLedger(backend)
        with self.assertRaises(InvalidFindingError):
            ledger.create("v1", "personal", "catastrophic", "x")
        with self.assertRaises(InvalidFindingError):
            ledger.create("v1", "personal", "minor", "   ")
        backend.create_finding.assert_not_called()

    def test_photo_uploaded_before_finding(self):
        photo = ImageCompressor().compress(image_bytes(), "hallazgo.jpg")
        finding = self.ledger.create(self.visit.id, "infrastructure", "major", "Reja rota", photo=photo)
        uploads = self.backend.photos_for(self.visit.id)
        self.assertEqual(len(uploads), 1)
        self.assertEqual(uploads[0]["categoryName"], FINDING_PHOTO_CATEGORY)
        self.assertEqual(finding.photo_url, uploads[0]["photoUrl"])

    def test_failed_photo_upload_creates_nothing(self):
        backend = MagicMock()
        backend.upload_photo.side_effect = BackendError("uploadPhoto", "network error")
        photo = ImageCompressor().compress(image_bytes(), "hallazgo.jpg")
        with self.assertRaises(BackendError):
            FindingLedger(backend).create("v1", "personal", "minor", "x", photo=photo)
        backend.create_finding.assert_not_called()

    def test_resolve_from_later_visit(self):
        updated = self.ledger.update_status(
            DEMO_INSTALLATION_ID, "finding-previous-1", "verified", self.visit.id,
        )
        self.assertEqual(updated.status, FindingStatus.VERIFIED)
        self.assertEqual(updated.verified_in_visit_id, self.visit.id)
        self.assertEqual(self.backend.finding("finding-previous-1").status, FindingStatus.VERIFIED)

    def test_resolving_visit_id_required(self):
        with self.assertRaises(FindingLinkageError):
            self.ledger.update_status(DEMO_INSTALLATION_ID, "finding-previous-1", "verified", None)

    def test_visit_cannot_resolve_its_own_finding(self):
        finding = self.ledger.create(self.visit.id, "operational", "minor", "Ronda atrasada")
        with self.assertRaises(FindingLinkageError):
            self.ledger.update_status(DEMO_INSTALLATION_ID, finding.id, "verified", self.visit.id)

    def test_status_never_moves_backward(self):
        self.ledger.update_status(DEMO_INSTALLATION_ID, "finding-previous-1", "verified", self.visit.id)
        with self.assertRaises(InvalidFindingTransitionError):
            self.ledger.update_status(DEMO_INSTALLATION_ID, "finding-previous-1", "in_progress", self.visit.id)
        self.assertEqual(self.backend.finding("finding-previous-1").status, FindingStatus.VERIFIED)

    def test_same_status_is_a_no_op(self):
        backend = MagicMock()
        ledger = FindingLedger(backend)
        ledger.register(self.backend.get_open_findings(DEMO_INSTALLATION_ID))
        finding = ledger.update_status(DEMO_INSTALLATION_ID, "finding-previous-1", "open", "visit-2")
        self.assertEqual(finding.status, FindingStatus.OPEN)
        backend.update_finding_status.assert_not_called()


if __name__ == "__main__":
    unittest.main()
