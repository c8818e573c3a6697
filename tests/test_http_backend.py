import unittest
from unittest.mock import MagicMock

import requests

from supervision.backend.http_backend import HttpSupervisionBackend
from supervision.models import FindingStatus, GuardEvaluation
from supervision.wizard.config import BackendSettings
from supervision.wizard.errors import BackendError


def envelope_response(data=None, success=True, error=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = {"success": success, "data": data, "error": error}
    response.text = str(response.json.return_value)
    return response


class HttpSupervisionBackendTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.config = BackendSettings(base_url="https://ops.example", api_token="secret", timeout_seconds=5)
        self.backend = HttpSupervisionBackend(self.config, session=self.session)

    def test_bearer_token_header(self):
        self.assertEqual(self.session.headers["Authorization"], "Bearer secret")

    def test_unwraps_envelope(self):
        self.session.request.return_value = envelope_response({
            "id": "visit-1",
            "installationId": "inst-1",
            "status": "in_progress",
            "wizardStep": 2,
        })
        visit = self.backend.get_visit("visit-1")

        self.assertEqual(visit.id, "visit-1")
        self.assertEqual(visit.wizard_step, 2)
        self.assertFalse(visit.is_closed)
        self.session.request.assert_called_once_with(
            "GET", "https://ops.example/api/ops/supervision/visit-1", timeout=5,
        )

    def test_success_false_is_an_error(self):
        self.session.request.return_value = envelope_response(success=False, error="visit already closed")
        with self.assertRaises(BackendError) as ctx:
            self.backend.update_visit("visit-1", {"wizardStep": 3})
        self.assertEqual(ctx.exception.operation, "updateVisit")
        self.assertEqual(ctx.exception.reason, "visit already closed")

    def test_non_2xx_is_an_error(self):
        self.session.request.return_value = envelope_response(
            success=False, error={"code": "FORBIDDEN", "message": "not assigned"}, status_code=403,
        )
        with self.assertRaises(BackendError) as ctx:
            self.backend.create_visit("inst-1", -33.4, -70.6, "mobile")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.reason, "not assigned")

    def test_non_json_error_body(self):
        response = MagicMock(ok=False, status_code=502, text="Bad Gateway")
        response.json.side_effect = ValueError("no json")
        self.session.request.return_value = response
        with self.assertRaises(BackendError) as ctx:
            self.backend.list_assigned_installations()
        self.assertEqual(ctx.exception.reason, "HTTP 502")

    def test_transport_failure_is_an_error(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(BackendError) as ctx:
            self.backend.get_evaluations("visit-1")
        self.assertEqual(ctx.exception.reason, "network error")
        self.assertIsInstance(ctx.exception.original_error, requests.exceptions.ConnectionError)

    def test_override_reason_only_sent_when_given(self):
        self.session.request.return_value = envelope_response({"id": "v", "installationId": "i"})
        self.backend.create_visit("i", -33.4, -70.6, "mobile")
        self.assertNotIn("geofenceOverrideReason", self.session.request.call_args.kwargs["json"])

        self.backend.create_visit("i", -33.4, -70.6, "mobile", geofence_override_reason="gate blocked")
        self.assertEqual(self.session.request.call_args.kwargs["json"]["geofenceOverrideReason"], "gate blocked")

    def test_nearby_query_and_distances(self):
        self.session.request.return_value = envelope_response([
            {"id": "inst-1", "name": "Plaza", "lat": -33.4, "lng": -70.6, "geoRadiusM": 100, "distanceM": 42.6},
        ])
        nearby = self.backend.nearby_installations(-33.4, -70.6, 30000)

        self.assertEqual(nearby[0].distance_m, 43)
        self.assertTrue(nearby[0].inside_geofence)
        self.assertEqual(
            self.session.request.call_args.kwargs["params"],
            {"lat": -33.4, "lng": -70.6, "maxDistanceM": 30000},
        )

    def test_dotation_split_by_type(self):
        self.session.request.return_value = envelope_response({
            "regular": [{"id": "slot-1", "guardName": "Juan"}],
            "reinforcement": [{"id": "ref-1", "guardName": "Luis"}],
        })
        dotation = self.backend.get_dotation("inst-1", "2026-03-10", "10:00")
        self.assertEqual(dotation.total_expected, 2)
        self.assertTrue(dotation.reinforcement[0].is_reinforcement)
        self.assertEqual(
            self.session.request.call_args.kwargs["params"],
            {"date": "2026-03-10", "time": "10:00"},
        )

    def test_checklist_accepts_bare_item_list(self):
        self.session.request.return_value = envelope_response([{"id": "chk-1", "name": "Uniforme"}])
        items, documents = self.backend.get_checklist("inst-1")
        self.assertEqual([i.id for i in items], ["chk-1"])
        self.assertEqual(documents, [])

    def test_photo_upload_is_multipart(self):
        self.session.request.return_value = envelope_response({"id": "p1", "photoUrl": "https://cdn/p1.jpg"})
        uploaded = self.backend.upload_photo(
            "visit-1", b"jpeg", "frontis.jpg", "image/jpeg",
            category_name="Frontis", category_id="cat-1", lat=-33.4, lng=-70.6,
        )

        self.assertEqual(uploaded.url, "https://cdn/p1.jpg")
        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs["data"], {
            "categoryName": "Frontis", "categoryId": "cat-1", "gpsLat": "-33.4", "gpsLng": "-70.6",
        })
        self.assertEqual(kwargs["files"], {"file": ("frontis.jpg", b"jpeg", "image/jpeg")})

    def test_photo_upload_without_category_or_position(self):
        self.session.request.return_value = envelope_response({"id": "p1", "photoUrl": "u"})
        self.backend.upload_photo("visit-1", b"jpeg", "x.jpg", "image/jpeg", category_name="Otros")
        self.assertEqual(self.session.request.call_args.kwargs["data"], {"categoryName": "Otros"})

    def test_finding_status_update_payload(self):
        self.session.request.return_value = envelope_response({
            "id": "f1", "visitId": "v0", "installationId": "inst-1",
            "category": "personal", "severity": "minor", "description": "x", "status": "verified",
        })
        self.backend.update_finding_status("inst-1", "f1", FindingStatus.VERIFIED, "v2")
        args = self.session.request.call_args
        self.assertEqual(args.args[0], "PATCH")
        self.assertTrue(args.args[1].endswith("/installation-findings/inst-1"))
        self.assertEqual(args.kwargs["json"], {"findingId": "f1", "status": "verified", "verifiedInVisitId": "v2"})

    def test_evaluations_payload(self):
        self.session.request.return_value = envelope_response(None)
        self.backend.save_evaluations("visit-1", [GuardEvaluation(guard_name="Juan", presentation_score=4)])
        body = self.session.request.call_args.kwargs["json"]
        self.assertEqual(body["evaluations"][0]["guardName"], "Juan")
        self.assertEqual(body["evaluations"][0]["presentationScore"], 4)


if __name__ == "__main__":
    unittest.main()
