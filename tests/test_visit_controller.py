import unittest
from unittest.mock import patch

from supervision.backend.demo import DEMO_INSTALLATION_ID
from supervision.models import (
    DotationGuard,
    EvidenceKind,
    FindingStatus,
    InstallationState,
    VisitStatus,
    WizardStep,
)
from supervision.wizard.errors import (
    AdmissionError,
    BackendError,
    EvidenceUploadError,
    InvalidScoreError,
    LocationUnavailable,
    StepNotReachableError,
    StepValidationError,
    ValidationError,
    VisitInvariantError,
    VisitSealedError,
)
from supervision.wizard.geolocation import StaticLocationProbe
from supervision.wizard.visit_controller import VisitSessionController

from tests.helpers import (
    DAY_SHIFT,
    at_closure_step,
    at_evidence_step,
    checked_in,
    image_bytes,
    make_backend,
    make_controller,
)


class CheckInTests(unittest.TestCase):
    def test_outside_geofence_requires_override_reason(self):
        controller, backend, _ = make_controller(metres_from_site=150)
        controller.locate()

        selection = controller.draft.selection
        self.assertEqual(selection.installation.id, DEMO_INSTALLATION_ID)
        self.assertEqual(selection.distance_m, 150)
        self.assertFalse(selection.inside_geofence)
        self.assertFalse(controller.can_advance())

        with self.assertRaises(AdmissionError):
            controller.check_in()
        self.assertEqual(backend.visits(), [])
        self.assertEqual(controller.current_step, WizardStep.CHECK_IN)

        controller.set_geofence_override_reason("gate blocked")
        self.assertTrue(controller.can_advance())
        visit = controller.check_in()

        self.assertEqual(visit.geofence_override_reason, "gate blocked")
        self.assertFalse(visit.check_in_geo_validated)
        self.assertEqual(controller.current_step, WizardStep.EVALUATION)

    def test_blank_override_reason_is_not_a_reason(self):
        controller, _, _ = make_controller(metres_from_site=150)
        controller.locate()
        controller.set_geofence_override_reason("   ")
        self.assertIn(
            "Outside the installation geofence: an override reason is required",
            controller.admission_issues(),
        )

    def test_admission_without_location_or_selection(self):
        controller, _, _ = make_controller()
        issues = controller.admission_issues(WizardStep.CHECK_IN)
        self.assertIn("Location not obtained", issues)
        self.assertIn("No installation selected", issues)

    def test_location_failure_leaves_draft_untouched(self):
        backend = make_backend()
        controller = VisitSessionController(backend, StaticLocationProbe(), local_clock=lambda: DAY_SHIFT)
        with self.assertRaises(LocationUnavailable):
            controller.locate()
        self.assertIsNone(controller.draft.location)
        self.assertIsNone(controller.draft.selection)

    def test_installation_without_location_requires_override(self):
        controller, _, _ = make_controller()
        controller.locate()
        controller.select_installation("inst-oficina-providencia")
        self.assertIsNone(controller.draft.selection.inside_geofence)
        self.assertFalse(controller.can_advance())

    def test_staffing_mismatch_does_not_block(self):
        backend = make_backend()
        for slot in (4, 5):
            backend.add_roster_entry(DEMO_INSTALLATION_ID, DotationGuard(
                id=f"slot-{slot}", guard_name=f"Guardia {slot}", shift_start="08:00", shift_end="20:00",
            ))
        controller, _, _ = make_controller(backend)
        controller.locate()
        controller.set_guards_found(3)

        self.assertEqual(controller.draft.guards_expected, 5)
        self.assertTrue(controller.progress().anomalies.staffing_mismatch)

        controller.check_in()
        self.assertEqual(controller.current_step, WizardStep.EVALUATION)
        self.assertEqual(controller.visit.guards_expected, 5)
        self.assertIn("staffing_discrepancy", controller.summary().tags)

    def test_check_in_persists_step_and_head_counts(self):
        controller, backend, _ = checked_in(guards_found=2)
        stored = backend.get_visit(controller.visit.id)
        self.assertEqual(stored.wizard_step, 2)
        self.assertEqual(stored.guards_expected, 3)
        self.assertEqual(stored.guards_found, 2)
        self.assertEqual(len(controller.draft.evaluations), 3)
        self.assertIsNotNone(controller.draft.requirements)

    def test_failed_create_leaves_step_one(self):
        controller, backend, _ = make_controller()
        controller.locate()
        with patch.object(backend, "create_visit", side_effect=BackendError("createVisit", "HTTP 500", 500)):
            with self.assertRaises(BackendError):
                controller.check_in()
        self.assertFalse(controller.draft.checked_in)
        self.assertEqual(controller.current_step, WizardStep.CHECK_IN)

    def test_failed_update_after_create_never_duplicates_visit(self):
        controller, backend, _ = make_controller()
        controller.locate()
        with patch.object(backend, "update_visit", side_effect=BackendError("updateVisit", "network error")):
            with self.assertRaises(BackendError):
                controller.check_in()
        self.assertEqual(controller.current_step, WizardStep.CHECK_IN)

        controller.check_in()

        self.assertEqual(len(backend.visits()), 1)
        self.assertEqual(controller.current_step, WizardStep.EVALUATION)
        self.assertEqual(backend.get_visit(controller.visit.id).guards_expected, 3)

    def test_relocating_after_check_in_is_rejected(self):
        controller, _, _ = checked_in()
        controller.go_to_step(1)
        with self.assertRaises(VisitInvariantError):
            controller.locate()


class GuardsExpectedTests(unittest.TestCase):
    def test_frozen_for_the_rest_of_the_visit(self):
        controller, backend, _ = checked_in()
        backend.add_roster_entry(DEMO_INSTALLATION_ID, DotationGuard(
            id="slot-late", guard_name="Tardio", shift_start="08:00", shift_end="20:00",
        ))

        controller.save_evaluations()
        controller.set_logbook(True)
        controller.save_checklist()
        controller.go_to_step(1)
        controller.check_in()

        self.assertEqual(controller.visit.guards_expected, 3)
        self.assertEqual(backend.get_visit(controller.visit.id).guards_expected, 3)

    def test_resume_takes_server_value(self):
        controller, backend, _ = checked_in()
        backend.add_roster_entry(DEMO_INSTALLATION_ID, DotationGuard(
            id="slot-late", guard_name="Tardio", shift_start="08:00", shift_end="20:00",
        ))
        resumed, _, _ = make_controller(backend)
        resumed.resume(controller.visit.id)
        self.assertEqual(resumed.draft.guards_expected, 3)


class EvaluationStepTests(unittest.TestCase):
    def test_scores_must_be_one_to_five(self):
        controller, _, _ = checked_in()
        for value in (0, 6, True, 3.5):
            with self.assertRaises(InvalidScoreError):
                controller.rate_guard(0, presentation=value)
        self.assertIsNone(controller.draft.evaluations[0].presentation_score)

    def test_save_persists_evaluations_and_state(self):
        controller, backend, _ = checked_in()
        controller.rate_guard(0, presentation=2, order=2, protocol=3, observation="Sin corbata")
        controller.set_installation_state("incidencia")
        controller.save_evaluations()

        stored = backend.get_evaluations(controller.visit.id)
        self.assertEqual(stored[0].presentation_score, 2)
        self.assertEqual(stored[0].observation, "Sin corbata")
        visit = backend.get_visit(controller.visit.id)
        self.assertEqual(visit.installation_state, InstallationState.INCIDENCIA)
        self.assertEqual(visit.wizard_step, 3)
        self.assertIn("Juan Perez", controller.progress().anomalies.low_rated_guards)

    def test_failed_save_keeps_step_and_draft(self):
        controller, backend, _ = checked_in()
        with patch.object(backend, "update_visit", side_effect=BackendError("updateVisit", "HTTP 503", 503)):
            with self.assertRaises(BackendError):
                controller.save_evaluations()
        self.assertEqual(controller.current_step, WizardStep.EVALUATION)
        self.assertEqual(controller.max_reached_step, WizardStep.EVALUATION)
        self.assertFalse(controller.draft.evaluations_saved)

    def test_unlisted_guard_only_before_save(self):
        controller, _, _ = checked_in()
        controller.add_unlisted_guard("Guardia extra")
        self.assertEqual(len(controller.draft.evaluations), 4)
        controller.save_evaluations()
        with self.assertRaises(VisitInvariantError):
            controller.add_unlisted_guard("Otro")

    def test_findings_recorded_in_steps_two_and_three_only(self):
        controller, _, _ = checked_in()
        controller.record_finding("personal", "minor", "Guardia sin credencial")
        controller.save_evaluations()
        finding = controller.record_finding(
            "infrastructure", "major", "Radio sin bateria", checklist_item_id="chk-radio",
        )
        result = controller.draft.checklist_results["chk-radio"]
        self.assertFalse(result.is_checked)
        self.assertEqual(result.finding_id, finding.id)

        controller.set_logbook(True)
        controller.save_checklist()
        with self.assertRaises(VisitInvariantError):
            controller.record_finding("personal", "minor", "Tarde")
        self.assertEqual(controller.summary().findings_created, 2)


class ChecklistStepTests(unittest.TestCase):
    def setUp(self):
        self.controller, self.backend, _ = checked_in()
        self.controller.save_evaluations()

    def test_logbook_gate(self):
        self.assertFalse(self.controller.can_advance())

        self.controller.set_logbook(False, notes="")
        self.assertFalse(self.controller.can_advance())
        with self.assertRaises(StepValidationError):
            self.controller.save_checklist()

        self.controller.set_logbook(False, notes="Sin registros desde ayer")
        self.assertTrue(self.controller.can_advance())
        self.controller.save_checklist()
        self.assertEqual(self.controller.current_step, WizardStep.EVIDENCE)

    def test_save_persists_results_documents_and_logbook(self):
        self.controller.set_checklist_item("chk-uniform", True)
        self.controller.set_checklist_item("chk-radio", False)
        self.controller.answer_document("OS10", "yes")
        self.controller.answer_document("PLAN_EMERGENCIA", "no")
        self.controller.set_logbook(True, "2026-03-09")
        self.controller.attach_logbook_photo(image_bytes(), "libro.jpg")
        self.controller.save_checklist()

        visit_id = self.controller.visit.id
        results = {r.checklist_item_id: r.is_checked for r in self.backend.checklist_results_for(visit_id)}
        self.assertEqual(results, {"chk-uniform": True, "chk-radio": False})

        visit = self.backend.get_visit(visit_id)
        self.assertEqual(visit.document_checklist, {"Credencial OS-10": True, "Plan de emergencia": False})
        self.assertTrue(visit.logbook.up_to_date)
        self.assertEqual(visit.logbook.last_entry_date, "2026-03-09")
        self.assertTrue(visit.logbook.photo_url.startswith("memory://"))
        self.assertEqual(visit.wizard_step, 4)

        compliance = self.controller.draft.compliance()
        self.assertEqual(compliance.ratio, 0.4)
        self.assertTrue(self.controller.progress().anomalies.low_compliance)

    def test_document_photo_joins_evidence_queue(self):
        self.controller.answer_document("OS10", "yes", photo=image_bytes(), photo_filename="os10.jpg")
        self.controller.answer_document("OS10", "yes", photo=image_bytes(color="green"), photo_filename="os10.jpg")
        documents = [p for p in self.controller.draft.photos if p.kind == EvidenceKind.DOCUMENT]
        self.assertEqual(len(documents), 1)
        self.assertEqual(documents[0].document_code, "OS10")
        self.assertEqual(len(self.controller.previews), 1)

    def test_unknown_items_rejected(self):
        with self.assertRaises(ValidationError):
            self.controller.set_checklist_item("chk-missing", True)
        with self.assertRaises(ValidationError):
            self.controller.answer_document("NOPE", "yes")

    def test_resolving_previous_finding_links_this_visit(self):
        finding = self.controller.resolve_open_finding("finding-previous-1")
        self.assertEqual(finding.status, FindingStatus.VERIFIED)
        stored = self.backend.finding("finding-previous-1")
        self.assertEqual(stored.verified_in_visit_id, self.controller.visit.id)
        self.assertEqual(self.controller.summary().findings_resolved, 1)

    def test_default_requirements_never_reach_the_server(self):
        backend = make_backend()
        with patch.object(backend, "get_checklist", side_effect=BackendError("getChecklist", "HTTP 500", 500)), \
                patch.object(backend, "get_photo_categories", side_effect=BackendError("getPhotoCategories", "x")):
            controller, _, _ = checked_in(backend)
        self.assertTrue(controller.draft.requirements.used_defaults)

        controller.save_evaluations()
        controller.set_checklist_item("default-uniform", True)
        controller.set_logbook(True)
        controller.save_checklist()
        self.assertEqual(backend.checklist_results_for(controller.visit.id), [])

        controller.capture_photo("default-frontis", image_bytes())
        controller.capture_photo("default-post", image_bytes())
        controller.save_evidence()
        self.assertEqual(
            [p["categoryId"] for p in backend.photos_for(controller.visit.id)],
            [None, None],
        )


class EvidenceStepTests(unittest.TestCase):
    def test_mandatory_categories_gate(self):
        controller, backend, _ = at_evidence_step()
        controller.capture_photo("cat-frontis", image_bytes())
        self.assertEqual(controller.admission_issues(), ["Missing mandatory photo: Puesto de guardia"])
        with self.assertRaises(StepValidationError):
            controller.save_evidence()
        self.assertEqual(backend.photos_for(controller.visit.id), [])

        controller.capture_photo("cat-puesto", image_bytes())
        self.assertTrue(controller.can_advance())
        controller.save_evidence()

        self.assertEqual(controller.current_step, WizardStep.CLOSURE)
        self.assertEqual(len(backend.photos_for(controller.visit.id)), 2)
        self.assertEqual(len(backend.legacy_images_for(controller.visit.id)), 2)
        self.assertEqual(len(controller.previews), 0)

    def test_upload_failure_keeps_step_and_resumes(self):
        controller, backend, _ = at_evidence_step()
        controller.capture_photo("cat-frontis", image_bytes())
        controller.capture_photo("cat-puesto", image_bytes())
        controller.capture_photo("cat-otros", image_bytes())

        real_upload = backend.upload_photo
        calls = []

        def flaky(*args, **kwargs):
            calls.append(kwargs["category_name"])
            if len(calls) == 2:
                raise BackendError("uploadPhoto", "network error")
            return real_upload(*args, **kwargs)

        with patch.object(backend, "upload_photo", side_effect=flaky):
            with self.assertRaises(EvidenceUploadError):
                controller.save_evidence()
        self.assertEqual(controller.current_step, WizardStep.EVIDENCE)
        self.assertEqual([p.uploaded for p in controller.draft.photos], [True, False, False])

        controller.save_evidence()
        self.assertEqual(len(backend.photos_for(controller.visit.id)), 3)
        self.assertEqual(controller.current_step, WizardStep.CLOSURE)

    def test_remove_photo_releases_preview(self):
        controller, _, _ = at_evidence_step()
        photo = controller.capture_photo("cat-frontis", image_bytes())
        self.assertEqual(len(controller.previews), 1)
        self.assertIsNotNone(controller.preview(photo.capture_id))
        controller.remove_photo(photo.capture_id)
        self.assertEqual(len(controller.previews), 0)
        self.assertEqual(controller.draft.photos, [])

    def test_uploaded_photo_cannot_be_removed(self):
        controller, _, _ = at_closure_step()
        with self.assertRaises(VisitInvariantError):
            controller.remove_photo(controller.draft.photos[0].capture_id)


    def test_photos_captured_on_evidence_step_only(self):
        controller, _, _ = checked_in()
        with self.assertRaises(StepNotReachableError):
            controller.capture_photo("cat-frontis", image_bytes())

        controller, _, _ = at_closure_step()
        with self.assertRaises(VisitInvariantError):
            controller.capture_photo("cat-otros", image_bytes())
        self.assertEqual(len(controller.draft.photos), 2)


class NavigationTests(unittest.TestCase):
    def test_later_step_edits_need_the_step_reached(self):
        controller, _, _ = checked_in()
        with self.assertRaises(StepNotReachableError):
            controller.set_logbook(True)
        with self.assertRaises(StepNotReachableError):
            controller.set_general_comments("antes de tiempo")
        self.assertIsNone(controller.draft.logbook.up_to_date)

    def test_cannot_skip_past_watermark(self):
        controller, _, _ = checked_in()
        with self.assertRaises(StepNotReachableError):
            controller.go_to_step(4)
        with self.assertRaises(StepNotReachableError):
            controller.go_to_step(6)

    def test_back_navigation_keeps_watermark(self):
        controller, backend, _ = checked_in()
        controller.save_evaluations()
        controller.go_to_step(1)
        self.assertEqual(controller.current_step, WizardStep.CHECK_IN)
        self.assertEqual(controller.max_reached_step, WizardStep.CHECKLIST)

        controller.set_guards_found(1)
        controller.advance()

        self.assertEqual(controller.current_step, WizardStep.EVALUATION)
        visit = backend.get_visit(controller.visit.id)
        self.assertEqual(visit.wizard_step, 3)
        self.assertEqual(visit.guards_found, 1)
        self.assertEqual(len(backend.visits()), 1)

    def test_advance_dispatches_current_transition(self):
        controller, _, _ = make_controller()
        controller.locate()
        controller.advance()
        self.assertEqual(controller.current_step, WizardStep.EVALUATION)
        controller.advance()
        self.assertEqual(controller.current_step, WizardStep.CHECKLIST)


class CheckoutTests(unittest.TestCase):
    def test_checkout_seals_visit(self):
        controller, backend, probe = at_closure_step()
        controller.set_general_comments("Todo en orden")
        controller.set_client_survey(
            contacted=True,
            contact_name="Jefa de edificio",
            service_quality=4,
            schedule_compliance=5,
            professionalism=3,
            nps=9,
        )
        controller.set_client_validation(image_bytes(fmt="PNG"), "signature", "firma.png", "image/png")
        probe.move_to(-33.4371, -70.6506)

        visit = controller.checkout()

        self.assertEqual(visit.status, VisitStatus.CLOSED)
        self.assertEqual(visit.client_satisfaction, 4.0)
        self.assertEqual(visit.general_comments, "Todo en orden")
        self.assertTrue(visit.client_validation_url.startswith("memory://"))
        self.assertAlmostEqual(visit.check_out_location.lat, -33.4371)
        self.assertEqual(visit.guards_expected, 3)
        self.assertEqual(backend.survey_for(visit.id)["validationKind"], "signature")
        self.assertEqual(backend.survey_for(visit.id)["nps"], 9)
        self.assertEqual(controller.current_step, WizardStep.CLOSED)
        self.assertEqual(len(controller.previews), 0)

    def test_failed_checkout_is_retryable(self):
        controller, backend, _ = at_closure_step()
        with patch.object(backend, "checkout", side_effect=BackendError("checkout", "HTTP 502", 502)):
            with self.assertRaises(BackendError):
                controller.checkout()

        stored = backend.get_visit(controller.visit.id)
        self.assertEqual(stored.status, VisitStatus.OPEN)
        self.assertEqual(stored.wizard_step, 5)
        self.assertEqual(controller.current_step, WizardStep.CLOSURE)

        controller.checkout()
        self.assertTrue(backend.get_visit(controller.visit.id).is_closed)
        self.assertEqual(len(backend.photos_for(controller.visit.id)), 2)

    def test_checkout_needs_a_second_fix(self):
        controller, _, probe = at_closure_step()
        probe.lat = None
        with self.assertRaises(LocationUnavailable):
            controller.checkout()
        self.assertEqual(controller.current_step, WizardStep.CLOSURE)

    def test_sealed_visit_rejects_mutation(self):
        controller, _, _ = at_closure_step()
        controller.checkout()
        with self.assertRaises(VisitSealedError):
            controller.set_general_comments("tarde")
        with self.assertRaises(VisitSealedError):
            controller.go_to_step(2)
        with self.assertRaises(VisitSealedError):
            controller.advance()
        self.assertFalse(controller.can_advance())

    def test_survey_scores_validated(self):
        controller, _, _ = at_closure_step()
        with self.assertRaises(InvalidScoreError):
            controller.set_client_survey(service_quality=7)
        with self.assertRaises(InvalidScoreError):
            controller.set_client_survey(nps=11)
        controller.set_client_survey(nps=0)
        self.assertEqual(controller.draft.survey.nps, 0)

    def test_checkout_rechecks_logbook_after_late_edit(self):
        controller, backend, _ = at_closure_step()
        controller.set_logbook(False, notes="")
        self.assertFalse(controller.can_advance(WizardStep.CHECKLIST))

        with self.assertRaises(StepValidationError) as ctx:
            controller.checkout()
        self.assertEqual(ctx.exception.step, 3)
        self.assertEqual(backend.get_visit(controller.visit.id).status, VisitStatus.OPEN)
        self.assertEqual(controller.current_step, WizardStep.CLOSURE)

        controller.set_logbook(False, notes="Sin registros desde ayer")
        visit = controller.checkout()
        self.assertTrue(visit.is_closed)
        self.assertFalse(visit.logbook.up_to_date)
        self.assertEqual(visit.logbook.notes, "Sin registros desde ayer")

    def test_checkout_uploads_evidence_left_pending(self):
        controller, backend, _ = at_closure_step()
        controller.go_to_step(4)
        late = controller.capture_photo("cat-otros", image_bytes(color="green"))
        controller.go_to_step(5)

        controller.checkout()

        self.assertTrue(late.uploaded)
        self.assertEqual(len(backend.photos_for(controller.visit.id)), 3)

    def test_pending_upload_failure_keeps_visit_open(self):
        controller, backend, _ = at_closure_step()
        controller.go_to_step(4)
        controller.capture_photo("cat-otros", image_bytes(color="green"))
        controller.go_to_step(5)

        with patch.object(backend, "upload_photo", side_effect=BackendError("uploadPhoto", "network error")):
            with self.assertRaises(EvidenceUploadError):
                controller.checkout()
        self.assertEqual(backend.get_visit(controller.visit.id).status, VisitStatus.OPEN)
        self.assertEqual(controller.current_step, WizardStep.CLOSURE)

        controller.checkout()
        self.assertEqual(len(backend.photos_for(controller.visit.id)), 3)

    def test_summary_before_checkout(self):
        controller, _, _ = at_closure_step()
        controller.set_client_survey(contacted=True, urgent_risk=True, urgent_risk_detail="Acceso sin cierre")
        summary = controller.summary()
        self.assertTrue(summary.is_express)
        self.assertEqual(summary.photos_uploaded, 2)
        self.assertEqual(summary.photos_pending, 0)
        self.assertIn("express_visit", summary.tags)
        self.assertIn("urgent_risk", summary.tags)


class ResumeTests(unittest.TestCase):
    def test_resume_restores_step_and_evaluations(self):
        controller, backend, _ = checked_in()
        controller.rate_guard(1, presentation=5, order=5, protocol=4)
        controller.save_evaluations()
        controller.answer_document("OS10", "yes")
        controller.set_logbook(True)
        controller.save_checklist()

        resumed, _, _ = make_controller(backend)
        resumed.resume(controller.visit.id)

        self.assertEqual(resumed.current_step, WizardStep.EVIDENCE)
        self.assertEqual(resumed.max_reached_step, WizardStep.EVIDENCE)
        self.assertEqual(resumed.draft.evaluations[1].average, 4.67)
        self.assertTrue(resumed.draft.logbook.up_to_date)
        self.assertEqual(resumed.draft.document_answers["OS10"].value, "yes")
        self.assertEqual(
            [c.id for c in resumed.draft.requirements.mandatory_photo_categories],
            ["cat-frontis", "cat-puesto"],
        )

    def test_resume_reseeds_roster_when_nothing_stored(self):
        controller, backend, _ = checked_in()
        resumed, _, _ = make_controller(backend)
        resumed.resume(controller.visit.id)
        self.assertEqual(resumed.current_step, WizardStep.EVALUATION)
        self.assertEqual(len(resumed.draft.evaluations), 3)

    def test_closed_visit_cannot_be_resumed(self):
        controller, backend, _ = at_closure_step()
        controller.checkout()
        resumed, _, _ = make_controller(backend)
        with self.assertRaises(VisitSealedError):
            resumed.resume(controller.visit.id)


if __name__ == "__main__":
    unittest.main()
