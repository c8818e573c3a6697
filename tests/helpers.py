"""Shared fixtures for the wizard tests."""

import io
from datetime import datetime

from PIL import Image

from supervision.backend import InMemorySupervisionBackend, seed_demo_data
from supervision.backend.demo import DEMO_INSTALLATION_ID, DEMO_INSTALLATION_LAT, DEMO_INSTALLATION_LNG
from supervision.wizard.geolocation import StaticLocationProbe
from supervision.wizard.visit_controller import VisitSessionController

# One degree of latitude on the haversine sphere
METRES_PER_DEGREE_LAT = 111194.93

# 10:00 local: day shift slots 1-2 plus the reinforcement are on duty
DAY_SHIFT = datetime(2026, 3, 10, 10, 0)
NIGHT_SHIFT = datetime(2026, 3, 10, 23, 30)


def image_bytes(size=(64, 48), color="red", fmt="JPEG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def north_of_demo(metres: float):
    """Coordinate the given distance due north of the demo installation."""
    return DEMO_INSTALLATION_LAT + metres / METRES_PER_DEGREE_LAT, DEMO_INSTALLATION_LNG


def make_backend() -> InMemorySupervisionBackend:
    return seed_demo_data(InMemorySupervisionBackend())


def make_controller(backend=None, metres_from_site: float = 20.0, at: datetime = DAY_SHIFT):
    """Controller on the demo data with a probe the given distance from the site."""
    backend = backend or make_backend()
    lat, lng = north_of_demo(metres_from_site)
    probe = StaticLocationProbe(lat, lng)
    controller = VisitSessionController(backend, probe, local_clock=lambda: at)
    return controller, backend, probe


def checked_in(backend=None, guards_found: int = 3, **kwargs):
    """Controller already past step 1 at the demo installation."""
    controller, backend, probe = make_controller(backend, **kwargs)
    controller.locate()
    controller.select_installation(DEMO_INSTALLATION_ID)
    controller.set_guards_found(guards_found)
    controller.check_in()
    return controller, backend, probe


def at_evidence_step(backend=None, **kwargs):
    """Controller on step 4 with steps 2 and 3 saved."""
    controller, backend, probe = checked_in(backend, **kwargs)
    controller.save_evaluations()
    controller.set_logbook(True)
    controller.save_checklist()
    return controller, backend, probe


def at_closure_step(backend=None, **kwargs):
    """Controller on step 5 with both mandatory demo photos uploaded."""
    controller, backend, probe = at_evidence_step(backend, **kwargs)
    controller.capture_photo("cat-frontis", image_bytes(), "frontis.jpg")
    controller.capture_photo("cat-puesto", image_bytes(color="blue"), "puesto.jpg")
    controller.save_evidence()
    return controller, backend, probe
