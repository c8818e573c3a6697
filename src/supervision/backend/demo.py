"""
Demo data for the in-memory backend.

Seeds two geocoded installations and one without coordinates, a roster with
day and night shifts plus a reinforcement, checklist and document
requirements, photo categories and one finding left open by an earlier visit.
"""

from datetime import datetime, timedelta, timezone

from supervision.backend.memory import InMemorySupervisionBackend
from supervision.models import (
    ChecklistItem,
    DocumentType,
    DotationGuard,
    DotationType,
    Finding,
    FindingCategory,
    FindingSeverity,
    Installation,
    PhotoCategory,
)

DEMO_INSTALLATION_ID = "inst-plaza-norte"
DEMO_INSTALLATION_LAT = -33.4372
DEMO_INSTALLATION_LNG = -70.6506


def seed_demo_data(backend: InMemorySupervisionBackend) -> InMemorySupervisionBackend:
    """Populate a backend with a small, coherent data set."""
    backend.add_installation(Installation(
        id=DEMO_INSTALLATION_ID,
        name="Edificio Plaza Norte",
        lat=DEMO_INSTALLATION_LAT,
        lng=DEMO_INSTALLATION_LNG,
        geo_radius_m=100,
        address="Av. Recoleta 1200",
        commune="Recoleta",
        client_name="Inmobiliaria Plaza Norte",
    ))
    backend.add_installation(Installation(
        id="inst-bodega-quilicura",
        name="Bodega Quilicura",
        lat=-33.3600,
        lng=-70.7300,
        geo_radius_m=150,
        commune="Quilicura",
        client_name="Logistica Andes",
    ))
    backend.add_installation(Installation(
        id="inst-oficina-providencia",
        name="Oficina Providencia",
        commune="Providencia",
    ))

    for slot, (name, rut, start, end) in enumerate([
        ("Juan Perez", "12.345.678-9", "08:00", "20:00"),
        ("Maria Soto", "13.456.789-0", "08:00", "20:00"),
        ("Pedro Rojas", "14.567.890-1", "20:00", "08:00"),
    ], start=1):
        backend.add_roster_entry(DEMO_INSTALLATION_ID, DotationGuard(
            id=f"slot-{slot}",
            guard_id=f"guard-{slot}",
            guard_name=name,
            guard_rut=rut,
            puesto_name="Acceso principal" if slot < 3 else "Ronda nocturna",
            slot_number=slot,
            shift_start=start,
            shift_end=end,
        ))
    backend.add_roster_entry(DEMO_INSTALLATION_ID, DotationGuard(
        id="reinforcement-1",
        guard_id="guard-9",
        guard_name="Luis Vera",
        type=DotationType.REINFORCEMENT,
        puesto_name="Evento especial",
    ))

    backend.set_checklist(
        DEMO_INSTALLATION_ID,
        items=[
            ChecklistItem(id="chk-uniform", name="Uniforme completo"),
            ChecklistItem(id="chk-radio", name="Radio operativa"),
            ChecklistItem(id="chk-lighting", name="Iluminacion perimetral", is_mandatory=False),
        ],
        document_types=[
            DocumentType(code="OS10", name="Credencial OS-10"),
            DocumentType(code="PLAN_EMERGENCIA", name="Plan de emergencia"),
        ],
    )
    backend.set_photo_categories(DEMO_INSTALLATION_ID, [
        PhotoCategory(id="cat-frontis", name="Frontis", is_mandatory=True),
        PhotoCategory(id="cat-puesto", name="Puesto de guardia", is_mandatory=True),
        PhotoCategory(id="cat-otros", name="Otros"),
    ])

    backend.add_finding(Finding(
        id="finding-previous-1",
        visit_id="visit-previous-1",
        installation_id=DEMO_INSTALLATION_ID,
        category=FindingCategory.INFRASTRUCTURE,
        severity=FindingSeverity.MAJOR,
        description="Camara de acceso sin grabacion",
        created_at=datetime.now(timezone.utc) - timedelta(days=14),
    ))
    return backend
