"""
Main entry point for the Supervision Visit Wizard.

Provides a CLI to serve the wizard API or to walk a complete demo visit
against the in-memory backend.
"""

import argparse
import io
import json
import logging
import sys

from PIL import Image

from supervision.backend import create_supervision_backend
from supervision.backend.demo import DEMO_INSTALLATION_ID, DEMO_INSTALLATION_LAT, DEMO_INSTALLATION_LNG
from supervision.wizard.config import BackendType, settings, validate_config
from supervision.wizard.errors import SupervisionError
from supervision.wizard.geolocation import StaticLocationProbe
from supervision.wizard.visit_controller import VisitSessionController


# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Commands
# =============================================================================

def _demo_image(color: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (1280, 960), color).save(buffer, format="JPEG")
    return buffer.getvalue()


def run_demo(guards_found: int) -> dict:
    """
    Walk one visit through all five steps against seeded in-memory data.

    Returns:
        Dictionary with the sealed visit and its closure summary
    """
    backend = create_supervision_backend(BackendType.MEMORY.value)
    probe = StaticLocationProbe(DEMO_INSTALLATION_LAT + 0.0002, DEMO_INSTALLATION_LNG)
    controller = VisitSessionController(backend, probe)

    # Step 1
    controller.locate()
    controller.select_installation(DEMO_INSTALLATION_ID)
    controller.set_guards_found(guards_found)
    controller.advance()

    # Step 2
    for index in range(len(controller.draft.evaluations)):
        controller.rate_guard(index, presentation=5, order=4, protocol=4)
    controller.advance()

    # Step 3
    requirements = controller.draft.requirements
    for item in requirements.checklist_items:
        controller.set_checklist_item(item.id, True)
    for document in requirements.document_types:
        controller.answer_document(document.code, "yes")
    controller.set_logbook(True)
    for finding in requirements.open_findings:
        controller.resolve_open_finding(finding.id)
    controller.advance()

    # Step 4
    for category in requirements.mandatory_photo_categories:
        controller.capture_photo(category.id, _demo_image("gray"), f"{category.id}.jpg")
    controller.advance()

    # Step 5
    controller.set_general_comments("Demo visit without incidents")
    controller.set_client_survey(
        contacted=True,
        contact_name="Administrador",
        service_quality=5,
        schedule_compliance=4,
        personal_presentation=5,
        professionalism=4,
        nps=9,
    )
    summary = controller.summary()
    visit = controller.checkout()

    return {"visit": visit.to_dict(), "summary": summary.to_dict()}


def serve(host: str, port: int, backend_type: str) -> None:
    import uvicorn

    from supervision.api.server import create_app

    app = create_app(create_supervision_backend(backend_type))
    logger.info(f"Serving wizard API on {host}:{port} ({backend_type} backend)")
    uvicorn.run(app, host=host, port=port, log_level="info")


# =============================================================================
# CLI Entry Point
# =============================================================================

def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(description="Supervision Visit Wizard")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the wizard HTTP API")
    serve_parser.add_argument(
        "--host",
        type=str,
        default=settings.server.host,
        help=f"Bind address (default: {settings.server.host})",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=settings.server.port,
        help=f"Port (default: {settings.server.port})",
    )
    serve_parser.add_argument(
        "--backend",
        choices=[b.value for b in BackendType],
        default=settings.backend.backend_type,
        help="Backend implementation",
    )

    demo_parser = subparsers.add_parser("demo", help="Walk a demo visit on the in-memory backend")
    demo_parser.add_argument(
        "--guards-found",
        type=int,
        default=2,
        help="Guards found on site (default: 2)",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    if args.command == "serve":
        problems = validate_config()
        if problems:
            for problem in problems:
                logger.error(f"Configuration error: {problem}")
            return 1
        serve(args.host, args.port, args.backend)
        return 0

    try:
        result = run_demo(args.guards_found)
    except SupervisionError as e:
        logger.error(f"Demo visit failed: {e.message}")
        print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False))
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


# =============================================================================
# Script Entry Point
# =============================================================================

if __name__ == "__main__":
    sys.exit(main())
