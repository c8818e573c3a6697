"""
Supervision Visit Wizard

A resumable five-step field inspection workflow for security staffing
supervisors: check-in, guard evaluation, checklist, evidence and closure.
"""

__version__ = "1.0.0"

# Core exports
from supervision.wizard.visit_controller import VisitSessionController, create_visit_controller
from supervision.backend import create_supervision_backend

__all__ = [
    "__version__",
    "VisitSessionController",
    "create_visit_controller",
    "create_supervision_backend",
]
