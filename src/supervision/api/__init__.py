"""
Wizard HTTP API.

Provides:
- create_app: FastAPI application factory
- router: APIRouter with the wizard session endpoints
- SessionRegistry: Active wizard sessions
"""

from supervision.api.server import SessionRegistry, WizardSession, create_app, router

__all__ = [
    "SessionRegistry",
    "WizardSession",
    "create_app",
    "router",
]
