"""
Backend module for the Supervision Visit Wizard.

Provides:
- SupervisionBackend: Abstract base class for the server operations
- InMemorySupervisionBackend: In-memory implementation for development/testing
- HttpSupervisionBackend: HTTP+JSON client for the supervision API
- create_supervision_backend: Factory selecting an implementation
"""

from typing import Optional

from supervision.backend.base import SupervisionBackend
from supervision.backend.memory import InMemorySupervisionBackend
from supervision.backend.http_backend import HttpSupervisionBackend
from supervision.backend.demo import seed_demo_data
from supervision.wizard.config import BackendSettings, BackendType, settings


def create_supervision_backend(
    backend_type: Optional[str] = None,
    config: Optional[BackendSettings] = None,
    seed_demo: bool = True,
) -> SupervisionBackend:
    """
    Factory function to create a backend.

    Args:
        backend_type: "memory" or "http" (default from configuration)
        config: Backend settings (default from environment)
        seed_demo: Seed demo data into an in-memory backend

    Returns:
        SupervisionBackend instance
    """
    config = config or settings.backend
    backend_type = backend_type or config.backend_type

    if backend_type == BackendType.MEMORY.value:
        backend = InMemorySupervisionBackend()
        if seed_demo:
            seed_demo_data(backend)
        return backend
    if backend_type == BackendType.HTTP.value:
        return HttpSupervisionBackend(config=config)

    raise ValueError(f"Unknown backend type: {backend_type}")


__all__ = [
    "SupervisionBackend",
    "InMemorySupervisionBackend",
    "HttpSupervisionBackend",
    "create_supervision_backend",
    "seed_demo_data",
]
