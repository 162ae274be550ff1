"""
Reference data adapters for RailGuard.

Track geometry, authorities and alert thresholds come either from
process memory (loaded from a geometry file) or from the backend API.
"""

from .memory import InMemoryReferenceStore
from .http_client import BackendReferenceClient

__all__ = ["InMemoryReferenceStore", "BackendReferenceClient"]
