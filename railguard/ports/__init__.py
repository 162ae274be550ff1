"""
Port interfaces for RailGuard hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the alerting core and external adapters.
"""

from .ingest import GpsIngestPort
from .reference import ReferenceDataPort
from .positions import PositionStorePort
from .alerts import AlertStorePort
from .notify import NotificationPort

__all__ = ["GpsIngestPort", "ReferenceDataPort", "PositionStorePort", "AlertStorePort", "NotificationPort"]
