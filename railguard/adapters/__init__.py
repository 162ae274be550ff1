"""
Adapters for RailGuard hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .storage import SQLiteAlertLog, SQLiteOutbox
from .mqtt_remote.gps_ingestor import RemoteGpsIngestor
from .mqtt_local.notifier import MqttAlertNotifier
from .reference import BackendReferenceClient, InMemoryReferenceStore

__all__ = [
    "SQLiteAlertLog",
    "SQLiteOutbox",
    "RemoteGpsIngestor",
    "MqttAlertNotifier",
    "BackendReferenceClient",
    "InMemoryReferenceStore",
]
