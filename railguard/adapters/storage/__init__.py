"""
Storage adapters for RailGuard.

This module contains the SQLite-backed alert audit log and the
durable notification outbox.
"""

from .sqlite_alert_log import SQLiteAlertLog
from .sqlite_outbox import SQLiteOutbox

__all__ = ["SQLiteAlertLog", "SQLiteOutbox"]
