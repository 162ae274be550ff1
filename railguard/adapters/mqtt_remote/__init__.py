"""
Remote MQTT adapter for RailGuard.

This module subscribes to field devices' GPS topics and yields raw
fix payloads to the GPS pipeline.
"""

from .gps_ingestor import RemoteGpsIngestor

__all__ = ["RemoteGpsIngestor"]
