"""
Orchestrators for RailGuard.

This module contains the orchestrators that coordinate the flow
between ports, core evaluation and alert dispatch.
"""
from .gps_pipeline import GpsPipeline
from .overlap_checker import OverlapChecker
from .proximity_monitor import ProximityMonitor

__all__ = ["GpsPipeline", "OverlapChecker", "ProximityMonitor"]
