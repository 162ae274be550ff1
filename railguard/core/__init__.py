"""
Core domain models and pure functions for RailGuard.

This module contains the domain models and the pure geospatial
logic (projection, track distance, overlap, boundary evaluation)
that is independent of external I/O and infrastructure concerns.
"""

from .models import (
    Authority, GeometryPoint, GPSFix, LocatedPosition, AlertEvent,
    BoundaryAlertConfig, ProximityAlertConfig, AlertThresholdConfig,
    BoundaryDecision, GPSUpdateResult
)
from .geometry import locate
from .track_distance import track_distance
from .overlap import overlaps, find_overlapping_pairs
from .boundary import evaluate_boundary
from .normalize import to_fix

__all__ = [
    "Authority", "GeometryPoint", "GPSFix", "LocatedPosition", "AlertEvent",
    "BoundaryAlertConfig", "ProximityAlertConfig", "AlertThresholdConfig",
    "BoundaryDecision", "GPSUpdateResult",
    "locate", "track_distance", "overlaps", "find_overlapping_pairs",
    "evaluate_boundary", "to_fix"
]
