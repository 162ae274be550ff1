"""
In-memory reference data adapter for RailGuard.

This module keeps geometry, authorities, alert thresholds and the
latest fix per authority in process memory. It is used when the
service runs from a geometry file and by the test suite.
"""

from typing import Dict, Iterable, List, Literal, Optional, Sequence
from railguard.core.geometry import sort_geometry
from railguard.core.models import AlertThresholdConfig, Authority, GeometryPoint, GPSFix
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.reference.memory")


class InMemoryReferenceStore:
    """메모리 기반 기준 데이터 + 위치 저장소"""

    def __init__(self,
                 geometry: Optional[Dict[str, Sequence[GeometryPoint]]] = None,
                 authorities: Iterable[Authority] = (),
                 thresholds: Iterable[AlertThresholdConfig] = ()):
        self._geometry: Dict[str, List[GeometryPoint]] = {
            k: sort_geometry(v) for k, v in (geometry or {}).items()
        }
        self._authorities: Dict[str, Authority] = {a.id: a for a in authorities}
        self._thresholds: List[AlertThresholdConfig] = list(thresholds)
        self._fixes: Dict[str, GPSFix] = {}

    # ---- 기준 데이터 적재 ----

    def set_geometry(self, subdivision_id: str, points: Sequence[GeometryPoint]) -> None:
        self._geometry[subdivision_id] = sort_geometry(points)
        log.info("형상 적재됨", subdivision_id=subdivision_id, points=len(points))

    def put_authority(self, authority: Authority) -> None:
        self._authorities[authority.id] = authority

    def deactivate(self, authority_id: str) -> bool:
        """권한을 종료합니다. 알 수 없는 권한이면 False."""
        a = self._authorities.get(authority_id)
        if a is None:
            return False
        self._authorities[authority_id] = a.model_copy(update={"is_active": False})
        self._fixes.pop(authority_id, None)
        log.info("권한 종료됨", authority_id=authority_id)
        return True

    def add_threshold(self, config: AlertThresholdConfig) -> None:
        self._thresholds.append(config)

    # ---- ReferenceDataPort ----

    async def get_geometry(self, subdivision_id: str) -> Sequence[GeometryPoint]:
        return self._geometry.get(subdivision_id, [])

    async def get_active_authorities(self, subdivision_id: Optional[str] = None) -> List[Authority]:
        return [
            a for a in self._authorities.values()
            if a.is_active and (subdivision_id is None or a.subdivision_id == subdivision_id)
        ]

    async def get_authority(self, authority_id: str) -> Optional[Authority]:
        return self._authorities.get(authority_id)

    async def get_thresholds(self, agency_id: Optional[str],
                             type: Literal["Boundary", "Proximity"]) -> List[AlertThresholdConfig]:
        found = [t for t in self._thresholds if t.type == type and t.agency_id == agency_id]
        return sorted(found, key=lambda t: t.distance_miles, reverse=True)

    # ---- PositionStorePort ----

    async def record_fix(self, fix: GPSFix) -> None:
        self._fixes[fix.authority_id] = fix

    async def get_latest_fix(self, authority_id: str) -> Optional[GPSFix]:
        return self._fixes.get(authority_id)
