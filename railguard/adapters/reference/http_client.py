"""
Backend REST reference data client for RailGuard.

This module reads track geometry, active authorities, agency alert
thresholds and latest GPS fixes from the system-of-record backend API.
Geometry is immutable reference data and is cached per subdivision.
"""

import aiohttp
from typing import Any, Dict, List, Literal, Optional, Sequence
from pydantic import TypeAdapter, ValidationError
from railguard.common.retry import retry_with_backoff
from railguard.core.errors import ReferenceDataError
from railguard.core.geometry import sort_geometry
from railguard.core.models import AlertThresholdConfig, Authority, GeometryPoint, GPSFix
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.reference.http")

_thresholds_adapter = TypeAdapter(List[AlertThresholdConfig])


class BackendReferenceClient:
    """백엔드 REST API 기준 데이터 클라이언트"""

    def __init__(self,
                 base_url: str,
                 token: str = "",
                 timeout: int = 10,
                 max_retries: int = 3):
        """
        초기화합니다.

        Args:
            base_url: 백엔드 API 기본 URL
            token: Bearer 토큰
            timeout: 요청 타임아웃 (초)
            max_retries: 최대 재시도 횟수
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.session: Optional[aiohttp.ClientSession] = None
        self._geometry_cache: Dict[str, List[GeometryPoint]] = {}

        log.info("백엔드 기준 데이터 클라이언트 초기화됨", base_url=self.base_url)

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self.session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        if self.session:
            await self.session.close()
            self.session = None

    async def _get(self, endpoint: str, **params) -> Any:
        """
        GET 요청을 수행합니다.

        Raises:
            ReferenceDataError: 재시도 후에도 실패한 경우
        """
        if not self.session:
            raise RuntimeError("세션이 초기화되지 않았습니다. async with를 사용하세요.")

        url = f"{self.base_url}{endpoint}"
        query = {k: v for k, v in params.items() if v is not None}

        async def _request():
            async with self.session.get(url, params=query) as response:
                if response.status == 404:
                    return None
                response.raise_for_status()
                return await response.json()

        try:
            return await retry_with_backoff(
                _request,
                max_retries=self.max_retries,
                retry_on=(aiohttp.ClientError, TimeoutError)
            )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ReferenceDataError(f"GET {endpoint} 실패: {e}") from e

    @staticmethod
    def _unwrap(data: Any) -> Any:
        # 백엔드 응답은 {"success": true, "data": ...} 형태일 수 있음
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    async def get_geometry(self, subdivision_id: str) -> Sequence[GeometryPoint]:
        if subdivision_id in self._geometry_cache:
            return self._geometry_cache[subdivision_id]

        data = self._unwrap(await self._get(f"/api/tracks/subdivisions/{subdivision_id}/geometry")) or []
        try:
            points = sort_geometry([
                GeometryPoint(
                    milepost=row.get("milepost", row.get("MP")),
                    latitude=row.get("latitude", row.get("Latitude")),
                    longitude=row.get("longitude", row.get("Longitude"))
                )
                for row in data
            ])
        except ValidationError as e:
            raise ReferenceDataError(f"형상 데이터 형식 오류: {e}") from e

        if points:
            self._geometry_cache[subdivision_id] = points
        log.info("형상 조회됨", subdivision_id=subdivision_id, points=len(points))
        return points

    async def get_active_authorities(self, subdivision_id: Optional[str] = None) -> List[Authority]:
        data = self._unwrap(await self._get("/api/authorities/active", subdivisionId=subdivision_id)) or []
        authorities = []
        for row in data:
            try:
                authorities.append(Authority.model_validate(row))
            except ValidationError as e:
                log.warning("권한 데이터 형식 오류 건너뜀", error=str(e))
        return authorities

    async def get_authority(self, authority_id: str) -> Optional[Authority]:
        data = self._unwrap(await self._get(f"/api/authorities/{authority_id}"))
        if not data:
            return None
        try:
            return Authority.model_validate(data)
        except ValidationError as e:
            raise ReferenceDataError(f"권한 데이터 형식 오류: {e}") from e

    async def get_thresholds(self, agency_id: Optional[str],
                             type: Literal["Boundary", "Proximity"]) -> List[AlertThresholdConfig]:
        if agency_id is None:
            return []
        data = self._unwrap(await self._get(f"/api/alerts/config/{agency_id}", type=type)) or []
        try:
            configs = _thresholds_adapter.validate_python(data)
        except ValidationError as e:
            raise ReferenceDataError(f"경보 설정 형식 오류: {e}") from e
        return sorted((c for c in configs if c.type == type),
                      key=lambda c: c.distance_miles, reverse=True)

    async def get_latest_fix(self, authority_id: str) -> Optional[GPSFix]:
        data = self._unwrap(await self._get(f"/api/gps/authority/{authority_id}/latest"))
        if not data:
            return None
        try:
            return GPSFix.model_validate(data)
        except ValidationError as e:
            log.warning("GPS 측위 형식 오류", authority_id=authority_id, error=str(e))
            return None

    def invalidate_geometry(self, subdivision_id: Optional[str] = None) -> None:
        """형상 캐시를 비웁니다."""
        if subdivision_id is None:
            self._geometry_cache.clear()
        else:
            self._geometry_cache.pop(subdivision_id, None)
