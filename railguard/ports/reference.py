"""
Reference data port interface.

This module defines the read-only protocol for track geometry,
authorities and agency alert thresholds supplied by the
persistence layer.
"""

from typing import List, Literal, Optional, Protocol, Sequence
from railguard.core.models import Authority, GeometryPoint, AlertThresholdConfig

class ReferenceDataPort(Protocol):
    """기준 데이터 포트 인터페이스"""
    
    async def get_geometry(self, subdivision_id: str) -> Sequence[GeometryPoint]:
        """
        서브디비전의 선로 형상을 마일포스트 순으로 조회합니다.
        
        Args:
            subdivision_id: 서브디비전 ID
            
        Returns:
            형상 기준점 목록 (없으면 빈 목록)
        """
        ...
    
    async def get_active_authorities(self, subdivision_id: Optional[str] = None) -> List[Authority]:
        """
        활성 권한을 조회합니다.
        
        Args:
            subdivision_id: 서브디비전 필터, None이면 전체
        """
        ...
    
    async def get_authority(self, authority_id: str) -> Optional[Authority]:
        """권한을 ID로 조회합니다."""
        ...
    
    async def get_thresholds(self, agency_id: Optional[str],
                             type: Literal["Boundary", "Proximity"]) -> List[AlertThresholdConfig]:
        """
        기관의 경보 임계값 설정을 조회합니다.
        
        Args:
            agency_id: 기관 ID
            type: 경보 종류
        """
        ...
