"""
Position store port interface.

This module defines the protocol for the latest GPS fix per authority.
"""

from typing import Optional, Protocol
from railguard.core.models import GPSFix

class PositionStorePort(Protocol):
    """위치 저장소 포트 인터페이스"""
    
    async def record_fix(self, fix: GPSFix) -> None:
        """
        처리된 GPS 측위를 기록합니다 (계산된 마일포스트 포함).
        
        Args:
            fix: GPS 측위
        """
        ...
    
    async def get_latest_fix(self, authority_id: str) -> Optional[GPSFix]:
        """
        권한의 가장 최근 GPS 측위를 조회합니다.
        
        Args:
            authority_id: 권한 ID
            
        Returns:
            최근 측위 또는 None
        """
        ...
