"""
Alert store port interface.

This module defines the protocol for the alert audit log.
"""

from typing import Protocol
from railguard.core.models import AlertEvent

class AlertStorePort(Protocol):
    """경보 저장소 포트 인터페이스"""
    
    async def save_alert(self, event: AlertEvent) -> None:
        """
        경보 이벤트를 기록합니다.
        
        Args:
            event: 경보 이벤트
        """
        ...
    
    async def record_overlap(self, authority_id: str, other_authority_id: str) -> None:
        """
        권한 중첩을 감사 기록으로 남깁니다.
        
        Args:
            authority_id: 새로 생성된 권한 ID
            other_authority_id: 겹치는 기존 권한 ID
        """
        ...
