"""
Notification port interface.

This module defines the protocol for real-time alert delivery to
per-user and per-authority channels.
"""

from typing import Protocol
from railguard.core.models import AlertEvent

class NotificationPort(Protocol):
    """경보 알림 포트 인터페이스"""
    
    async def notify_user(self, user_id: str, event: AlertEvent) -> None:
        """
        사용자 채널로 경보를 발송합니다.
        
        Args:
            user_id: 수신자 ID
            event: 경보 이벤트
        """
        ...
    
    async def notify_authority(self, authority_id: str, event: AlertEvent) -> None:
        """
        권한 채널로 경보를 발송합니다.
        
        Args:
            authority_id: 권한 ID
            event: 경보 이벤트
        """
        ...
