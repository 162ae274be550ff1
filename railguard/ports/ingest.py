"""
GPS ingestion port interface.

This module defines the protocol for GPS fix ingestion.
"""

from typing import AsyncIterator, Protocol

class GpsIngestPort(Protocol):
    """GPS 수집 포트 인터페이스"""
    
    async def recv(self) -> AsyncIterator[dict]:
        """
        원시 GPS 페이로드를 비동기적으로 수신합니다.
        
        Yields:
            원시 딕셔너리 데이터
        """
        ...
