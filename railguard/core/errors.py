"""
Error types for RailGuard.
"""


class RailGuardError(Exception):
    """RailGuard 기본 예외"""


class InvalidFixError(RailGuardError, ValueError):
    """위도/경도 누락 등 처리할 수 없는 GPS 측위"""


class ReferenceDataError(RailGuardError):
    """기준 데이터(형상, 권한, 임계값) 조회 실패"""
