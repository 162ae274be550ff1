"""
Alert cooldown cache for RailGuard.

This module implements an in-memory key -> last-sent timestamp cache
with TTL eviction, used to suppress repeated alerts of the same kind
for the same participants and threshold.
"""

import threading
import time
from typing import Callable, Dict, Optional
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.cooldown")


class CooldownCache:
    """경보 쿨다운 캐시 (키 → 마지막 발송 시각)"""

    def __init__(self, window_sec: float = 60.0,
                 clock: Callable[[], float] = time.time,
                 gc_every: int = 256):
        """
        초기화합니다.

        Args:
            window_sec: 쿨다운 시간 (초)
            clock: 현재 시각(초) 함수
            gc_every: 몇 번의 획득마다 만료 항목을 정리할지
        """
        self.window = window_sec
        self.clock = clock
        self.gc_every = gc_every
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ops = 0

    def try_acquire(self, key: str, now: Optional[float] = None) -> bool:
        """
        쿨다운이 지났으면 시각을 기록하고 True, 아니면 False를 반환합니다.

        확인과 기록은 하나의 잠금 안에서 수행됩니다.

        Args:
            key: 쿨다운 키
            now: 현재 시각 (초), None이면 clock() 사용

        Returns:
            발송 가능 여부
        """
        if now is None:
            now = self.clock()

        with self._lock:
            last = self._entries.get(key)
            if last is not None and now - last < self.window:
                return False
            self._entries[key] = now

            self._ops += 1
            if self._ops % self.gc_every == 0:
                self._purge_locked(now)
        return True

    def last_sent(self, key: str) -> Optional[float]:
        with self._lock:
            return self._entries.get(key)

    def purge(self, now: Optional[float] = None) -> int:
        """
        쿨다운이 지난 항목을 정리합니다.

        Returns:
            삭제된 항목 수
        """
        if now is None:
            now = self.clock()
        with self._lock:
            return self._purge_locked(now)

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, ts in self._entries.items() if now - ts >= self.window]
        for k in expired:
            del self._entries[k]
        metrics.cooldown_entries.set(len(self._entries))
        if expired:
            log.debug("만료된 쿨다운 항목 정리됨", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
