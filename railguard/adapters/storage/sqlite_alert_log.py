"""
SQLite-based alert log for RailGuard.

This module keeps the audit trail of every persisted alert and of
every authority overlap detected at authority creation time.
"""

import aiosqlite
import time
from typing import Any, Dict, List, Optional
from railguard.core.models import AlertEvent
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.alert_log")

SCHEMA = """
CREATE TABLE IF NOT EXISTS alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient_id TEXT NOT NULL,
    authority_id TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    alert_level TEXT NOT NULL,
    triggered_distance REAL NOT NULL,
    threshold REAL,
    boundary TEXT,
    peer_id TEXT,
    peer_authority_id TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_alerts_authority ON alerts(authority_id, created_at);

CREATE TABLE IF NOT EXISTS authority_overlaps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    authority1_id TEXT NOT NULL,
    authority2_id TEXT NOT NULL,
    detected_at REAL NOT NULL,
    is_resolved INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_overlaps_authority ON authority_overlaps(authority1_id);
"""


class SQLiteAlertLog:
    """SQLite 기반 경보 기록 저장소"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
        """
        self.path = path
        log.info("SQLiteAlertLog 초기화", path=path)

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(SCHEMA)
            await db.commit()

    async def save_alert(self, event: AlertEvent) -> None:
        """경보 이벤트를 기록합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                "INSERT INTO alerts (recipient_id, authority_id, alert_type, alert_level, "
                "triggered_distance, threshold, boundary, peer_id, peer_authority_id, message, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (event.recipient_id, event.authority_id, event.type, event.level,
                 event.triggered_distance, event.threshold, event.boundary,
                 event.peer_id, event.peer_authority_id, event.message,
                 event.timestamp.isoformat())
            )
            await db.commit()

    async def record_overlap(self, authority_id: str, other_authority_id: str) -> None:
        """권한 중첩을 감사 기록으로 남깁니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                "INSERT INTO authority_overlaps (authority1_id, authority2_id, detected_at) VALUES (?, ?, ?)",
                (authority_id, other_authority_id, time.time())
            )
            await db.commit()

    async def list_alerts(self, authority_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """
        최근 경보 기록을 조회합니다.

        Args:
            authority_id: 특정 권한으로 제한 (None이면 전체)
            limit: 최대 행 수

        Returns:
            최신 순 경보 행 목록
        """
        query = "SELECT * FROM alerts"
        params: tuple = ()
        if authority_id is not None:
            query += " WHERE authority_id = ?"
            params = (authority_id,)
        query += " ORDER BY id DESC LIMIT ?"

        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params + (limit,))
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def list_overlaps(self, unresolved_only: bool = True) -> List[Dict[str, Any]]:
        query = "SELECT * FROM authority_overlaps"
        if unresolved_only:
            query += " WHERE is_resolved = 0"
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query + " ORDER BY id ASC")
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def get_count(self) -> int:
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM alerts")
            result = await cursor.fetchone()
            return result[0] if result else 0
