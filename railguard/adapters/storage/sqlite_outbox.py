"""
SQLite-based notification outbox for RailGuard.

Alert notifications are written here first and published to the local
MQTT broker by the notifier worker, so a broker outage does not lose
alerts that were already decided.
"""

import aiosqlite
import time
from dataclasses import dataclass
from typing import List, Optional
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.outbox")

SCHEMA = """
CREATE TABLE IF NOT EXISTS notification_outbox (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    topic TEXT NOT NULL,
    payload BLOB NOT NULL,
    qos INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);
CREATE INDEX IF NOT EXISTS idx_notification_outbox_created ON notification_outbox(created_at);
"""


@dataclass
class OutboxItem:
    """Outbox 항목"""
    id: int
    topic: str
    payload: bytes
    qos: int
    attempts: int


class SQLiteOutbox:
    """SQLite 기반 알림 Outbox"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
        """
        self.path = path
        log.info("SQLiteOutbox 초기화", path=path)

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(SCHEMA)
            await db.commit()
        await self._refresh_gauge()

    async def enqueue(self, topic: str, payload: bytes, qos: int = 1) -> int:
        """
        알림을 Outbox에 추가합니다.

        Returns:
            생성된 항목의 ID
        """
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(
                "INSERT INTO notification_outbox (topic, payload, qos, created_at) VALUES (?, ?, ?, ?)",
                (topic, payload, qos, time.time())
            )
            await db.commit()
            oid = cursor.lastrowid
        metrics.outbox_size.inc()
        return oid

    async def peek_batch(self, limit: int = 50) -> List[OutboxItem]:
        """오래된 순으로 최대 limit개 항목을 조회합니다 (삭제하지 않음)."""
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(
                "SELECT id, topic, payload, qos, attempts FROM notification_outbox "
                "ORDER BY created_at ASC, id ASC LIMIT ?",
                (limit,)
            )
            rows = await cursor.fetchall()
        return [OutboxItem(id=r[0], topic=r[1], payload=r[2], qos=r[3], attempts=r[4]) for r in rows]

    async def peek_oldest(self) -> Optional[OutboxItem]:
        items = await self.peek_batch(1)
        return items[0] if items else None

    async def mark_attempt(self, oid: int, error: str = "") -> None:
        """발송 시도 횟수를 증가시키고 마지막 오류를 남깁니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                "UPDATE notification_outbox SET attempts = attempts + 1, last_error = ? WHERE id = ?",
                (error[:500], oid)
            )
            await db.commit()

    async def delete(self, oid: int) -> None:
        """발송 완료(또는 포기)된 항목을 삭제합니다."""
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute("DELETE FROM notification_outbox WHERE id = ?", (oid,))
            await db.commit()
            deleted = cursor.rowcount
        if deleted:
            metrics.outbox_size.dec(deleted)

    async def get_count(self) -> int:
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM notification_outbox")
            result = await cursor.fetchone()
            return result[0] if result else 0

    async def _refresh_gauge(self) -> None:
        metrics.outbox_size.set(await self.get_count())
