"""Repository for promotion records."""

from __future__ import annotations

import asyncio
import json

import structlog

from training.core.promotion_service import PromotionRecord
from training.db.database import get_db

logger = structlog.get_logger(__name__)


def upsert_promotion(record: PromotionRecord) -> None:
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO promotions (
                promotion_id, student_id, curriculum, from_level, to_level,
                status, confidence, created_at, data
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(promotion_id) DO UPDATE SET
                status = excluded.status,
                data = excluded.data
            """,
            (
                record.promotion_id,
                record.student_id,
                record.curriculum,
                record.from_level,
                record.to_level,
                record.status.value,
                record.confidence,
                record.created_at.isoformat(),
                json.dumps(record.to_dict(), ensure_ascii=False),
            ),
        )
    logger.debug("promotion_saved", promotion_id=record.promotion_id, status=record.status.value)


def get_promotion(promotion_id: str) -> PromotionRecord | None:
    with get_db() as conn:
        row = conn.execute(
            "SELECT data FROM promotions WHERE promotion_id = ?", (promotion_id,)
        ).fetchone()
    if row is None:
        return None
    return PromotionRecord.from_dict(json.loads(row["data"]))


def list_promotions(
    status: str | None = None,
    student_id: str | None = None,
    curriculum: str | None = None,
) -> list[PromotionRecord]:
    """Promotion records matching every given filter, newest first."""
    clauses = []
    params: list[str] = []
    for column, value in (("status", status), ("student_id", student_id), ("curriculum", curriculum)):
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT data FROM promotions {where} ORDER BY created_at DESC", params
        ).fetchall()
    return [PromotionRecord.from_dict(json.loads(row["data"])) for row in rows]


class SqlitePromotionStore:
    """Async PromotionStore over the promotions table."""

    async def save_promotion(self, record: PromotionRecord) -> None:
        await asyncio.to_thread(upsert_promotion, record)

    async def load_promotion(self, promotion_id: str) -> PromotionRecord | None:
        return await asyncio.to_thread(get_promotion, promotion_id)

    async def list_promotions(
        self,
        status: str | None = None,
        student_id: str | None = None,
        curriculum: str | None = None,
    ) -> list[PromotionRecord]:
        return await asyncio.to_thread(list_promotions, status, student_id, curriculum)
