"""
Persist collected responses with upsert logic (idempotency)
"""

from typing import List, Dict, Any, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from models.response_record import ResponseRecord
from core.exceptions import UpsertError, PersistenceError
import logging

logger = logging.getLogger(__name__)


class ResponseSink:
    """
    Store one provider response per (work item, provider).

    Ensures:
    - No duplicate rows on repeated or overlapping attempts
    - A repeated attempt overwrites the stored response
    - Atomic, committed writes
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        return pg_insert if dialect == "postgresql" else sqlite_insert

    async def exists(self, work_item_id: int, provider_key: str) -> bool:
        """Check whether a response already exists for the pair"""
        try:
            result = await self.db.execute(
                select(func.count()).select_from(ResponseRecord).where(
                    ResponseRecord.work_item_id == work_item_id,
                    ResponseRecord.provider_key == provider_key
                )
            )
            return result.scalar() > 0
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to check for an existing response",
                context={
                    "operation": "SELECT",
                    "table_name": "response_records",
                    "work_item_id": work_item_id,
                    "provider_key": provider_key
                },
                original_exception=e
            )

    async def upsert(
        self,
        work_item_id: int,
        provider_key: str,
        response_text: str,
        citations: Optional[List[Dict[str, Any]]] = None,
        metrics: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Insert or overwrite the response for (work_item_id, provider_key).

        Raises:
            UpsertError: If the write fails (the session is rolled back)
        """
        now = datetime.utcnow()
        values = {
            "work_item_id": work_item_id,
            "provider_key": provider_key,
            "response_text": response_text,
            "citations": citations or [],
            "metrics": metrics or {},
            "attempt_count": 1,
            "collected_at": now,
            "updated_at": now,
        }

        insert = self._insert()
        stmt = insert(ResponseRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["work_item_id", "provider_key"],
            set_={
                "response_text": stmt.excluded.response_text,
                "citations": stmt.excluded.citations,
                "metrics": stmt.excluded.metrics,
                "updated_at": stmt.excluded.updated_at,
                "attempt_count": ResponseRecord.attempt_count + 1,
            }
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Failed to upsert response",
                context={
                    "work_item_id": work_item_id,
                    "provider_key": provider_key,
                    "table_name": "response_records"
                },
                original_exception=e
            )

        logger.debug(f"Stored {provider_key} response for work_item_id={work_item_id}")
