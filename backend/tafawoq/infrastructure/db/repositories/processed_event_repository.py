"""
Processed Webhook Event Repository

DB-backed idempotency keys for payment lifecycle events (survives restarts).
"""

from sqlalchemy import DateTime, bindparam, text

from tafawoq.infrastructure.db.models.base import utc_now
from tafawoq.infrastructure.db.repositories.base_repository import BaseRepository


class ProcessedEventRepository(BaseRepository):
    """Tracks which processor event ids have been handled."""

    table_name = "processed_webhook_events"

    async def is_processed(self, event_id: str) -> bool:
        """Check if a webhook event has already been processed."""
        async with self._session("is_event_processed") as session:
            result = await session.execute(
                text("SELECT 1 FROM processed_webhook_events WHERE event_id = :eid"),
                {"eid": event_id},
            )
            return result.scalar_one_or_none() is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        """Record a processed webhook event; a repeat insert is a no-op."""
        async with self._session("mark_event_processed") as session:
            await session.execute(
                text(
                    "INSERT INTO processed_webhook_events (event_id, event_type, processed_at) "
                    "VALUES (:eid, :etype, :processed_at) ON CONFLICT (event_id) DO NOTHING"
                ).bindparams(bindparam("processed_at", type_=DateTime(timezone=True))),
                {"eid": event_id, "etype": event_type, "processed_at": utc_now()},
            )
