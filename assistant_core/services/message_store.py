"""
Message persistence collaborator.

The platform owns the messages table; the engine only appends assistant
replies to it through `save_message`.
"""

import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from psycopg import sql
from psycopg.types.json import Jsonb

from assistant_core.db.pool import DatabasePoolManager
from assistant_core.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MessageStore(Protocol):
    async def save_message(
        self,
        conversation_id: str,
        text: str,
        role: str,
        metadata: dict[str, Any] | None = None,
    ) -> str: ...


class InMemoryMessageStore:
    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    async def save_message(
        self,
        conversation_id: str,
        text: str,
        role: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        message_id = str(uuid.uuid4())
        with self._lock:
            self.messages.append(
                {
                    "id": message_id,
                    "conversation_id": conversation_id,
                    "text": text,
                    "role": role,
                    "metadata": dict(metadata or {}),
                    "created_at": datetime.now(UTC),
                }
            )
        return message_id

    def for_conversation(self, conversation_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [m for m in self.messages if m["conversation_id"] == conversation_id]


class PostgresMessageStore:
    """Appends replies with a single INSERT through the shared pool."""

    def __init__(self, pool: DatabasePoolManager, table: str = "messages"):
        self.pool = pool
        self.table = table

    async def save_message(
        self,
        conversation_id: str,
        text: str,
        role: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        message_id = str(uuid.uuid4())
        query = sql.SQL(
            "INSERT INTO {} (id, conversation_id, text, role, metadata, created_at) "
            "VALUES (%s, %s, %s, %s, %s, %s)"
        ).format(sql.Identifier(self.table))

        try:
            async with self.pool.connection() as conn:
                await conn.execute(
                    query,
                    (
                        message_id,
                        conversation_id,
                        text,
                        role,
                        Jsonb(metadata or {}),
                        datetime.now(UTC),
                    ),
                )
        except Exception as e:
            logger.error(
                "Failed to save assistant message",
                conversation_id=conversation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.debug("Assistant message saved", conversation_id=conversation_id, message_id=message_id)
        return message_id
