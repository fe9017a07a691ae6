"""Thread repository: conversations, their messages, and token usage."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fleet_copilot.core.types import HIDDEN_ROLES
from fleet_copilot.log import get_logger
from fleet_copilot.storage.database import Database
from fleet_copilot.storage.models import MessageRecord, ThreadRecord, TokenUsageRecord

logger = get_logger(__name__)

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f','now')"


class ThreadRepository:
    """Append-only message store keyed by thread, plus per-thread token counters."""

    def __init__(self, db: Database):
        self._db = db

    async def create_thread(self, title: Optional[str] = None, thread_id: Optional[str] = None) -> ThreadRecord:
        thread_id = thread_id or str(uuid.uuid4())
        await self._db.conn.execute(
            "INSERT INTO threads (thread_id, title) VALUES (?, ?)",
            (thread_id, title),
        )
        await self._db.conn.commit()
        logger.info("thread_created", thread_id=thread_id)
        thread = await self.get_thread(thread_id)
        if thread is None:
            raise RuntimeError(f"Thread {thread_id} was not persisted")
        return thread

    async def get_thread(self, thread_id: str) -> Optional[ThreadRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM threads WHERE thread_id = ?",
            (thread_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_thread(row) if row else None

    async def list_threads(self, limit: int = 100) -> list[ThreadRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM threads ORDER BY updated_at DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_thread(row) for row in rows]

    async def touch_thread(self, thread_id: str) -> None:
        """Refresh the thread's last-activity timestamp."""
        await self._db.conn.execute(
            f"UPDATE threads SET updated_at = {_NOW_SQL} WHERE thread_id = ?",
            (thread_id,),
        )
        await self._db.conn.commit()

    async def delete_thread(self, thread_id: str) -> int:
        """Delete a thread and all of its messages. Returns number of deleted messages."""
        cursor = await self._db.conn.execute(
            "DELETE FROM messages WHERE thread_id = ?",
            (thread_id,),
        )
        await self._db.conn.execute(
            "DELETE FROM threads WHERE thread_id = ?",
            (thread_id,),
        )
        await self._db.conn.commit()
        logger.info("thread_deleted", thread_id=thread_id, messages=cursor.rowcount)
        return cursor.rowcount

    async def append_message(self, record: MessageRecord) -> int:
        """Save a message and return its ID."""
        cursor = await self._db.conn.execute(
            "INSERT INTO messages (thread_id, role, content) VALUES (?, ?, ?)",
            (record.thread_id, record.role, record.content),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_history(self, thread_id: str, limit: int = 100) -> list[MessageRecord]:
        """Most recent ``limit`` messages of a thread, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM (
                   SELECT * FROM messages WHERE thread_id = ?
                   ORDER BY id DESC LIMIT ?
               ) ORDER BY id ASC""",
            (thread_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def get_display_messages(self, thread_id: str) -> list[MessageRecord]:
        """Messages a user should see: no tool plumbing, no blank content."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM messages WHERE thread_id = ? ORDER BY id ASC",
            (thread_id,),
        )
        rows = await cursor.fetchall()
        return [
            self._row_to_message(row)
            for row in rows
            if row["role"] not in HIDDEN_ROLES and row["content"].strip()
        ]

    async def record_usage(self, usage: TokenUsageRecord) -> None:
        """Append a usage event and fold it into the thread's running totals."""
        await self._db.conn.execute(
            """INSERT INTO token_usage
               (thread_id, model, input_tokens, output_tokens, total_tokens, request_type)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                usage.thread_id,
                usage.model,
                usage.input_tokens,
                usage.output_tokens,
                usage.total_tokens,
                usage.request_type,
            ),
        )
        if usage.thread_id:
            await self._db.conn.execute(
                """UPDATE threads SET
                       total_input_tokens = total_input_tokens + ?,
                       total_output_tokens = total_output_tokens + ?,
                       total_tokens = total_tokens + ?
                   WHERE thread_id = ?""",
                (usage.input_tokens, usage.output_tokens, usage.total_tokens, usage.thread_id),
            )
        await self._db.conn.commit()

    async def usage_for_thread(self, thread_id: str) -> list[TokenUsageRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM token_usage WHERE thread_id = ? ORDER BY id ASC",
            (thread_id,),
        )
        rows = await cursor.fetchall()
        return [
            TokenUsageRecord(
                thread_id=row["thread_id"],
                model=row["model"] or "",
                input_tokens=row["input_tokens"],
                output_tokens=row["output_tokens"],
                request_type=row["request_type"],
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_thread(row) -> ThreadRecord:
        return ThreadRecord(
            thread_id=row["thread_id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            total_input_tokens=row["total_input_tokens"],
            total_output_tokens=row["total_output_tokens"],
            total_tokens=row["total_tokens"],
        )

    @staticmethod
    def _row_to_message(row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            thread_id=row["thread_id"],
            role=row["role"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
