"""
Local Conversation Store — SQLite.

For local development. Stores conversations and their transcripts in a
local SQLite file. Every row carries the org id it belongs to.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from candor.errors.exceptions import ConcurrentModification, ConversationNotFound
from candor.interfaces.conversation_store import ConversationStore
from candor.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
)
from candor.models.message import ChatPlatform

# Conversations that can receive replies
ACTIVE_STATUSES = (
    ConversationStatus.INITIATED.value,
    ConversationStatus.IN_PROGRESS.value,
    ConversationStatus.CLOSING.value,
)

CONVERSATION_COLUMNS = (
    "conversation_id, org_id, interaction_type, platform, channel_id, status, "
    "message_count, reviewer_id, subject_id, subject_name, thread_id, theme_index, "
    "scheduled_at, initiated_at, closed_at"
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation store for local development."""

    def __init__(self, db_path: str = "data/candor.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    org_id TEXT NOT NULL,
                    interaction_type TEXT NOT NULL,
                    platform TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message_count INTEGER NOT NULL DEFAULT 0,
                    reviewer_id TEXT NOT NULL DEFAULT '',
                    subject_id TEXT NOT NULL DEFAULT '',
                    subject_name TEXT NOT NULL DEFAULT '',
                    thread_id TEXT,
                    theme_index INTEGER NOT NULL DEFAULT 0,
                    scheduled_at TEXT NOT NULL,
                    initiated_at TEXT,
                    closed_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_conversations_channel
                ON conversations (platform, channel_id, status)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversation_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    org_id TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    platform_message_id TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (conversation_id, platform_message_id)
                )
            """)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        c = conversation
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                f"INSERT INTO conversations ({CONVERSATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    c.conversation_id, c.org_id, c.interaction_type, c.platform.value,
                    c.channel_id, c.status.value, c.message_count, c.reviewer_id,
                    c.subject_id, c.subject_name, c.thread_id, c.theme_index,
                    _iso(c.scheduled_at), _iso(c.initiated_at), _iso(c.closed_at),
                ),
            )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    async def find_active_conversation(
        self,
        platform: ChatPlatform,
        channel_id: str,
    ) -> Optional[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {CONVERSATION_COLUMNS} FROM conversations "
                "WHERE platform = ? AND channel_id = ? AND status IN (?, ?, ?) "
                "ORDER BY COALESCE(initiated_at, scheduled_at) DESC LIMIT 1",
                (platform.value, channel_id, *ACTIVE_STATUSES),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    async def list_conversations(
        self,
        org_id: str,
        status: Optional[ConversationStatus] = None,
    ) -> list[Conversation]:
        """All conversations for one org, newest first."""
        query = f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE org_id = ?"
        params: list = [org_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY scheduled_at DESC"

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_conversation(r) for r in rows]

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        platform_message_id: Optional[str] = None,
    ) -> None:
        message = ConversationMessage(conversation_id, role, content, platform_message_id)
        with sqlite3.connect(self.db_path) as conn:
            self._insert_messages(conn, conversation_id, [message])

    async def has_message(self, conversation_id: str, platform_message_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM conversation_messages "
                "WHERE conversation_id = ? AND platform_message_id = ?",
                (conversation_id, platform_message_id),
            ).fetchone()
        return row is not None

    async def update_status(
        self,
        conversation_id: str,
        status: ConversationStatus,
        *,
        message_count: Optional[int] = None,
        theme_index: Optional[int] = None,
        initiated_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        expected_count: Optional[int] = None,
    ) -> None:
        with sqlite3.connect(self.db_path) as conn:
            self._update_status(
                conn, conversation_id, status,
                message_count=message_count, theme_index=theme_index,
                initiated_at=initiated_at, closed_at=closed_at,
                expected_count=expected_count,
            )

    async def commit_turn(
        self,
        conversation_id: str,
        messages: list[ConversationMessage],
        status: ConversationStatus,
        *,
        message_count: Optional[int] = None,
        theme_index: Optional[int] = None,
        initiated_at: Optional[datetime] = None,
        closed_at: Optional[datetime] = None,
        expected_count: Optional[int] = None,
    ) -> None:
        # One connection context is one transaction: any raise rolls back both writes
        with sqlite3.connect(self.db_path) as conn:
            self._update_status(
                conn, conversation_id, status,
                message_count=message_count, theme_index=theme_index,
                initiated_at=initiated_at, closed_at=closed_at,
                expected_count=expected_count,
            )
            self._insert_messages(conn, conversation_id, messages)

    def _update_status(
        self,
        conn: sqlite3.Connection,
        conversation_id: str,
        status: ConversationStatus,
        *,
        message_count: Optional[int],
        theme_index: Optional[int],
        initiated_at: Optional[datetime],
        closed_at: Optional[datetime],
        expected_count: Optional[int],
    ) -> None:
        assignments = ["status = ?"]
        params: list = [status.value]
        for column, value in (
            ("message_count", message_count),
            ("theme_index", theme_index),
            ("initiated_at", _iso(initiated_at)),
            ("closed_at", _iso(closed_at)),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)

        query = f"UPDATE conversations SET {', '.join(assignments)} WHERE conversation_id = ?"
        params.append(conversation_id)
        if expected_count is not None:
            query += " AND message_count = ?"
            params.append(expected_count)

        if conn.execute(query, params).rowcount:
            return
        row = conn.execute(
            "SELECT message_count FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        ).fetchone()
        if not row:
            raise ConversationNotFound(f"Conversation '{conversation_id}' not found")
        raise ConcurrentModification(
            f"Conversation {conversation_id}: expected message_count "
            f"{expected_count}, found {row[0]}"
        )

    def _insert_messages(
        self,
        conn: sqlite3.Connection,
        conversation_id: str,
        messages: list[ConversationMessage],
    ) -> None:
        row = conn.execute(
            "SELECT org_id FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        ).fetchone()
        if not row:
            raise ConversationNotFound(f"Conversation '{conversation_id}' not found")

        now = datetime.now(timezone.utc).isoformat()
        conn.executemany(
            """INSERT INTO conversation_messages
                   (org_id, conversation_id, role, content, platform_message_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(conversation_id, platform_message_id) DO NOTHING""",
            [
                (row[0], conversation_id, m.role, m.content, m.platform_message_id or None, now)
                for m in messages
            ],
        )

    async def get_transcript(self, conversation_id: str) -> list[ConversationMessage]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT role, content, platform_message_id, created_at "
                "FROM conversation_messages WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            ).fetchall()

        return [
            ConversationMessage(
                conversation_id=conversation_id,
                role=role,
                content=content,
                platform_message_id=platform_message_id,
                created_at=_parse(created_at),
            )
            for role, content, platform_message_id, created_at in rows
        ]

    def _row_to_conversation(self, row: tuple) -> Conversation:
        (
            conversation_id, org_id, interaction_type, platform, channel_id, status,
            message_count, reviewer_id, subject_id, subject_name, thread_id,
            theme_index, scheduled_at, initiated_at, closed_at,
        ) = row
        return Conversation(
            conversation_id=conversation_id,
            org_id=org_id,
            interaction_type=interaction_type,
            platform=ChatPlatform(platform),
            channel_id=channel_id,
            status=ConversationStatus(status),
            message_count=message_count,
            reviewer_id=reviewer_id,
            subject_id=subject_id,
            subject_name=subject_name,
            thread_id=thread_id,
            theme_index=theme_index,
            scheduled_at=_parse(scheduled_at),
            initiated_at=_parse(initiated_at),
            closed_at=_parse(closed_at),
        )
