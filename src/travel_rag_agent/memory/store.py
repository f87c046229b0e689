from __future__ import annotations

import sqlite3
from uuid import uuid4

from loguru import logger

from travel_rag_agent.errors import DuplicateSession, UnknownSession
from travel_rag_agent.memory.models import MESSAGE_ROLES, Message, Session, SessionWithMessages
from travel_rag_agent.memory.utils import utc_now
from travel_rag_agent.storage import Database


class MemoryStore:
    """Conversation sessions and their append-only message history."""

    def __init__(self, db: Database):
        self._db = db

    def create_session(self, session_id: str, title: str | None = None) -> Session:
        now = utc_now()
        try:
            with self._db.transaction():
                self._db.execute(
                    """
                    INSERT INTO chat_sessions (session_id, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (session_id, title, now, now),
                )
        except sqlite3.IntegrityError as ex:
            raise DuplicateSession(session_id) from ex
        logger.info(f"Chat session created: {session_id}")
        return Session(session_id=session_id, title=title, created_at=now, updated_at=now)

    def get_session(self, session_id: str) -> Session | None:
        row = self._db.execute(
            "SELECT session_id, title, created_at, updated_at FROM chat_sessions WHERE session_id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return _row_to_session(row)

    def list_sessions(self, *, limit: int = 50) -> list[Session]:
        rows = self._db.execute(
            """
            SELECT session_id, title, created_at, updated_at
            FROM chat_sessions
            ORDER BY updated_at DESC, id DESC
            LIMIT ?
            """,
            (max(1, limit),),
        ).fetchall()
        return [_row_to_session(row) for row in rows]

    def update_session_title(self, session_id: str, title: str) -> None:
        with self._db.transaction():
            cursor = self._db.execute(
                "UPDATE chat_sessions SET title = ?, updated_at = ? WHERE session_id = ?",
                (title.strip(), utc_now(), session_id),
            )
            if cursor.rowcount == 0:
                raise UnknownSession(session_id)

    def append_message(self, session_id: str, role: str, content: str) -> Message:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid chat role: {role!r}")

        now = utc_now()
        message_id = str(uuid4())
        with self._db.transaction():
            if self._db.execute(
                "SELECT 1 FROM chat_sessions WHERE session_id = ? LIMIT 1",
                (session_id,),
            ).fetchone() is None:
                raise UnknownSession(session_id)

            row = self._db.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM chat_messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            next_seq = int(row["max_seq"]) + 1
            self._db.execute(
                """
                INSERT INTO chat_messages (id, session_id, seq, role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message_id, session_id, next_seq, role, content, now),
            )
            self._db.execute(
                "UPDATE chat_sessions SET updated_at = ? WHERE session_id = ?",
                (now, session_id),
            )

        logger.debug(f"Message appended: session={session_id}, seq={next_seq}, role={role}")
        return Message(
            id=message_id,
            session_id=session_id,
            seq=next_seq,
            role=role,
            content=content,
            created_at=now,
        )

    def recent_messages(self, session_id: str, limit: int = 10) -> list[Message]:
        """Last ``limit`` messages of a session, oldest first.

        An unknown session simply has no history.
        """
        rows = self._db.execute(
            """
            SELECT id, session_id, seq, role, content, created_at
            FROM chat_messages
            WHERE session_id = ?
            ORDER BY seq DESC
            LIMIT ?
            """,
            (session_id, max(0, limit)),
        ).fetchall()
        return [_row_to_message(row) for row in reversed(rows)]

    def get_session_with_messages(self, session_id: str) -> SessionWithMessages | None:
        session = self.get_session(session_id)
        if session is None:
            return None
        rows = self._db.execute(
            """
            SELECT id, session_id, seq, role, content, created_at
            FROM chat_messages
            WHERE session_id = ?
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return SessionWithMessages(session=session, messages=[_row_to_message(row) for row in rows])


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        session_id=str(row["session_id"]),
        title=row["title"],
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        seq=int(row["seq"]),
        role=str(row["role"]),
        content=str(row["content"]),
        created_at=str(row["created_at"]),
    )
