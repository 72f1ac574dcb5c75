"""
SQLite-backed conversation history for chat_perplexity.

Schema:
    chats(id TEXT PRIMARY KEY, created_at)
    messages(id INTEGER PRIMARY KEY AUTOINCREMENT, chat_id, role, content, created_at)

History is returned in insertion order (row id), so messages written in the
same second still come back in the order they were saved.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """One turn of a chat."""
    role: str  # "user" | "assistant"
    content: str


class ConversationStore:
    """Persistent chat transcript keyed by chat_id."""

    def __init__(self, db_path: Path = Path("data/chat_history.db")):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self):
        """Create the parent directory and tables if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (chat_id) REFERENCES chats(id)
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id)")
        conn.commit()
        logger.info(f"[ConversationStore] Database ready at {self.db_path}")

    def save_message(self, chat_id: str, message: ChatMessage):
        conn = self._get_connection()
        conn.execute("INSERT OR IGNORE INTO chats (id) VALUES (?)", (chat_id,))
        conn.execute(
            "INSERT INTO messages (chat_id, role, content) VALUES (?, ?, ?)",
            (chat_id, message.role, message.content),
        )
        conn.commit()

    def get_history(self, chat_id: str) -> List[ChatMessage]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT role, content FROM messages WHERE chat_id = ? ORDER BY id ASC",
            (chat_id,),
        ).fetchall()
        return [ChatMessage(role=row["role"], content=row["content"]) for row in rows]

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("[ConversationStore] Database closed")
