"""
Lightweight SQLite DB for persisting chat exchanges.

Creates data/chats.db (relative to project root). Table: chats (id, session_id,
user_message, bot_text, bot_html, papers_json, intent, created_at).
Writes are best-effort: no retry, no exactly-once guarantee.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from research_assistant.core.config import CHAT_DB_NAME

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent.parent
_DB_PATH = _ROOT / CHAT_DB_NAME
_TABLE = "chats"


def _get_conn() -> sqlite3.Connection:
    data_dir = _DB_PATH.parent
    data_dir.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(_DB_PATH))


def init_db() -> None:
    """Create the chats table if it does not exist."""
    conn = _get_conn()
    try:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                user_message TEXT NOT NULL,
                bot_text TEXT NOT NULL,
                bot_html TEXT NOT NULL,
                papers_json TEXT NOT NULL,
                intent TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()


def record_exchange(
    session_id: str,
    user_message: str,
    bot_message: dict[str, Any],
    timestamp: datetime | None = None,
) -> None:
    """Insert one user/bot exchange. bot_message holds intent, text, html, papers."""
    ts = (timestamp or datetime.now(timezone.utc)).isoformat()
    papers = bot_message.get("papers") or []
    init_db()
    conn = _get_conn()
    try:
        conn.execute(
            f"INSERT INTO {_TABLE} (session_id, user_message, bot_text, bot_html, papers_json, intent, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                session_id,
                user_message,
                bot_message.get("text") or "",
                bot_message.get("html") or "",
                json.dumps(papers),
                str(bot_message.get("intent") or ""),
                ts,
            ),
        )
        conn.commit()
        logger.info("[chat_db] recorded session_id=%s papers=%d", session_id[:16], len(papers))
    finally:
        conn.close()


def get_exchanges(session_id: str) -> list[dict[str, Any]]:
    """Return stored exchanges for a session, oldest first."""
    init_db()
    conn = _get_conn()
    try:
        cur = conn.execute(
            f"SELECT user_message, bot_text, bot_html, papers_json, intent, created_at"
            f" FROM {_TABLE} WHERE session_id = ? ORDER BY id ASC",
            (session_id,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()
    return [
        {
            "user_message": r[0],
            "bot_message": {"text": r[1], "html": r[2], "papers": json.loads(r[3]), "intent": r[4]},
            "timestamp": r[5],
        }
        for r in rows
    ]


def clear_all() -> None:
    """Delete all rows."""
    init_db()
    conn = _get_conn()
    try:
        conn.execute(f"DELETE FROM {_TABLE}")
        conn.commit()
        logger.info("[chat_db] cleared all chats")
    finally:
        conn.close()
