"""
In-memory chat session store. Keyed by session_id; history is not sent from frontend.

Each session owns a ConversationContext. The store lock only guards the session map:
messages for the same session must be handled serially by the caller, since the
generators read and then write the context without holding a lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from research_assistant.core.context import ConversationContext

logger = logging.getLogger(__name__)


@dataclass
class Session:
    # list of {"role": "user"|"assistant", "content": str}
    history: list[dict[str, Any]] = field(default_factory=list)
    context: ConversationContext = field(default_factory=ConversationContext)


_sessions: dict[str, Session] = {}
_lock = threading.Lock()


def get_session(session_id: str) -> Session:
    """Return the session, creating it on first use."""
    with _lock:
        session = _sessions.get(session_id)
        if session is None:
            session = Session()
            _sessions[session_id] = session
            logger.info("[session_store:get_session] created session_id=%s", session_id[:16])
    return session


def get_history(session_id: str) -> list[dict[str, Any]]:
    """Return chat history for the session (copy so caller cannot mutate store)."""
    if not session_id or not isinstance(session_id, str):
        logger.info("[session_store:get_history] IN  session_id=%r -> empty", session_id)
        return []
    with _lock:
        session = _sessions.get(session_id)
        out = list(session.history) if session else []
    logger.info("[session_store:get_history] IN  session_id=%s OUT messages=%d", session_id[:16], len(out))
    return out


def get_context(session_id: str) -> ConversationContext:
    return get_session(session_id).context


def append_message(session_id: str, role: str, content: str) -> None:
    """Append one message to the session's history."""
    if not session_id or not isinstance(session_id, str):
        logger.info("[session_store:append_message] skip invalid session_id=%r", session_id)
        return
    session = get_session(session_id)
    with _lock:
        session.history.append({"role": role, "content": content or ""})
    logger.info("[session_store:append_message] session_id=%s role=%s content_len=%d", session_id[:16], role, len(content or ""))


def reset_session(session_id: str) -> bool:
    """Drop history and cached papers. Returns True if the session existed."""
    with _lock:
        existed = _sessions.pop(session_id, None) is not None
    logger.info("[session_store:reset_session] session_id=%s existed=%s", session_id[:16], existed)
    return existed


def clear_all() -> None:
    with _lock:
        _sessions.clear()
