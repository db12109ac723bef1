"""
API route aggregator: register endpoints; no logic, only delegate to handlers.
"""

import logging
import sqlite3

from fastapi import APIRouter, HTTPException

from research_assistant.api.handlers import handle_chat, quota_status
from research_assistant.core import chat_db
from research_assistant.core.session_store import get_context, get_history, reset_session
from research_assistant.schemas.chat import ChatRequest, ChatResponse, QuotaResponse

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Research assistant backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post(
    "/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Ask the research assistant",
    description=(
        "Classify the message, run the matching generator and return sanitized HTML plus plain text. "
        "Errors come back as {error, message, html} notices: 404 no results, 409 missing context, "
        "422 paper reference out of range, 429 daily quota exhausted, 502/503 provider failures."
    ),
)
async def post_chat(body: ChatRequest) -> ChatResponse:
    logger.info("[api:post_chat] IN  question=%r session_id=%s", body.question, body.session_id)
    response = await handle_chat(body)
    logger.info("[api:post_chat] OUT intent=%s papers=%d", response.intent, len(response.papers))
    return response


# --- Sessions ---

@router.get("/sessions/{session_id}/context", tags=["sessions"], summary="Inspect cached papers and focus")
def get_session_context(session_id: str) -> dict:
    return {
        "session_id": session_id,
        "history_len": len(get_history(session_id)),
        **get_context(session_id).to_dict(),
    }


@router.delete("/sessions/{session_id}", tags=["sessions"], summary="Forget a session's history and cached papers")
def delete_session(session_id: str) -> dict:
    return {"session_id": session_id, "reset": reset_session(session_id)}


@router.get(
    "/chats/{session_id}",
    tags=["sessions"],
    summary="List persisted exchanges",
    description="Exchanges stored in the SQLite chat DB for this session, oldest first.",
)
def get_chats(session_id: str) -> dict:
    try:
        exchanges = chat_db.get_exchanges(session_id)
    except sqlite3.Error as e:
        logger.exception("Failed to read chat DB")
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"session_id": session_id, "exchanges": exchanges}


# --- Quota ---

@router.get("/quota", response_model=QuotaResponse, tags=["system"], summary="Rate limiter and daily quota status")
def get_quota() -> QuotaResponse:
    return quota_status()
