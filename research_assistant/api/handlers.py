"""
API handlers: run the assistant for a session, map results/errors to HTTP.

Responsibility: Bridge HTTP types and the agent. Marshalling, exception-to-HTTP mapping,
and forwarding finished exchanges to the chat DB. Lives in the API layer so the agent
stays free of FastAPI/HTTP types.
"""

import asyncio
import logging
import sqlite3
from dataclasses import asdict
from html import escape
from typing import NoReturn

from fastapi import HTTPException

from research_assistant.agent.graph import ResearchAssistant
from research_assistant.core import chat_db
from research_assistant.core.errors import (
    AssistantError,
    ProviderError,
    ServiceUnavailableError,
    TransientProviderError,
)
from research_assistant.core.session_store import append_message, get_session
from research_assistant.schemas.chat import ChatRequest, ChatResponse, ErrorNotice, PaperOut, QuotaResponse, SchedulerStatus
from research_assistant.services.sanitizer import ERROR_POLICY, sanitize_with

logger = logging.getLogger(__name__)

_assistant: ResearchAssistant | None = None


def get_assistant() -> ResearchAssistant:
    """Process-wide assistant (one pair of schedulers, one daily quota)."""
    global _assistant
    if _assistant is None:
        _assistant = ResearchAssistant()
    return _assistant


def error_notice(error: str, message: str) -> ErrorNotice:
    html = sanitize_with(f"<p>{escape(message)}</p>", ERROR_POLICY)
    return ErrorNotice(error=error, message=message, html=html)


def _raise_notice(status_code: int, exc: Exception, message: str) -> NoReturn:
    notice = error_notice(type(exc).__name__, message)
    raise HTTPException(status_code=status_code, detail=notice.model_dump()) from exc


async def handle_chat(body: ChatRequest) -> ChatResponse:
    """
    Run one message through the assistant. Domain errors become error notices with
    no change to the session; on success the exchange is appended to history and
    forwarded to the chat DB.
    """
    question = body.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="question is required")
    session = get_session(body.session_id)
    history = list(session.history)
    try:
        result = await get_assistant().run(question, history=history, context=session.context)
    except AssistantError as e:
        logger.info("[api:handle_chat] %s: %s", type(e).__name__, e.message)
        _raise_notice(e.status_code, e, e.message)
    except (TransientProviderError, ServiceUnavailableError, asyncio.TimeoutError) as e:
        logger.warning("[api:handle_chat] provider unavailable: %s", e)
        _raise_notice(503, e, "The research assistant is busy right now. Please try again in a moment.")
    except ProviderError as e:
        logger.warning("[api:handle_chat] provider error: %s", e)
        _raise_notice(502, e, "The research service returned an error. Please try again.")

    append_message(body.session_id, "user", question)
    append_message(body.session_id, "assistant", result.text)
    response = ChatResponse(
        intent=result.intent.value,
        text=result.text,
        html=result.html,
        papers=[PaperOut(id=p.id, title=p.title, pdf_url=p.download_url) for p in result.cited_papers],
    )
    try:
        chat_db.record_exchange(body.session_id, question, response.model_dump())
    except sqlite3.Error as e:
        logger.warning("[api:handle_chat] failed to persist exchange: %s", e)
    return response


def quota_status() -> QuotaResponse:
    assistant = get_assistant()
    states = [assistant.classify_scheduler.state(), assistant.generate_scheduler.state()]
    return QuotaResponse(
        schedulers=[SchedulerStatus(**asdict(s)) for s in states],
        shared_daily_quota=assistant.classify_scheduler.quota is assistant.generate_scheduler.quota,
    )
