"""Schemas for the chat endpoints."""

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request body for POST /chat. History and cached papers are stored server-side by session_id."""

    question: str = Field(..., min_length=1, description="User message for the research assistant.")
    session_id: str = Field(..., min_length=1, description="Session ID; chat history and cached papers live on the server for this session.")


class PaperOut(BaseModel):
    id: str
    title: str
    pdf_url: str = Field("", description="Download URL for the paper, empty when unknown.")


class ChatResponse(BaseModel):
    """Response for POST /chat."""

    intent: str = Field(..., description="Intent the message was classified as.")
    text: str = Field(..., description="Plain-text answer (stored in history).")
    html: str = Field(..., description="Sanitized HTML answer.")
    papers: list[PaperOut] = Field(default_factory=list, description="Papers cited in the answer, in order of first mention.")


class ErrorNotice(BaseModel):
    """Body returned for user-visible errors."""

    error: str = Field(..., description="Error type, e.g. NoResultsFound.")
    message: str = Field(..., description="Polite message for the user.")
    html: str = Field(..., description="Sanitized HTML rendering of the message.")


class SchedulerStatus(BaseModel):
    name: str
    available_tokens: int
    capacity: int
    daily_used: int
    daily_limit: int
    in_flight: int
    queued: int


class QuotaResponse(BaseModel):
    schedulers: list[SchedulerStatus]
    shared_daily_quota: bool
