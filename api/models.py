"""Pydantic request/response schemas for the chat API."""

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Requests ───────────────────────────────────────────────────────────────

class ChatRequest(_CamelModel):
    message: str = ""
    session_id: str | None = Field(default=None, alias="sessionId")


# ── Responses ──────────────────────────────────────────────────────────────

class SessionSummary(_CamelModel):
    session_id: str = Field(alias="sessionId")
    created_at: str = Field(alias="createdAt")
    last_active_at: str = Field(alias="lastActiveAt")
    message_count: int = Field(alias="messageCount")
    preview: str
    domain: str


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: list[SessionSummary]
    total: int


class SessionResponse(BaseModel):
    success: bool = True
    session: dict


class ChatStateResponse(_CamelModel):
    success: bool = True
    session_id: str = Field(alias="sessionId")
    filters: dict
    meta: dict
    previous_context: dict | None = Field(default=None, alias="previousContext")
    messages: list[dict]


class DeleteResponse(_CamelModel):
    success: bool = True
    session_id: str = Field(alias="sessionId")


class HealthResponse(_CamelModel):
    status: str
    sessions: int
    people_loaded: int = Field(alias="peopleLoaded")
    companies_loaded: int = Field(alias="companiesLoaded")
    model: str
