"""API routes wrapping the chat service."""

import logging
from contextlib import aclosing

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from search_agent import events
from search_agent.errors import SessionNotFoundError
from search_agent.service import ChatService

from .models import (
    ChatRequest,
    ChatStateResponse,
    DeleteResponse,
    HealthResponse,
    SessionListResponse,
    SessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _service(request: Request) -> ChatService:
    return request.app.state.service


async def _require(service: ChatService, session_id: str, touch: bool = True):
    try:
        return await service.require_session(session_id, touch=touch)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


async def _event_stream(service: ChatService, session_id: str, message: str):
    async with aclosing(service.stream_message(session_id, message)) as stream:
        try:
            async for event in stream:
                yield event.encode_sse()
        except SessionNotFoundError:
            logger.warning("Session %s disappeared before its turn started", session_id)
            yield events.error(f"Session not found: {session_id}").encode_sse()


# ── Chat ───────────────────────────────────────────────────────────────────

@router.post("/chat")
async def chat(req: ChatRequest, request: Request):
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    service = _service(request)
    if req.session_id:
        session = await _require(service, req.session_id)
    else:
        session = await service.create_session()

    logger.info("chat session=%s message=%r", session.session_id, message[:80])
    return StreamingResponse(
        _event_stream(service, session.session_id, message),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Session-Id": session.session_id},
    )


@router.get("/chat", response_model=ChatStateResponse)
async def chat_state(request: Request, sessionId: str | None = None):
    if not sessionId:
        raise HTTPException(status_code=400, detail="sessionId is required")

    session = await _require(_service(request), sessionId)
    return ChatStateResponse(
        session_id=session.session_id,
        filters=session.filters.to_dict(),
        meta=session.meta.to_dict(),
        previous_context=session.previous_context.to_dict() if session.previous_context else None,
        messages=[m.to_dict() for m in session.messages],
    )


# ── Sessions ───────────────────────────────────────────────────────────────

@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(request: Request):
    sessions = await _service(request).store.list()
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.post("/sessions", response_model=SessionResponse)
async def create_session(request: Request):
    session = await _service(request).create_session()
    return SessionResponse(session=session.to_dict())


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, request: Request):
    session = await _require(_service(request), session_id, touch=False)
    return SessionResponse(session=session.to_dict())


@router.delete("/sessions/{session_id}", response_model=DeleteResponse)
async def delete_session(session_id: str, request: Request):
    deleted = await _service(request).store.delete(session_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return DeleteResponse(session_id=session_id)


# ── Health ─────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    service = _service(request)
    dataset = service.agent.engine.dataset
    return HealthResponse(
        status="ready",
        sessions=len(service.store),
        people_loaded=len(dataset.people),
        companies_loaded=len(dataset.companies),
        model=request.app.state.settings.openai_model,
    )
