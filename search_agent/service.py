"""
Chat service: runs one turn against a stored session.

A turn holds the session's lock from load to save, so two messages on the
same session never interleave. The session is written back only after the
agent finishes with a done event; an error event, a timeout or a consumer
that stops reading (client disconnect) leaves the stored session untouched.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator

from . import events
from .errors import SessionNotFoundError
from .events import AgentEvent
from .graph import SearchAgent
from .session_store import Session, SessionStore
from .state import TurnState

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, store: SessionStore, agent: SearchAgent):
        self.store = store
        self.agent = agent

    async def create_session(self) -> Session:
        return await self.store.create()

    async def require_session(self, session_id: str, touch: bool = True) -> Session:
        session = await self.store.get(session_id, touch=touch)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def stream_message(self, session_id: str, message: str) -> AsyncIterator[AgentEvent]:
        """Run a turn and yield its events; persist the outcome on success."""
        async with self.store.lock(session_id):
            session = await self.require_session(session_id)
            initial = TurnState.start(
                session_id=session_id,
                user_input=message,
                filters=session.filters,
                meta=session.meta,
                previous_context=session.previous_context,
                skip_fields=session.skip_fields,
            )

            final: TurnState | None = None
            async with aclosing(self.agent.run(initial)) as turn:
                async for event in turn:
                    if event.type == events.FILTERS:
                        final = event.state
                    elif event.type == events.DONE and final is not None:
                        await self._commit(session, message, final)
                    yield event

    async def _commit(self, session: Session, message: str, final: TurnState) -> None:
        session.add_message("user", message)
        session.add_message("assistant", final.response, filters=final.filters, meta=final.meta)
        session.filters = final.filters
        session.meta = final.meta
        session.previous_context = final.previous_context
        session.skip_fields = list(final.skip_fields)
        try:
            await self.store.save(session)
        except SessionNotFoundError:
            logger.warning("Session %s was deleted mid-turn; dropping its result", session.session_id)
