"""
Turn orchestrator.

A turn walks a fixed graph of nodes:

    classify_intent --(confirm/reject)--------------------------> generate_response -> END
                    --(anything else)--> rewrite_query -> extract_filters
                                         -> check_completeness --> generate_response -> END

The nodes (nodes.py) only compute state patches. SearchAgent.run() is the
driver: it walks the edges, applies patches, and turns each step into
lifecycle events (heartbeat, progress, content, filters, done/error). The
whole turn shares one deadline; running past it, or any unexpected
exception, ends the stream with a single error event instead of done.
"""

import asyncio
import inspect
import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable

from . import events
from .events import AgentEvent
from .intent import CONFIRM, REJECT, IntentClassifier
from .nodes import (
    CHECK_COMPLETENESS,
    CLASSIFY_INTENT,
    EXTRACT_FILTERS,
    GENERATE_RESPONSE,
    NODE_DESCRIPTIONS,
    REWRITE_QUERY,
    check_completeness,
    classify_intent,
    extract_filters,
    generate_response,
    rewrite_query,
)
from .oracle import Oracle
from .search_engine import SearchEngine
from .state import TurnState

logger = logging.getLogger(__name__)

END = None
ENTRY = CLASSIFY_INTENT

NodeFn = Callable[[TurnState], "dict | Awaitable[dict]"]
RouteFn = Callable[[TurnState], "str | None"]


def route_by_intent(state: TurnState) -> str:
    if state.intent is not None and state.intent.type in (CONFIRM, REJECT):
        return GENERATE_RESPONSE
    return REWRITE_QUERY


def route_by_completeness(state: TurnState) -> str:
    # Single destination for now; clarification loops would branch here.
    return GENERATE_RESPONSE


class SearchAgent:
    def __init__(
        self,
        oracle: Oracle,
        engine: SearchEngine,
        stream_responses: bool = True,
        turn_timeout: float = 120.0,
    ):
        self.oracle = oracle
        self.engine = engine
        self.stream_responses = stream_responses
        self.turn_timeout = turn_timeout
        self.classifier = IntentClassifier(oracle)

        self.nodes: dict[str, NodeFn] = {
            CLASSIFY_INTENT: lambda s: classify_intent(s, self.classifier),
            REWRITE_QUERY: lambda s: rewrite_query(s, self.oracle),
            EXTRACT_FILTERS: lambda s: extract_filters(s, self.oracle),
            CHECK_COMPLETENESS: check_completeness,
        }
        self.edges: dict[str, RouteFn] = {
            CLASSIFY_INTENT: route_by_intent,
            REWRITE_QUERY: lambda s: EXTRACT_FILTERS,
            EXTRACT_FILTERS: lambda s: CHECK_COMPLETENESS,
            CHECK_COMPLETENESS: route_by_completeness,
            GENERATE_RESPONSE: lambda s: END,
        }

    async def run(self, initial: TurnState) -> AsyncIterator[AgentEvent]:
        """Execute one turn, yielding lifecycle events in order."""
        yield events.heartbeat()

        t0 = time.perf_counter()
        deadline = asyncio.get_running_loop().time() + self.turn_timeout
        visited: list[str] = []
        state = initial

        try:
            node = ENTRY
            while node is not END:
                yield events.progress(node, events.STARTED, NODE_DESCRIPTIONS.get(node))

                if node == GENERATE_RESPONSE:
                    chunks: list[str] = []
                    async with aclosing(self._respond(state, deadline)) as reply:
                        async for chunk in reply:
                            chunks.append(chunk)
                            yield events.content(chunk)
                    yield events.content("", is_complete=True)
                    state = state.apply({"response": "".join(chunks)})
                else:
                    patch = await self._call_node(node, state, deadline)
                    state = state.apply(patch)

                yield events.progress(node, events.COMPLETED)
                visited.append(node)
                node = self.edges[node](state)

            logger.info(
                "Turn done session=%s intent=%s nodes=%s filters=%d took=%.0fms",
                state.session_id,
                state.intent.type if state.intent else None,
                ",".join(visited),
                len(state.filters),
                (time.perf_counter() - t0) * 1000,
            )
            yield events.filters_event(state)
            yield events.done(state.session_id)

        except TimeoutError:
            logger.error("Turn for session %s exceeded %.0fs deadline (nodes=%s)",
                         initial.session_id, self.turn_timeout, ",".join(visited))
            yield events.error(f"The request timed out after {self.turn_timeout:.0f}s")
        except Exception as e:
            logger.exception("Turn for session %s failed", initial.session_id)
            yield events.error(str(e) or "An error occurred")

    async def _call_node(self, node: str, state: TurnState, deadline: float) -> dict:
        remaining = _remaining(deadline)
        result = self.nodes[node](state)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=remaining)
        return result

    async def _respond(self, state: TurnState, deadline: float) -> AsyncIterator[str]:
        chunks = generate_response(state, self.oracle, self.engine, stream=self.stream_responses)
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=_remaining(deadline))
                except StopAsyncIteration:
                    break
                if chunk:
                    yield chunk
        finally:
            await chunks.aclose()


def _remaining(deadline: float) -> float:
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        raise TimeoutError
    return remaining
