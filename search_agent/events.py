"""
Lifecycle events emitted during a turn, and their server-sent-event encoding.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any

HEARTBEAT = "heartbeat"
PROGRESS = "progress"
CONTENT = "content"
FILTERS = "filters"
DONE = "done"
ERROR = "error"

STARTED = "started"
COMPLETED = "completed"

AGENT_ERROR = "AGENT_ERROR"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AgentEvent:
    type: str
    data: dict
    timestamp: int = field(default_factory=now_ms)
    # Final TurnState on the filters event; never serialized
    state: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}

    def encode_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


def heartbeat() -> AgentEvent:
    ts = now_ms()
    return AgentEvent(HEARTBEAT, {"timestamp": ts}, ts)


def progress(node: str, status: str, message: str | None = None) -> AgentEvent:
    data = {"node": node, "status": status}
    if message:
        data["message"] = message
    return AgentEvent(PROGRESS, data)


def content(chunk: str, is_complete: bool = False) -> AgentEvent:
    return AgentEvent(CONTENT, {"chunk": chunk, "isComplete": is_complete})


def filters_event(state) -> AgentEvent:
    return AgentEvent(
        FILTERS,
        {"filters": state.filters.to_dict(), "meta": state.meta.to_dict()},
        state=state,
    )


def done(session_id: str) -> AgentEvent:
    return AgentEvent(DONE, {"success": True, "sessionId": session_id})


def error(message: str, code: str = AGENT_ERROR) -> AgentEvent:
    return AgentEvent(ERROR, {"message": message, "code": code})
