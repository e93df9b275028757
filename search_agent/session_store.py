"""
In-memory session store for multi-turn conversations.

Sessions are keyed by id and hold the accumulated filters, search meta,
previous search context, skipped fields and the message history. get()
returns a deep copy, so callers work on a snapshot and write back with
save(). Mutators on unknown ids raise SessionNotFoundError; get() returns
None and never creates a session.

Each session also owns an asyncio.Lock so a whole turn (load -> run ->
save) can be serialized per session. An optional JSON snapshot file lets
sessions survive restarts: open() loads it, close() writes it.
"""

import asyncio
import copy
import json
import logging
import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .errors import SessionNotFoundError
from .filters import PreviousContext, SearchFilters, SearchMeta

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60
TITLE_LENGTH = 50
DEFAULT_TITLE = "New conversation"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_title(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text or DEFAULT_TITLE


@dataclass
class Message:
    role: str  # "user" | "assistant"
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    filters: SearchFilters | None = None
    meta: SearchMeta | None = None

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.filters is not None:
            out["filters"] = self.filters.to_dict()
        if self.meta is not None:
            out["meta"] = self.meta.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=data.get("id") or uuid.uuid4().hex,
            role=data["role"],
            content=data.get("content", ""),
            timestamp=_parse_time(data.get("timestamp")),
            filters=SearchFilters.from_dict(data["filters"]) if data.get("filters") else None,
            meta=SearchMeta.from_dict(data["meta"]) if data.get("meta") else None,
        )


@dataclass
class Session:
    session_id: str
    created_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)
    title: str = DEFAULT_TITLE
    filters: SearchFilters = field(default_factory=SearchFilters)
    meta: SearchMeta = field(default_factory=SearchMeta)
    previous_context: PreviousContext | None = None
    skip_fields: list[str] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)

    def add_message(self, role: str, content: str, **extra) -> Message:
        message = Message(role=role, content=content, **extra)
        if role == "user" and not any(m.role == "user" for m in self.messages):
            self.title = make_title(content)
        self.messages.append(message)
        return message

    def summary(self) -> dict:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "lastActiveAt": self.last_active_at.isoformat(),
            "messageCount": len(self.messages),
            "preview": self.title,
            "domain": self.meta.domain,
        }

    def to_dict(self, include_messages: bool = True) -> dict:
        out = {
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "lastActiveAt": self.last_active_at.isoformat(),
            "title": self.title,
            "filters": self.filters.to_dict(),
            "meta": self.meta.to_dict(),
            "previousContext": self.previous_context.to_dict() if self.previous_context else None,
            "skipFields": list(self.skip_fields),
        }
        if include_messages:
            out["messages"] = [m.to_dict() for m in self.messages]
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            session_id=data["sessionId"],
            created_at=_parse_time(data.get("createdAt")),
            last_active_at=_parse_time(data.get("lastActiveAt")),
            title=data.get("title") or DEFAULT_TITLE,
            filters=SearchFilters.from_dict(data.get("filters")),
            meta=SearchMeta.from_dict(data.get("meta")),
            previous_context=PreviousContext.from_dict(data.get("previousContext")),
            skip_fields=list(data.get("skipFields") or []),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )


class SessionStore:
    def __init__(self, snapshot_path: str | Path | None = None):
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = asyncio.Lock()

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    # ── Lifecycle ──────────────────────────────────────────────────────────

    async def open(self) -> None:
        if self.snapshot_path is None or not self.snapshot_path.exists():
            return
        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Session snapshot %s is unreadable, starting empty: %s", self.snapshot_path, e)
            return
        async with self._guard:
            for entry in raw.get("sessions", []):
                try:
                    session = Session.from_dict(entry)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping unreadable session in snapshot: %s", e)
                    continue
                self._sessions[session.session_id] = session
        logger.info("Restored %d sessions from %s", len(self._sessions), self.snapshot_path)

    async def close(self) -> None:
        if self.snapshot_path is None:
            return
        async with self._guard:
            payload = {"sessions": [s.to_dict() for s in self._sessions.values()]}
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.snapshot_path.with_suffix(self.snapshot_path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.snapshot_path)
        logger.info("Wrote %d sessions to %s", len(payload["sessions"]), self.snapshot_path)

    # ── Reads ──────────────────────────────────────────────────────────────

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock serializing whole turns on one session.

        Only existing sessions get a lock; an unknown id raises
        SessionNotFoundError instead of leaving a lock behind.
        """
        if session_id not in self._locks:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def create(self) -> Session:
        async with self._guard:
            session = Session(session_id=new_session_id())
            self._sessions[session.session_id] = session
        logger.info("Created session %s", session.session_id)
        return copy.deepcopy(session)

    async def get(self, session_id: str, touch: bool = True) -> Session | None:
        async with self._guard:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if touch:
                session.last_active_at = utcnow()
            return copy.deepcopy(session)

    async def list(self) -> list[dict]:
        async with self._guard:
            sessions = sorted(self._sessions.values(), key=lambda s: s.last_active_at, reverse=True)
            return [s.summary() for s in sessions]

    # ── Writes ─────────────────────────────────────────────────────────────

    async def save(self, session: Session) -> None:
        async with self._guard:
            if session.session_id not in self._sessions:
                raise SessionNotFoundError(session.session_id)
            session.last_active_at = utcnow()
            self._sessions[session.session_id] = copy.deepcopy(session)

    async def update_filters(self, session_id: str, filters: SearchFilters, meta: SearchMeta) -> None:
        async with self._guard:
            session = self._require(session_id)
            session.filters = filters
            session.meta = meta
            session.last_active_at = utcnow()

    async def append_message(self, session_id: str, role: str, content: str) -> Message:
        async with self._guard:
            session = self._require(session_id)
            message = session.add_message(role, content)
            session.last_active_at = utcnow()
            return copy.deepcopy(message)

    async def set_skip_field(self, session_id: str, field_name: str) -> None:
        async with self._guard:
            session = self._require(session_id)
            if field_name not in session.skip_fields:
                session.skip_fields.append(field_name)
            session.last_active_at = utcnow()

    async def clear_filters(self, session_id: str) -> None:
        """Archive the current search into previous context and start over."""
        async with self._guard:
            session = self._require(session_id)
            if not session.filters.is_empty():
                session.previous_context = PreviousContext(domain=session.meta.domain, filters=session.filters)
            session.filters = SearchFilters()
            session.meta = SearchMeta(domain=session.meta.domain)
            session.skip_fields = []
            session.last_active_at = utcnow()

    async def delete(self, session_id: str) -> bool:
        async with self._guard:
            removed = self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if removed is not None:
            logger.info("Deleted session %s", session_id)
        return removed is not None

    async def reap(self, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS) -> int:
        """Delete sessions inactive for longer than max_age_seconds."""
        now = utcnow()
        async with self._guard:
            expired = [
                sid for sid, s in self._sessions.items()
                if (now - s.last_active_at).total_seconds() > max_age_seconds
                and not (sid in self._locks and self._locks[sid].locked())
            ]
            for sid in expired:
                del self._sessions[sid]
                self._locks.pop(sid, None)
        if expired:
            logger.info("Reaped %d inactive sessions", len(expired))
        return len(expired)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utcnow()
