"""
Shared fixtures: a scripted oracle standing in for the LLM, the bundled
dataset, and the agent/service wired together the way the API does it.
"""

import asyncio
import json

import pytest

from search_agent.data_loader import Dataset
from search_agent.errors import OracleError
from search_agent.filters import ExperienceRange, FilterField, SearchFilters, SearchMeta, array_field
from search_agent.graph import SearchAgent
from search_agent.oracle import FILTER_EXTRACTION, INTENT_CLASSIFICATION
from search_agent.search_engine import SearchEngine
from search_agent.service import ChatService
from search_agent.session_store import SessionStore


# ---------------------------------------------------------------------------
# Scripted oracle
# ---------------------------------------------------------------------------

class FakeOracle:
    """
    Replies are scripted per purpose. A purpose maps to a single reply (used
    for every call) or a list (consumed in order). A reply that is an
    Exception instance is raised. Unscripted purposes raise OracleError, which
    exercises the fallback paths.
    """

    def __init__(self, replies=None, stream_chunks=None, delay: float = 0.0):
        self.replies = dict(replies or {})
        self.stream_chunks = stream_chunks
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    def _next(self, purpose: str):
        if purpose not in self.replies:
            raise OracleError(f"no scripted reply for {purpose}")
        reply = self.replies[purpose]
        if isinstance(reply, list):
            reply = reply.pop(0) if reply else OracleError(f"script for {purpose} exhausted")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def purposes(self) -> list[str]:
        return [purpose for purpose, _ in self.calls]

    async def invoke(self, system_prompt: str, user_prompt: str, purpose: str) -> str:
        self.calls.append((purpose, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next(purpose)

    async def stream(self, system_prompt: str, user_prompt: str, purpose: str):
        self.calls.append((purpose, user_prompt))
        if self.stream_chunks is None:
            raise OracleError(f"no scripted stream for {purpose}")
        for chunk in self.stream_chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


CTO_FILTERS_RAW = {
    "titles": {"value": ["CTO"], "confidence": "DIRECT"},
    "locations": {"value": ["Singapore"], "confidence": "DIRECT"},
}


def intent_reply(intent_type: str, confidence: float = 0.9) -> str:
    return json.dumps({"type": intent_type, "confidence": confidence, "reasoning": "scripted"})


def extraction_reply(filters: dict, domain: str = "person") -> str:
    return "```json\n" + json.dumps({"domain": domain, "filters": filters}) + "\n```"


def scripted(intent: str, filters: dict, domain: str = "person", stream_chunks=None) -> FakeOracle:
    return FakeOracle(
        {
            INTENT_CLASSIFICATION: intent_reply(intent),
            FILTER_EXTRACTION: extraction_reply(filters, domain),
        },
        stream_chunks=stream_chunks,
    )


def make_filters(**fields) -> SearchFilters:
    """make_filters(titles=["CTO"], yearsOfExperience={"min": 5})"""
    built = {}
    for name, value in fields.items():
        if isinstance(value, FilterField):
            built[name] = value
        elif isinstance(value, dict):
            built[name] = FilterField(ExperienceRange(value.get("min"), value.get("max")))
        else:
            built[name] = array_field(value)
    return SearchFilters.of(built)


async def collect(agen) -> list:
    return [item async for item in agen]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def dataset():
    return Dataset.load()


@pytest.fixture
def engine(dataset):
    return SearchEngine(dataset)


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def make_agent(engine):
    def _make(oracle, **kwargs):
        kwargs.setdefault("stream_responses", True)
        return SearchAgent(oracle, engine, **kwargs)
    return _make


@pytest.fixture
def make_service(store, make_agent):
    def _make(oracle, **kwargs):
        return ChatService(store, make_agent(oracle, **kwargs))
    return _make


@pytest.fixture
def singapore_ctos():
    filters = make_filters(titles=["CTO"], locations=["Singapore"])
    meta = SearchMeta(
        domain="person",
        is_new_search=True,
        completeness_score=38,
        missing_fields=("industries",),
        clarification_needed=True,
        clarification_question="What industry should I focus on?",
    )
    return filters, meta
