"""
Tests for intent classification: the oracle-free short-circuits, the oracle
path, and the default intent on every kind of failure.
"""

import pytest
from conftest import FakeOracle, intent_reply, make_filters

from search_agent.errors import OracleError
from search_agent.filters import PreviousContext, SearchFilters
from search_agent.intent import (
    CONFIRM,
    CROSS_DOMAIN,
    DEFAULT_INTENT,
    MODIFY,
    NEW_SEARCH,
    REFINE,
    IntentClassifier,
    build_context,
    is_domain_switch,
    is_refine_value,
    is_simple_confirmation,
    parse_intent,
)
from search_agent.oracle import INTENT_CLASSIFICATION

FILTERS = make_filters(titles=["CTO"], locations=["Singapore"])


class TestShortCircuitHelpers:
    @pytest.mark.parametrize("text", ["yes", "Yes!", "ok", "go", "sure.", "好的", "确认"])
    def test_simple_confirmation(self, text):
        assert is_simple_confirmation(text)

    @pytest.mark.parametrize("text", ["yes but in Tokyo", "going", "no", ""])
    def test_not_simple_confirmation(self, text):
        assert not is_simple_confirmation(text)

    def test_domain_switch_from_person(self):
        assert is_domain_switch("now find companies", "person")
        assert is_domain_switch("Show me fintech startups in Singapore", "person")
        assert is_domain_switch("找公司", "person")

    def test_person_search_mentioning_companies_is_not_a_switch(self):
        assert not is_domain_switch("Find CTOs at AI companies", "person")
        assert not is_domain_switch("find companies", "company")

    def test_domain_switch_from_company(self):
        assert is_domain_switch("find people who work there", "company")
        assert is_domain_switch("who are the CTOs", "company")
        assert is_domain_switch("找候选人", "company")
        assert not is_domain_switch("find people", "person")

    @pytest.mark.parametrize("text", ["fintech", "Tokyo", "in Singapore", "also healthcare.", "India", "startups", "新加坡"])
    def test_refine_value(self, text):
        assert is_refine_value(text)

    @pytest.mark.parametrize("text", ["Find CTOs", "dia", "fintech CTOs in Tokyo"])
    def test_not_refine_value(self, text):
        assert not is_refine_value(text)


class TestParseIntent:
    def test_valid(self):
        intent = parse_intent({"type": "modify", "confidence": 0.8, "reasoning": "changes location"})
        assert intent.type == MODIFY
        assert intent.confidence == 0.8
        assert intent.reasoning == "changes location"

    def test_confidence_clamped(self):
        assert parse_intent({"type": "refine", "confidence": 3}).confidence == 1.0
        assert parse_intent({"type": "refine", "confidence": -1}).confidence == 0.0

    def test_missing_confidence(self):
        assert parse_intent({"type": "refine"}).confidence == 0.5
        assert parse_intent({"type": "refine", "confidence": True}).confidence == 0.5

    def test_unknown_type(self):
        assert parse_intent({"type": "search_jobs", "confidence": 0.9}) is None


class TestBuildContext:
    def test_current_filters(self):
        assert build_context(FILTERS, None).startswith("Current search filters: titles: ['CTO']")

    def test_previous_context(self):
        previous = PreviousContext(domain="person", filters=FILTERS)
        assert build_context(SearchFilters(), previous).startswith("Previous person search:")

    def test_nothing(self):
        assert build_context(SearchFilters(), None) == "No previous search context"


class TestIntentClassifier:
    @pytest.mark.asyncio
    async def test_confirmation_skips_oracle(self):
        oracle = FakeOracle()
        intent = await IntentClassifier(oracle).classify("yes", FILTERS)
        assert intent.type == CONFIRM
        assert intent.confidence == 0.95
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_domain_switch_skips_oracle(self):
        oracle = FakeOracle()
        intent = await IntentClassifier(oracle).classify("now find companies", FILTERS, "person")
        assert intent.type == CROSS_DOMAIN
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_bare_value_skips_oracle(self):
        oracle = FakeOracle()
        intent = await IntentClassifier(oracle).classify("in fintech", FILTERS)
        assert intent.type == REFINE
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_short_circuits_need_existing_filters(self):
        oracle = FakeOracle({INTENT_CLASSIFICATION: intent_reply(NEW_SEARCH)})
        intent = await IntentClassifier(oracle).classify("yes", SearchFilters())
        assert intent.type == NEW_SEARCH
        assert oracle.purposes() == [INTENT_CLASSIFICATION]

    @pytest.mark.asyncio
    async def test_oracle_reply_used(self):
        oracle = FakeOracle({INTENT_CLASSIFICATION: intent_reply(MODIFY, 0.85)})
        intent = await IntentClassifier(oracle).classify("change location to Tokyo", FILTERS)
        assert intent.type == MODIFY
        assert intent.confidence == 0.85
        prompt = oracle.calls[0][1]
        assert "Current search filters" in prompt
        assert 'User input: "change location to Tokyo"' in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        OracleError("boom"),
        "I think the user wants a new search",
        '{"type": "unknown", "confidence": 0.9}',
        "[1, 2, 3]",
    ])
    async def test_failures_yield_default(self, reply):
        oracle = FakeOracle({INTENT_CLASSIFICATION: reply})
        intent = await IntentClassifier(oracle).classify("change location to Tokyo", FILTERS)
        assert intent == DEFAULT_INTENT
        assert intent.type == NEW_SEARCH
        assert intent.confidence == 0.5
        assert intent.reasoning == "Default classification due to parsing error"
