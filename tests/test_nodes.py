"""
Tests for the individual turn nodes, outside of the graph driver.
"""

import json

import pytest
from conftest import FakeOracle, collect, extraction_reply, intent_reply, make_filters

from search_agent.errors import OracleError
from search_agent.filters import PreviousContext, SearchFilters, SearchMeta
from search_agent.intent import (
    CONFIRM,
    CROSS_DOMAIN,
    MODIFY,
    NEW_SEARCH,
    REFINE,
    REJECT,
    Intent,
    IntentClassifier,
)
from search_agent.nodes import (
    REJECT_MESSAGE,
    WELCOME_MESSAGE,
    build_extraction_prompt,
    check_completeness,
    classify_intent,
    contains_confirm_keyword,
    extract_filters,
    fallback_response,
    generate_response,
    has_ambiguous_term,
    rewrite_query,
    should_execute_search,
)
from search_agent.oracle import FILTER_EXTRACTION, INTENT_CLASSIFICATION, QUERY_REWRITE, RESPONSE_GENERATION
from search_agent.state import TurnState


def turn(user_input, filters=None, meta=None, **kwargs) -> TurnState:
    return TurnState.start(
        session_id="session_test",
        user_input=user_input,
        filters=filters or SearchFilters(),
        meta=meta or SearchMeta(),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# classify_intent
# ---------------------------------------------------------------------------

class TestClassifyIntent:
    @pytest.mark.asyncio
    async def test_any_answer_skips_asked_field(self, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle()
        patch = await classify_intent(turn("doesn't matter", filters, meta), IntentClassifier(oracle))
        assert patch["intent"].type == CONFIRM
        assert patch["intent"].confidence == 0.9
        assert patch["skip_fields"] == ("industries",)
        assert patch["meta"].missing_fields == ()
        assert not patch["meta"].clarification_needed
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_any_answer_names_its_field(self):
        meta = SearchMeta(missing_fields=("locations", "industries"), clarification_needed=True)
        filters = make_filters(titles=["CTO"])
        patch = await classify_intent(turn("any industry", filters, meta), IntentClassifier(FakeOracle()))
        assert patch["skip_fields"] == ("industries",)
        assert patch["meta"].missing_fields == ("locations",)

    @pytest.mark.asyncio
    async def test_any_answer_ignored_without_missing_fields(self):
        oracle = FakeOracle({INTENT_CLASSIFICATION: intent_reply(NEW_SEARCH)})
        patch = await classify_intent(turn("anywhere"), IntentClassifier(oracle))
        assert patch == {"intent": Intent(NEW_SEARCH, 0.9, "scripted")}

    @pytest.mark.asyncio
    async def test_new_search_archives_and_clears(self, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle({INTENT_CLASSIFICATION: intent_reply(NEW_SEARCH)})
        state = turn("Find designers in Paris", filters, meta, skip_fields=("industries",))
        patch = await classify_intent(state, IntentClassifier(oracle))
        assert patch["previous_context"] == PreviousContext("person", filters)
        assert patch["filters"].is_empty()
        assert patch["meta"].is_new_search is True
        assert patch["skip_fields"] == ()

    @pytest.mark.asyncio
    async def test_cross_domain_leaves_context_for_extraction(self, singapore_ctos):
        filters, meta = singapore_ctos
        previous = PreviousContext("company", make_filters(industries=["AI"]))
        state = turn("now find companies", filters, meta, previous_context=previous)
        patch = await classify_intent(state, IntentClassifier(FakeOracle()))
        assert set(patch) == {"intent"}
        assert patch["intent"].type == CROSS_DOMAIN

    @pytest.mark.asyncio
    async def test_refine_leaves_filters_alone(self, singapore_ctos):
        filters, meta = singapore_ctos
        patch = await classify_intent(turn("fintech", filters, meta), IntentClassifier(FakeOracle()))
        assert set(patch) == {"intent"}
        assert patch["intent"].type == REFINE


# ---------------------------------------------------------------------------
# rewrite_query
# ---------------------------------------------------------------------------

class TestRewriteQuery:
    def test_ambiguity_terms(self):
        assert has_ambiguous_term("Find tech leaders in Europe")
        assert not has_ambiguous_term("Find CTOs in Singapore")

    @pytest.mark.asyncio
    async def test_plain_query_passes_through(self):
        oracle = FakeOracle()
        patch = await rewrite_query(turn("Find CTOs in Singapore"), oracle)
        assert patch == {"rewritten_query": "Find CTOs in Singapore"}
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_ambiguous_query_is_expanded(self):
        reply = json.dumps({"rewrittenQuery": "Find CTO, VP Engineering in London, Berlin, Paris"})
        oracle = FakeOracle({QUERY_REWRITE: reply})
        patch = await rewrite_query(turn("Find tech leaders in Europe"), oracle)
        assert patch["rewritten_query"] == "Find CTO, VP Engineering in London, Berlin, Paris"
        assert oracle.purposes() == [QUERY_REWRITE]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [OracleError("down"), "not json", '{"rewrittenQuery": ""}'])
    async def test_failures_pass_through(self, reply):
        oracle = FakeOracle({QUERY_REWRITE: reply})
        patch = await rewrite_query(turn("Find tech leaders in Europe"), oracle)
        assert patch == {"rewritten_query": "Find tech leaders in Europe"}


# ---------------------------------------------------------------------------
# extract_filters
# ---------------------------------------------------------------------------

class TestExtractFilters:
    def test_prompt_for_refine_lists_current_filters(self, singapore_ctos):
        filters, meta = singapore_ctos
        state = turn("in fintech", filters, meta).apply({"intent": Intent(REFINE, 0.95)})
        prompt = build_extraction_prompt(state)
        assert "adding to an existing search" in prompt
        assert "- Job Titles: CTO" in prompt
        assert prompt.endswith('User query: "in fintech"')

    def test_prompt_includes_expanded_query(self):
        state = turn("Find tech leaders").apply({"rewritten_query": "Find CTO, VP Engineering"})
        assert 'Expanded query: "Find CTO, VP Engineering"' in build_extraction_prompt(state)

    def test_prompt_for_cross_domain_names_previous_search(self, singapore_ctos):
        filters, meta = singapore_ctos
        state = turn("now find companies", filters, meta).apply({
            "intent": Intent(CROSS_DOMAIN, 0.95),
            "previous_context": PreviousContext("person", filters),
        })
        assert "pivoting away from a person search" in build_extraction_prompt(state)

    @pytest.mark.asyncio
    async def test_new_search(self):
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({
            "titles": {"value": ["CTO"], "confidence": "DIRECT"},
            "locations": {"value": ["Singapore"], "confidence": "DIRECT"},
        })})
        state = turn("Find CTOs in Singapore").apply({"intent": Intent(NEW_SEARCH, 0.9)})
        patch = await extract_filters(state, oracle)
        assert patch["filters"] == make_filters(titles=["CTO"], locations=["Singapore"])
        assert patch["meta"].domain == "person"
        assert patch["meta"].is_new_search is True

    @pytest.mark.asyncio
    async def test_refine_unions_and_keeps_domain(self, singapore_ctos):
        filters, _ = singapore_ctos
        meta = SearchMeta(domain="company")
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({"locations": ["Tokyo"]}, domain="person")})
        state = turn("also Tokyo", filters, meta).apply({"intent": Intent(REFINE, 0.95)})
        patch = await extract_filters(state, oracle)
        assert patch["filters"].locations.value == ("Singapore", "Tokyo")
        assert patch["meta"].domain == "company"
        assert patch["meta"].is_new_search is False

    @pytest.mark.asyncio
    async def test_modify_replaces_field(self, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({"locations": ["Tokyo"]})})
        state = turn("change location to Tokyo", filters, meta).apply({"intent": Intent(MODIFY, 0.9)})
        patch = await extract_filters(state, oracle)
        assert patch["filters"] == make_filters(titles=["CTO"], locations=["Tokyo"])

    @pytest.mark.asyncio
    async def test_cross_domain_inherits_stored_context_then_archives(self):
        current = make_filters(companyHeadcount=["startup"])
        previous = PreviousContext("person", make_filters(titles=["CTO"], locations=["Singapore"], industries=["AI"]))
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({"titles": ["CTO"]}, domain="person")})
        state = turn("find people", current, SearchMeta(domain="company"), previous_context=previous)
        patch = await extract_filters(state.apply({"intent": Intent(CROSS_DOMAIN, 0.95)}), oracle)

        assert patch["filters"] == make_filters(locations=["Singapore"], industries=["AI"], titles=["CTO"])
        assert patch["meta"].domain == "person"
        assert patch["previous_context"] == PreviousContext("company", current)

    @pytest.mark.asyncio
    async def test_cross_domain_without_stored_context_inherits_nothing(self, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({"companyHeadcount": ["startup"]}, domain="company")})
        state = turn("now find companies", filters, meta).apply({"intent": Intent(CROSS_DOMAIN, 0.95)})
        patch = await extract_filters(state, oracle)

        assert patch["filters"] == make_filters(companyHeadcount=["startup"])
        assert patch["previous_context"] == PreviousContext("person", filters)

    @pytest.mark.asyncio
    async def test_unknown_domain_defaults_to_person(self):
        oracle = FakeOracle({FILTER_EXTRACTION: extraction_reply({"titles": ["CTO"]}, domain="jobs")})
        state = turn("Find CTOs").apply({"intent": Intent(NEW_SEARCH, 0.9)})
        assert (await extract_filters(state, oracle))["meta"].domain == "person"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        OracleError("down"),
        "no json at all",
        extraction_reply({}),
        extraction_reply({"titles": []}),
    ])
    async def test_failures_roll_back(self, singapore_ctos, reply):
        filters, meta = singapore_ctos
        previous = PreviousContext("company", make_filters(industries=["AI"]))
        state = turn("Find designers", filters, meta, previous_context=previous, skip_fields=("industries",))
        # classify_intent already cleared the filters for a new search
        state = state.apply({
            "intent": Intent(NEW_SEARCH, 0.9),
            "filters": SearchFilters(),
            "previous_context": PreviousContext("person", filters),
            "skip_fields": (),
        })
        patch = await extract_filters(state, FakeOracle({FILTER_EXTRACTION: reply}))
        assert patch == {
            "filters": filters,
            "meta": meta,
            "previous_context": previous,
            "skip_fields": ("industries",),
        }


# ---------------------------------------------------------------------------
# check_completeness
# ---------------------------------------------------------------------------

def test_check_completeness_rescores(singapore_ctos):
    filters, _ = singapore_ctos
    patch = check_completeness(turn("x", filters, SearchMeta(domain="person")))
    assert patch["meta"].completeness_score == 38
    assert patch["meta"].missing_fields == ("industries",)
    assert patch["meta"].clarification_needed


# ---------------------------------------------------------------------------
# generate_response
# ---------------------------------------------------------------------------

class TestGenerateResponse:
    @pytest.mark.parametrize("text,expected", [
        ("yes please", True),
        ("Find CTOs", True),
        ("好的，搜索吧", True),
        ("going forward", False),
        ("Finding the right person", False),
        ("Tokyo", False),
        ("行", True),
        ("那好，开始吧", True),
        ("在银行工作的人", False),
        ("找银行业的CTO", False),
        ("要是能在新加坡", False),
    ])
    def test_confirm_keyword(self, text, expected):
        assert contains_confirm_keyword(text) is expected

    def test_should_execute_search(self, singapore_ctos):
        filters, meta = singapore_ctos
        confirm = {"intent": Intent(CONFIRM, 0.95)}
        assert should_execute_search(turn("yes", filters, meta).apply(confirm))
        assert not should_execute_search(turn("yes").apply(confirm))
        # keyword, but the search still needs clarification
        assert not should_execute_search(turn("find them", filters, meta))
        complete = SearchMeta(completeness_score=54)
        assert should_execute_search(turn("find them", filters, complete))

    def test_fallback_variants(self, singapore_ctos):
        filters, meta = singapore_ctos
        assert fallback_response(turn("hi")) == WELCOME_MESSAGE
        rejected = turn("no", filters, meta).apply({"intent": Intent(REJECT, 0.9)})
        assert fallback_response(rejected) == REJECT_MESSAGE
        assert fallback_response(turn("x", filters, meta)) == (
            "I found some search criteria. What industry should I focus on?"
        )
        summary = fallback_response(turn("x", filters, SearchMeta()))
        assert "• Job Titles: CTO" in summary
        assert summary.endswith("Shall I search with these filters? 🔍")

    @pytest.mark.asyncio
    async def test_confirmed_search_runs(self, engine, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle()
        state = turn("yes", filters, meta).apply({"intent": Intent(CONFIRM, 0.95)})
        chunks = await collect(generate_response(state, oracle, engine))
        assert len(chunks) == 1
        assert "Found 3 matching candidates" in chunks[0]
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_streams_oracle_reply(self, engine, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle(stream_chunks=["Which ", "industry?"])
        chunks = await collect(generate_response(turn("Find CTOs in Singapore", filters, meta), oracle, engine))
        assert chunks == ["Which ", "industry?"]

    @pytest.mark.asyncio
    async def test_stream_failure_before_output_uses_template(self, engine, singapore_ctos):
        filters, meta = singapore_ctos
        chunks = await collect(generate_response(turn("x", filters, meta), FakeOracle(), engine))
        assert chunks == ["I found some search criteria. What industry should I focus on?"]

    @pytest.mark.asyncio
    async def test_stream_failure_midway_appends_template(self, engine, singapore_ctos):
        filters, meta = singapore_ctos
        oracle = FakeOracle(stream_chunks=["Let me", OracleError("reset")])
        chunks = await collect(generate_response(turn("x", filters, meta), oracle, engine))
        assert chunks[0] == "Let me"
        assert chunks[1].startswith("\n\nI found some search criteria.")

    @pytest.mark.asyncio
    async def test_empty_stream_uses_template(self, engine):
        chunks = await collect(generate_response(turn("hello"), FakeOracle(stream_chunks=[]), engine))
        assert chunks == [WELCOME_MESSAGE]

    @pytest.mark.asyncio
    async def test_non_streaming(self, engine):
        oracle = FakeOracle({RESPONSE_GENERATION: "What are you looking for?"})
        chunks = await collect(generate_response(turn("hello"), oracle, engine, stream=False))
        assert chunks == ["What are you looking for?"]

        chunks = await collect(generate_response(turn("hello"), FakeOracle(), engine, stream=False))
        assert chunks == [WELCOME_MESSAGE]
