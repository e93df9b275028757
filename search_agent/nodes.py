"""
The five turn nodes.

Each node takes the current TurnState and returns a patch dict; none of
them mutate state or emit events. generate_response is the exception in
shape only: it is an async generator of reply chunks, and the driver
assembles the final reply from them.
"""

import dataclasses
import logging
import re
from typing import AsyncIterator

from .completeness import (
    clarification_target,
    detect_field_from_response,
    is_any_response,
    score_meta,
)
from .errors import OracleError
from .filters import (
    DOMAINS,
    PERSON,
    PreviousContext,
    SearchFilters,
    format_filters,
    merge_filters,
    normalize_filters,
)
from .intent import CONFIRM, CROSS_DOMAIN, MODIFY, NEW_SEARCH, REFINE, REJECT, Intent, IntentClassifier
from .json_utils import DecodeFailure, decode_json_object
from .oracle import FILTER_EXTRACTION, QUERY_REWRITE, RESPONSE_GENERATION, Oracle
from .prompts import (
    FILTER_EXTRACTION_SYSTEM_PROMPT,
    QUERY_REWRITE_SYSTEM_PROMPT,
    RESPONSE_GENERATION_SYSTEM_PROMPT,
)
from .search_engine import SearchEngine, format_results, to_flat_filters
from .state import TurnState

logger = logging.getLogger(__name__)

CLASSIFY_INTENT = "classify_intent"
REWRITE_QUERY = "rewrite_query"
EXTRACT_FILTERS = "extract_filters"
CHECK_COMPLETENESS = "check_completeness"
GENERATE_RESPONSE = "generate_response"

NODE_DESCRIPTIONS = {
    CLASSIFY_INTENT: "Understanding your intent...",
    REWRITE_QUERY: "Processing your query...",
    EXTRACT_FILTERS: "Extracting search filters...",
    CHECK_COMPLETENESS: "Checking filter completeness...",
    GENERATE_RESPONSE: "Generating response...",
}

AMBIGUOUS_TERMS = (
    "tech leaders", "tech bros", "engineers", "developers", "product people", "designers",
    "big tech", "faang", "startups", "enterprise", "europe", "asia", "bay area",
    "senior", "junior", "management", "技术大佬", "技术人员",
)

CONFIRM_KEYWORDS = (
    "yes", "yeah", "yep", "sure", "ok", "okay", "please", "go", "proceed", "search", "find",
    "是", "好", "好的", "可以", "行", "确认", "搜索", "开始", "执行", "查找",
)

WELCOME_MESSAGE = (
    "I'd be happy to help you search! Could you tell me what you're looking for? "
    "For example, you could say 'Find CTOs in Singapore' or 'Find AI startups'."
)
REJECT_MESSAGE = "No problem. What would you like to change about the search?"


# ── classify_intent ────────────────────────────────────────────────────────

async def classify_intent(state: TurnState, classifier: IntentClassifier) -> dict:
    meta = state.meta

    # "any" / "doesn't matter" answers the pending clarification without the oracle
    if is_any_response(state.user_input) and meta.missing_fields:
        target = clarification_target(meta.missing_fields)
        skipped = detect_field_from_response(state.user_input, target)
        if skipped not in meta.missing_fields:
            skipped = target
        skip_fields = state.skip_fields if skipped in state.skip_fields else state.skip_fields + (skipped,)
        logger.info("No-preference answer, skipping %s", skipped)
        return {
            "intent": Intent(CONFIRM, 0.9, f"User has no preference for {skipped}"),
            "skip_fields": skip_fields,
            "meta": score_meta(state.filters, meta, skip_fields),
        }

    intent = await classifier.classify(state.user_input, state.filters, meta.domain, state.previous_context)
    patch: dict = {"intent": intent}

    if intent.type == NEW_SEARCH and not state.filters.is_empty():
        patch["previous_context"] = PreviousContext(domain=meta.domain, filters=state.filters)
        patch["filters"] = SearchFilters()
        patch["meta"] = dataclasses.replace(meta, is_new_search=True)
        patch["skip_fields"] = ()
    return patch


# ── rewrite_query ──────────────────────────────────────────────────────────

def has_ambiguous_term(text: str) -> bool:
    lowered = (text or "").lower()
    return any(term in lowered for term in AMBIGUOUS_TERMS)


async def rewrite_query(state: TurnState, oracle: Oracle) -> dict:
    if not has_ambiguous_term(state.user_input):
        return {"rewritten_query": state.user_input}

    try:
        reply = await oracle.invoke(QUERY_REWRITE_SYSTEM_PROMPT, f'Query: "{state.user_input}"', QUERY_REWRITE)
    except OracleError as e:
        logger.warning("Query rewrite failed, passing input through: %s", e)
        return {"rewritten_query": state.user_input}

    result = decode_json_object(reply)
    if isinstance(result, DecodeFailure):
        logger.warning("Could not decode rewrite reply (%s)", result.reason)
        return {"rewritten_query": state.user_input}

    rewritten = result.payload.get("rewrittenQuery")
    if not isinstance(rewritten, str) or not rewritten.strip():
        rewritten = state.user_input
    return {"rewritten_query": rewritten.strip()}


# ── extract_filters ────────────────────────────────────────────────────────

def build_extraction_prompt(state: TurnState) -> str:
    intent_type = state.intent.type if state.intent else None
    context = ""

    if intent_type in (REFINE, MODIFY) and not state.filters.is_empty():
        action = "adding to" if intent_type == REFINE else "modifying"
        instruction = (
            "MERGE the new conditions with existing filters."
            if intent_type == REFINE
            else "REPLACE only the specific field being modified."
        )
        context = (
            f"IMPORTANT: User is {action} an existing search.\n"
            f"Current filters:\n{format_filters(state.filters)}\n\n{instruction}"
        )
    elif intent_type == CROSS_DOMAIN and state.previous_context is not None:
        prev = state.previous_context
        context = (
            f"IMPORTANT: User is pivoting away from a {prev.domain} search.\n"
            f"Previous {prev.domain} search filters:\n{format_filters(prev.filters)}\n\n"
            f"Locations and industries carry over automatically; extract what the user is asking for now."
        )

    prompt = f'User query: "{state.user_input}"'
    if state.rewritten_query and state.rewritten_query != state.user_input:
        prompt += f'\nExpanded query: "{state.rewritten_query}"'
    if context:
        prompt = f"{context}\n\n{prompt}"
    return prompt


async def extract_filters(state: TurnState, oracle: Oracle) -> dict:
    try:
        reply = await oracle.invoke(FILTER_EXTRACTION_SYSTEM_PROMPT, build_extraction_prompt(state), FILTER_EXTRACTION)
    except OracleError as e:
        logger.warning("Filter extraction failed, keeping pre-turn filters: %s", e)
        return state.rollback_patch()

    result = decode_json_object(reply)
    if isinstance(result, DecodeFailure):
        logger.warning("Could not decode extraction reply (%s), keeping pre-turn filters", result.reason)
        return state.rollback_patch()

    update = normalize_filters(result.payload.get("filters"))
    if update.is_empty():
        logger.info("Extraction found no filters, keeping pre-turn filters")
        return state.rollback_patch()

    intent_type = state.intent.type if state.intent else None
    previous = state.previous_context.filters if state.previous_context else None
    merged = merge_filters(state.filters, update, intent_type, previous)

    if intent_type in (REFINE, MODIFY):
        domain = state.meta.domain
    else:
        reported = result.payload.get("domain")
        domain = reported if reported in DOMAINS else PERSON

    patch = {
        "filters": merged,
        "meta": dataclasses.replace(state.meta, domain=domain, is_new_search=intent_type == NEW_SEARCH),
    }
    # The search being left becomes the context a later switch back inherits from
    if intent_type == CROSS_DOMAIN and not state.filters.is_empty():
        patch["previous_context"] = PreviousContext(domain=state.meta.domain, filters=state.filters)
    return patch


# ── check_completeness ─────────────────────────────────────────────────────

def check_completeness(state: TurnState) -> dict:
    return {"meta": score_meta(state.filters, state.meta, state.skip_fields)}


# ── generate_response ──────────────────────────────────────────────────────

_CLAUSE_START = r"(?:^|[\s,.;!?，。；！？、])"


def contains_confirm_keyword(text: str) -> bool:
    lowered = (text or "").lower()
    for word in CONFIRM_KEYWORDS:
        if word.isascii():
            if re.search(rf"\b{re.escape(word)}\b", lowered):
                return True
        elif len(word) == 1:
            # single characters ("行" in "银行") only count at the start of a clause
            if re.search(rf"{_CLAUSE_START}{re.escape(word)}", lowered.strip()):
                return True
        elif word in lowered:
            return True
    return False


def should_execute_search(state: TurnState) -> bool:
    if state.filters.is_empty():
        return False
    if state.intent is not None and state.intent.type == CONFIRM:
        return True
    return contains_confirm_keyword(state.user_input) and not state.meta.clarification_needed


def build_response_context(state: TurnState) -> str:
    meta = state.meta
    intent = state.intent
    lines = [
        f'User\'s original input: "{state.user_input}"',
        f"Intent detected: {intent.type if intent else 'unknown'} (confidence: {intent.confidence if intent else 0})",
        "",
        "Current search filters:",
        format_filters(state.filters) or "(No filters extracted yet)",
        "",
        f"Search domain: {meta.domain}",
        f"Completeness score: {meta.completeness_score}%",
        f"Is new search: {meta.is_new_search}",
        f"Needs clarification: {meta.clarification_needed}",
        f"Missing fields: {', '.join(meta.missing_fields) or 'None'}",
    ]
    if meta.clarification_question:
        lines.append(f"Suggested clarification question: {meta.clarification_question}")

    lines.extend(["", "INSTRUCTIONS:"])
    if intent is not None and intent.type == REJECT:
        lines.append("- The user rejected the current search; ask what they would like to change")
    elif meta.clarification_needed:
        lines.append(f"- Ask the user for more details, specifically about: {clarification_target(meta.missing_fields)}")
    else:
        lines.append("- Summarize the filters and ask for confirmation to search")
    lines.extend([
        "- Be friendly and conversational",
        "- Mention any inferred items as assumptions",
        "- Respond in the same language as the user's input",
    ])
    return "\n".join(lines)


def fallback_response(state: TurnState) -> str:
    if state.filters.is_empty():
        return WELCOME_MESSAGE
    if state.intent is not None and state.intent.type == REJECT:
        return REJECT_MESSAGE
    if state.meta.clarification_needed and state.meta.clarification_question:
        return f"I found some search criteria. {state.meta.clarification_question}"
    return (
        f"Here's what I found:\n\n{format_filters(state.filters, bullet='•')}\n\n"
        f"Shall I search with these filters? 🔍"
    )


async def generate_response(
    state: TurnState,
    oracle: Oracle,
    engine: SearchEngine,
    stream: bool = True,
) -> AsyncIterator[str]:
    if should_execute_search(state):
        result = engine.search(to_flat_filters(state.filters), state.meta.domain)
        logger.info(
            "Search executed: %d people, %d companies in %.1fms",
            result.total_people, result.total_companies, result.search_time_ms,
        )
        yield format_results(result)
        return

    context = build_response_context(state)
    if not stream:
        try:
            yield await oracle.invoke(RESPONSE_GENERATION_SYSTEM_PROMPT, context, RESPONSE_GENERATION)
        except OracleError as e:
            logger.warning("Response generation failed, using template: %s", e)
            yield fallback_response(state)
        return

    emitted = False
    try:
        async for chunk in oracle.stream(RESPONSE_GENERATION_SYSTEM_PROMPT, context, RESPONSE_GENERATION):
            emitted = True
            yield chunk
    except OracleError as e:
        logger.warning("Response stream failed, using template: %s", e)
        yield ("\n\n" if emitted else "") + fallback_response(state)
        return
    if not emitted:
        logger.warning("Response stream was empty, using template")
        yield fallback_response(state)
