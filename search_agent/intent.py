"""
Intent classification for a conversational turn.

Three cheap checks run first and skip the oracle entirely when the user
already has filters: a bare confirmation word, an explicit switch between
company and person search, and a bare vocabulary token ("fintech",
"Tokyo", "startups") that can only mean "add this". Everything else goes to
the oracle. classify() never raises.
"""

import logging
import re
from dataclasses import dataclass

from .errors import OracleError
from .filters import COMPANY, PERSON, PreviousContext, SearchFilters, summarize_filters
from .json_utils import DecodeFailure, decode_json_object
from .oracle import INTENT_CLASSIFICATION, Oracle
from .prompts import INTENT_CLASSIFICATION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

NEW_SEARCH = "new_search"
REFINE = "refine"
MODIFY = "modify"
CONFIRM = "confirm"
REJECT = "reject"
CROSS_DOMAIN = "cross_domain"
INTENT_TYPES = (NEW_SEARCH, REFINE, MODIFY, CONFIRM, REJECT, CROSS_DOMAIN)

DEFAULT_REASONING = "Default classification due to parsing error"

CONFIRM_WORDS = (
    "yes", "yeah", "yep", "sure", "ok", "okay", "please", "go", "proceed", "search", "find",
    "是", "好", "好的", "可以", "行", "确认", "搜索", "开始", "执行", "查找",
)

# At most two modifiers between the verb and the noun, so "find CTOs at AI
# companies" stays a person search.
_FIND_COMPANIES = re.compile(
    r"\b(find|search|show|list|look\s+for)\s+(me\s+)?([\w-]+\s+){0,2}(companies|startups|firms|organi[sz]ations)\b"
    r"|找公司|搜索公司|查找公司|哪些公司",
    re.IGNORECASE,
)
_FIND_PEOPLE = re.compile(
    r"\b(find|search|show|list|look\s+for)\s+(me\s+)?(the\s+)?(people|candidates|employees|talent)\b"
    r"|\bwho\s+(are|is)\s+the\b"
    r"|找人|找候选人|搜索候选人|查找人才",
    re.IGNORECASE,
)

REFINE_VOCABULARY = {
    # industries
    "ai", "artificial intelligence", "machine learning", "fintech", "finance", "banking",
    "saas", "software", "technology", "tech", "healthcare", "biotech", "e-commerce",
    "ecommerce", "edtech", "gaming", "crypto", "blockchain", "logistics", "retail",
    # locations
    "singapore", "tokyo", "japan", "london", "new york", "san francisco", "bay area",
    "hong kong", "shanghai", "beijing", "china", "europe", "asia", "southeast asia",
    "usa", "us", "united states", "uk", "germany", "berlin", "paris", "india", "sydney",
    # company size
    "startup", "startups", "small", "mid-size", "midsize", "large", "enterprise", "big companies",
    # Chinese
    "人工智能", "金融科技", "新加坡", "东京", "北京", "上海", "初创公司", "大公司",
}
_REFINE_PREFIX = re.compile(r"^(?:(also|and|only|just|plus|in|at|from)\s+|(还要|另外|也要|在)\s*)", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[\s!.?,。！？，]+$")


@dataclass(frozen=True)
class Intent:
    type: str
    confidence: float
    reasoning: str | None = None

    def to_dict(self) -> dict:
        out = {"type": self.type, "confidence": self.confidence}
        if self.reasoning:
            out["reasoning"] = self.reasoning
        return out


DEFAULT_INTENT = Intent(type=NEW_SEARCH, confidence=0.5, reasoning=DEFAULT_REASONING)


def is_simple_confirmation(text: str) -> bool:
    normalized = (text or "").strip().lower()
    return any(re.fullmatch(re.escape(word) + r"[!.?。！？]*", normalized) for word in CONFIRM_WORDS)


def is_domain_switch(text: str, domain: str) -> bool:
    if domain == PERSON:
        return bool(_FIND_COMPANIES.search(text or ""))
    if domain == COMPANY:
        return bool(_FIND_PEOPLE.search(text or ""))
    return False


def is_refine_value(text: str) -> bool:
    """True when the input is just one known industry/location/size token."""
    normalized = _TRAILING_PUNCT.sub("", (text or "").strip().lower())
    normalized = _REFINE_PREFIX.sub("", normalized).strip()
    return normalized in REFINE_VOCABULARY


def build_context(filters: SearchFilters, previous: PreviousContext | None) -> str:
    if not filters.is_empty():
        return f"Current search filters: {summarize_filters(filters)}"
    if previous is not None and not previous.filters.is_empty():
        return f"Previous {previous.domain} search: {summarize_filters(previous.filters)}"
    return "No previous search context"


def parse_intent(payload: dict) -> Intent | None:
    intent_type = payload.get("type")
    if intent_type not in INTENT_TYPES:
        return None
    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.5
    reasoning = payload.get("reasoning")
    return Intent(
        type=intent_type,
        confidence=min(1.0, max(0.0, float(confidence))),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


class IntentClassifier:
    def __init__(self, oracle: Oracle):
        self.oracle = oracle

    async def classify(
        self,
        user_input: str,
        filters: SearchFilters,
        domain: str = PERSON,
        previous: PreviousContext | None = None,
    ) -> Intent:
        if not filters.is_empty():
            if is_simple_confirmation(user_input):
                return Intent(CONFIRM, 0.95, "User provided a simple confirmation word")
            if is_domain_switch(user_input, domain):
                return Intent(CROSS_DOMAIN, 0.95, f"Explicit switch away from {domain} search")
            if is_refine_value(user_input):
                return Intent(REFINE, 0.95, "Bare filter value added to the current search")

        prompt = f'Context: {build_context(filters, previous)}\n\nUser input: "{user_input}"'
        try:
            reply = await self.oracle.invoke(INTENT_CLASSIFICATION_SYSTEM_PROMPT, prompt, INTENT_CLASSIFICATION)
        except OracleError as e:
            logger.warning("Intent classification failed, using default: %s", e)
            return DEFAULT_INTENT

        result = decode_json_object(reply)
        if isinstance(result, DecodeFailure):
            logger.warning("Could not decode intent reply (%s): %.200s", result.reason, result.raw)
            return DEFAULT_INTENT

        intent = parse_intent(result.payload)
        if intent is None:
            logger.warning("Unknown intent type %r, using default", result.payload.get("type"))
            return DEFAULT_INTENT
        return intent
