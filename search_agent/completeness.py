"""
Completeness scoring and clarification questions.

Every filter field has an importance weight; the completeness score is the
weighted share of filled fields. Each domain has a short list of recommended
fields, and a recommended field the user has neither filled nor explicitly
skipped is "missing". When the search is too thin, one clarifying question is
generated for the most useful missing field.
"""

import re
from dataclasses import dataclass

from .filters import PERSON, SearchFilters, SearchMeta

MINIMUM_FILTERS_COUNT = 2
CLARIFICATION_SCORE_THRESHOLD = 60

FIELD_IMPORTANCE = {
    "titles": 3,
    "locations": 2,
    "industries": 2,
    "seniorities": 1,
    "companyHeadcount": 1,
    "yearsOfExperience": 1,
    "skills": 1,
    "companies": 2,
}
MAX_SCORE = sum(FIELD_IMPORTANCE.values())

RECOMMENDED_FIELDS = {
    "person": ("titles", "locations", "industries"),
    "company": ("industries", "locations", "companyHeadcount"),
}

QUESTION_PRIORITY = ("locations", "industries", "titles", "seniorities")

FIELD_DESCRIPTIONS = {
    "titles": {
        "en": "specific job titles",
        "cn": "具体职位",
        "examples": 'e.g., "CTO", "Software Engineer", "Product Manager"',
    },
    "locations": {
        "en": "geographic locations",
        "cn": "地理位置",
        "examples": 'e.g., "Singapore", "New York", "Europe"',
    },
    "industries": {
        "en": "industry sectors",
        "cn": "行业领域",
        "examples": 'e.g., "Technology", "Finance", "Healthcare"',
    },
    "seniorities": {
        "en": "seniority levels",
        "cn": "职位级别",
        "examples": 'e.g., "Senior", "Director", "VP"',
    },
    "companyHeadcount": {
        "en": "company size",
        "cn": "公司规模",
        "examples": 'e.g., "startup", "mid-size", "enterprise"',
    },
    "yearsOfExperience": {
        "en": "years of experience",
        "cn": "工作经验",
        "examples": 'e.g., "5+ years", "3-5 years"',
    },
    "skills": {
        "en": "specific skills",
        "cn": "技能要求",
        "examples": 'e.g., "Python", "Machine Learning"',
    },
    "companies": {
        "en": "specific companies",
        "cn": "特定公司",
        "examples": 'e.g., "Google", "startups"',
    },
}


@dataclass(frozen=True)
class CompletenessResult:
    completeness_score: int
    missing_fields: tuple[str, ...]
    clarification_needed: bool
    clarification_question: str | None = None


def score(filters: SearchFilters, domain: str, skip_fields=()) -> CompletenessResult:
    filled = filters.filled_fields()
    points = sum(FIELD_IMPORTANCE[name] for name in filled)
    completeness = min(100, round(100 * points / MAX_SCORE))

    skipped = set(skip_fields or ())
    recommended = RECOMMENDED_FIELDS.get(domain, RECOMMENDED_FIELDS[PERSON])
    missing = tuple(f for f in recommended if f not in filled and f not in skipped)

    needs_clarification = bool(missing) and (
        len(filled) < MINIMUM_FILTERS_COUNT or completeness < CLARIFICATION_SCORE_THRESHOLD
    )

    question = None
    if needs_clarification:
        question = clarification_question(missing, filters)

    return CompletenessResult(
        completeness_score=completeness,
        missing_fields=missing,
        clarification_needed=needs_clarification,
        clarification_question=question,
    )


def score_meta(filters: SearchFilters, meta: SearchMeta, skip_fields=()) -> SearchMeta:
    """Re-derive the scored part of meta, keeping domain and isNewSearch."""
    result = score(filters, meta.domain, skip_fields)
    return SearchMeta(
        domain=meta.domain,
        is_new_search=meta.is_new_search,
        completeness_score=result.completeness_score,
        missing_fields=result.missing_fields,
        clarification_needed=result.clarification_needed,
        clarification_question=result.clarification_question,
    )


def clarification_target(missing_fields) -> str | None:
    """The missing field a clarifying question should ask about."""
    for name in QUESTION_PRIORITY:
        if name in missing_fields:
            return name
    return missing_fields[0] if missing_fields else None


def clarification_question(missing_fields, filters: SearchFilters) -> str:
    target = clarification_target(missing_fields)
    info = FIELD_DESCRIPTIONS.get(target)
    if info is None:
        return "Could you provide more details for your search?"

    has_title = filters.titles is not None
    if target == "locations" and has_title:
        return (
            f"To narrow down the search, which location(s) are you interested in? "
            f"({info['examples']}) Or you can say \"any location\" if you don't have a preference."
        )
    if target == "industries" and has_title:
        return (
            f"What industry should I focus on? ({info['examples']}) "
            f"Or say \"any industry\" if it doesn't matter."
        )
    return (
        f"Could you specify {info['en']} ({info['cn']})? ({info['examples']}) "
        f"Or say \"any\" if you don't have a preference."
    )


# ── "Any" / no-preference detection ───────────────────────────────────────

_ANY_PATTERNS = [
    re.compile(r"^any", re.IGNORECASE),
    re.compile(r"doesn'?t?\s*matter", re.IGNORECASE),
    re.compile(r"don'?t\s*care", re.IGNORECASE),
    re.compile(r"no\s*preference", re.IGNORECASE),
    re.compile(r"anywhere", re.IGNORECASE),
    re.compile(r"whatever", re.IGNORECASE),
    re.compile(r"^all\s*(of them|locations?|industries?)?$", re.IGNORECASE),
    re.compile(r"^ok[.!]?$", re.IGNORECASE),
    re.compile(r"^fine[.!]?$", re.IGNORECASE),
    re.compile(r"都行"),
    re.compile(r"无所谓"),
    re.compile(r"随便"),
    re.compile(r"没关系"),
    re.compile(r"都可以"),
    re.compile(r"不限"),
    re.compile(r"任意"),
]

_FIELD_HINTS = {
    "locations": re.compile(r"location|place|city|country|region|where|地点|地方|位置|城市", re.IGNORECASE),
    "industries": re.compile(r"industry|industries|sector|field|行业|领域", re.IGNORECASE),
    "seniorities": re.compile(r"seniority|level|级别", re.IGNORECASE),
    "companyHeadcount": re.compile(r"company\s*size|headcount|公司规模", re.IGNORECASE),
}


def is_any_response(text: str) -> bool:
    """True when the user dismisses a question ("any", "doesn't matter", "都行")."""
    text = (text or "").strip()
    return any(p.search(text) for p in _ANY_PATTERNS)


def detect_field_from_response(text: str, last_asked: str | None = None) -> str | None:
    """Which field a dismissal refers to, defaulting to the last asked field."""
    for name, pattern in _FIELD_HINTS.items():
        if pattern.search(text or ""):
            return name
    return last_asked
