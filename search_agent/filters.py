"""
Search filter model and merge engine.

SearchFilters is a fixed-shape record over eight known fields. Seven of them
hold an ordered set of strings; yearsOfExperience holds a numeric range.
A field is either absent ("not yet known") or carries a non-empty value.

Merging an update produced by the extraction step into the accumulated
filters is driven by the classified intent:

    new_search    -> update only
    refine        -> per-field union (range field replaced)
    modify        -> per-field replace, other fields carried over
    cross_domain  -> locations/industries inherited from the previous
                     search, then per-field replace
    confirm/reject -> unchanged
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Iterator

DIRECT = "DIRECT"
GUESS = "GUESS"
CONFIDENCE_TYPES = (DIRECT, GUESS)

PERSON = "person"
COMPANY = "company"
DOMAINS = (PERSON, COMPANY)

# Wire (camelCase) field name -> dataclass attribute
FIELD_ATTRS = {
    "titles": "titles",
    "locations": "locations",
    "industries": "industries",
    "seniorities": "seniorities",
    "companyHeadcount": "company_headcount",
    "yearsOfExperience": "years_of_experience",
    "skills": "skills",
    "companies": "companies",
}
FIELD_NAMES = tuple(FIELD_ATTRS)
RANGE_FIELD = "yearsOfExperience"
ARRAY_FIELDS = tuple(name for name in FIELD_NAMES if name != RANGE_FIELD)

# Fields that generalize across person and company searches
INHERITABLE_FIELDS = ("locations", "industries")

FILTER_FIELD_LABELS = {
    "titles": "Job Titles",
    "locations": "Locations",
    "industries": "Industries",
    "seniorities": "Seniority Levels",
    "companyHeadcount": "Company Size",
    "yearsOfExperience": "Experience",
    "skills": "Skills",
    "companies": "Companies",
}

FILTER_FIELD_LABELS_CN = {
    "titles": "职位",
    "locations": "地点",
    "industries": "行业",
    "seniorities": "级别",
    "companyHeadcount": "公司规模",
    "yearsOfExperience": "工作经验",
    "skills": "技能",
    "companies": "公司",
}

_ATTR_TO_NAME = {attr: name for name, attr in FIELD_ATTRS.items()}


# ── Values ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExperienceRange:
    min: float | None = None
    max: float | None = None

    def is_empty(self) -> bool:
        return self.min is None and self.max is None

    def to_dict(self) -> dict:
        out = {}
        if self.min is not None:
            out["min"] = _plain_number(self.min)
        if self.max is not None:
            out["max"] = _plain_number(self.max)
        return out

    def display(self) -> str:
        low = _plain_number(self.min) if self.min is not None else 0
        if self.max is not None:
            return f"{low}-{_plain_number(self.max)} years"
        return f"{low}+ years"


@dataclass(frozen=True)
class FilterField:
    """One filter value with its provenance."""
    value: tuple[str, ...] | ExperienceRange
    confidence: str = DIRECT
    source: str | None = None

    def is_empty(self) -> bool:
        if isinstance(self.value, ExperienceRange):
            return self.value.is_empty()
        return len(self.value) == 0

    def to_dict(self) -> dict:
        if isinstance(self.value, ExperienceRange):
            value: Any = self.value.to_dict()
        else:
            value = list(self.value)
        out = {"value": value, "confidence": self.confidence}
        if self.source:
            out["source"] = self.source
        return out


def array_field(values, confidence: str = DIRECT, source: str | None = None) -> FilterField:
    """Build an array-valued field, de-duplicating while keeping order."""
    return FilterField(value=_dedupe(values), confidence=confidence, source=source)


# ── SearchFilters ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SearchFilters:
    titles: FilterField | None = None
    locations: FilterField | None = None
    industries: FilterField | None = None
    seniorities: FilterField | None = None
    company_headcount: FilterField | None = None
    years_of_experience: FilterField | None = None
    skills: FilterField | None = None
    companies: FilterField | None = None

    def __post_init__(self):
        # Absent means "not yet known": empty values never survive construction.
        for attr in FIELD_ATTRS.values():
            field_ = getattr(self, attr)
            if field_ is not None and field_.is_empty():
                object.__setattr__(self, attr, None)

    @classmethod
    def of(cls, fields: dict[str, FilterField | None]) -> "SearchFilters":
        """Build from a mapping keyed by wire field names."""
        return cls(**{FIELD_ATTRS[name]: f for name, f in fields.items() if name in FIELD_ATTRS})

    def get(self, name: str) -> FilterField | None:
        return getattr(self, FIELD_ATTRS[name])

    def with_field(self, name: str, field_: FilterField | None) -> "SearchFilters":
        return dataclasses.replace(self, **{FIELD_ATTRS[name]: field_})

    def items(self) -> Iterator[tuple[str, FilterField]]:
        """Present fields, in canonical field order."""
        for name, attr in FIELD_ATTRS.items():
            field_ = getattr(self, attr)
            if field_ is not None:
                yield name, field_

    def filled_fields(self) -> list[str]:
        return [name for name, _ in self.items()]

    def is_empty(self) -> bool:
        return not any(True for _ in self.items())

    def __len__(self) -> int:
        return len(self.filled_fields())

    def to_dict(self) -> dict:
        return {name: field_.to_dict() for name, field_ in self.items()}

    @classmethod
    def from_dict(cls, data: dict | None) -> "SearchFilters":
        """Load a stored (already normalized) wire dict."""
        return normalize_filters(data)


@dataclass(frozen=True)
class SearchMeta:
    domain: str = PERSON
    is_new_search: bool = True
    completeness_score: int = 0
    missing_fields: tuple[str, ...] = ()
    clarification_needed: bool = False
    clarification_question: str | None = None

    def to_dict(self) -> dict:
        out = {
            "domain": self.domain,
            "isNewSearch": self.is_new_search,
            "completenessScore": self.completeness_score,
            "missingFields": list(self.missing_fields),
            "clarificationNeeded": self.clarification_needed,
        }
        if self.clarification_question:
            out["clarificationQuestion"] = self.clarification_question
        return out

    @classmethod
    def from_dict(cls, data: dict | None) -> "SearchMeta":
        data = data or {}
        domain = data.get("domain")
        return cls(
            domain=domain if domain in DOMAINS else PERSON,
            is_new_search=bool(data.get("isNewSearch", True)),
            completeness_score=int(data.get("completenessScore") or 0),
            missing_fields=tuple(data.get("missingFields") or ()),
            clarification_needed=bool(data.get("clarificationNeeded", False)),
            clarification_question=data.get("clarificationQuestion"),
        )


@dataclass(frozen=True)
class PreviousContext:
    """Snapshot of a search that was set aside by a new or cross-domain search."""
    domain: str
    filters: SearchFilters

    def to_dict(self) -> dict:
        return {"domain": self.domain, "filters": self.filters.to_dict()}

    @classmethod
    def from_dict(cls, data: dict | None) -> "PreviousContext | None":
        if not data:
            return None
        domain = data.get("domain")
        return cls(
            domain=domain if domain in DOMAINS else PERSON,
            filters=SearchFilters.from_dict(data.get("filters")),
        )


# ── Normalization of extraction output ────────────────────────────────────

def normalize_filters(raw: Any) -> SearchFilters:
    """Convert the extraction oracle's raw JSON filters into SearchFilters.

    Each field may be given as {"value": ..., "confidence": ..., "source": ...},
    as a bare list (treated as DIRECT), or for yearsOfExperience as a bare
    {"min": .., "max": ..}. Anything else is ignored.
    """
    if not isinstance(raw, dict):
        return SearchFilters()

    fields: dict[str, FilterField] = {}
    for key, value in raw.items():
        name = _canonical_name(key)
        if name is None or not value:
            continue
        field_ = _normalize_field(name, value)
        if field_ is not None and not field_.is_empty():
            fields[name] = field_
    return SearchFilters.of(fields)


def _canonical_name(key: Any) -> str | None:
    if not isinstance(key, str):
        return None
    if key in FIELD_ATTRS:
        return key
    return _ATTR_TO_NAME.get(key)


def _normalize_field(name: str, value: Any) -> FilterField | None:
    confidence = DIRECT
    source = None

    if isinstance(value, dict) and "value" in value:
        confidence = value.get("confidence") if value.get("confidence") in CONFIDENCE_TYPES else DIRECT
        source = value.get("source") if isinstance(value.get("source"), str) else None
        value = value["value"]

    if name == RANGE_FIELD:
        if not isinstance(value, dict):
            return None
        rng = ExperienceRange(min=_safe_float(value.get("min")), max=_safe_float(value.get("max")))
        return FilterField(value=rng, confidence=confidence, source=source)

    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return None
    return array_field(value, confidence=confidence, source=source)


# ── Merge policies ─────────────────────────────────────────────────────────

def merge_replace(current: SearchFilters, update: SearchFilters) -> SearchFilters:
    """Fields present in update replace those in current; the rest carry over."""
    merged = current
    for name, field_ in update.items():
        merged = merged.with_field(name, field_)
    return merged


def merge_union(current: SearchFilters, update: SearchFilters) -> SearchFilters:
    """Array fields are unioned; the range field is replaced."""
    merged = current
    for name in ARRAY_FIELDS:
        merged = merged.with_field(name, _union_field(current.get(name), update.get(name)))
    if update.years_of_experience is not None:
        merged = dataclasses.replace(merged, years_of_experience=update.years_of_experience)
    return merged


def _union_field(current: FilterField | None, update: FilterField | None) -> FilterField | None:
    if update is None:
        return current
    if current is None:
        return update
    return array_field(
        list(current.value) + list(update.value),
        confidence=update.confidence,
        source=update.source or current.source,
    )


def inherit_for_cross_domain(previous: SearchFilters | None) -> SearchFilters:
    """Keep only the fields that carry over between person and company searches."""
    if previous is None:
        return SearchFilters()
    return SearchFilters.of({name: previous.get(name) for name in INHERITABLE_FIELDS})


def merge_filters(
    current: SearchFilters,
    update: SearchFilters | None,
    intent_type: str | None,
    previous_filters: SearchFilters | None = None,
) -> SearchFilters:
    """Merge an extracted update into the current filters per intent type."""
    if update is None or update.is_empty():
        return current

    if intent_type == "new_search":
        return update
    if intent_type == "modify":
        return merge_replace(current, update)
    if intent_type == "cross_domain":
        if previous_filters is None:
            return update
        return merge_replace(inherit_for_cross_domain(previous_filters), update)
    if intent_type in ("confirm", "reject"):
        return current
    # refine, and the default when no intent is known
    return merge_union(current, update)


# ── Display ────────────────────────────────────────────────────────────────

def format_value(field_: FilterField) -> str:
    if isinstance(field_.value, ExperienceRange):
        return field_.value.display()
    return ", ".join(field_.value)


def format_filters(filters: SearchFilters, bullet: str = "-") -> str:
    """One "- Label: value" line per present field; GUESS fields are flagged."""
    lines = []
    for name, field_ in filters.items():
        note = " (inferred)" if field_.confidence == GUESS else ""
        lines.append(f"{bullet} {FILTER_FIELD_LABELS[name]}: {format_value(field_)}{note}")
    return "\n".join(lines)


def summarize_filters(filters: SearchFilters) -> str:
    """Compact "name: [values]" summary used in classifier context."""
    parts = []
    for name, field_ in filters.items():
        if isinstance(field_.value, ExperienceRange):
            parts.append(f"{name}: {field_.value.to_dict()}")
        else:
            parts.append(f"{name}: {list(field_.value)}")
    return ", ".join(parts)


# ── Helpers ────────────────────────────────────────────────────────────────

def _dedupe(values) -> tuple[str, ...]:
    seen = set()
    out = []
    for v in values:
        if not isinstance(v, str):
            continue
        v = v.strip()
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return tuple(out)


def _safe_float(val) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        return float(val)
    except (ValueError, TypeError):
        return None


def _plain_number(val: float):
    return int(val) if float(val).is_integer() else val
