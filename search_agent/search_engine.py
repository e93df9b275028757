"""
Search over the bundled people/company dataset.

The agent's structured SearchFilters are flattened into FlatFilters (plain
string lists), then each record is matched with case-insensitive whole-word
checks plus small alias tables for titles, industries and locations.
Missing filters never exclude a record. There is no ranking: matches come
back in dataset order.
"""

import re
import time
from dataclasses import dataclass, field

import numpy as np

from .data_loader import Company, Dataset, Person
from .filters import COMPANY, SearchFilters

MAX_PEOPLE_SHOWN = 10
MAX_COMPANIES_SHOWN = 5


@dataclass
class FlatFilters:
    job_title: list[str] = field(default_factory=list)
    location: list[str] = field(default_factory=list)
    industry: list[str] = field(default_factory=list)
    seniority: list[str] = field(default_factory=list)
    company_headcount: list[str] = field(default_factory=list)
    years_of_experience: str | None = None  # "5+" or "3-5"
    company_name: str | None = None


@dataclass
class SearchResult:
    people: list[Person] = field(default_factory=list)
    companies: list[Company] = field(default_factory=list)
    total_people: int = 0
    total_companies: int = 0
    search_time_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "people": [p.to_dict() for p in self.people],
            "companies": [c.to_dict() for c in self.companies],
            "totalPeople": self.total_people,
            "totalCompanies": self.total_companies,
        }


def to_flat_filters(filters: SearchFilters) -> FlatFilters:
    flat = FlatFilters()
    if filters.titles:
        flat.job_title = list(filters.titles.value)
    if filters.locations:
        flat.location = list(filters.locations.value)
    if filters.industries:
        flat.industry = list(filters.industries.value)
    if filters.seniorities:
        flat.seniority = list(filters.seniorities.value)
    if filters.company_headcount:
        flat.company_headcount = list(filters.company_headcount.value)
    if filters.years_of_experience and filters.years_of_experience.value.min is not None:
        low = filters.years_of_experience.value.min
        flat.years_of_experience = f"{int(low) if float(low).is_integer() else low}+"
    if filters.companies:
        flat.company_name = filters.companies.value[0]
    return flat


class SearchEngine:
    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    def search(self, filters: FlatFilters, domain: str = "person") -> SearchResult:
        t0 = time.perf_counter()
        if domain == COMPANY:
            companies = [c for c in self.dataset.companies if _company_passes_filters(c, filters)]
            result = SearchResult(companies=companies, total_companies=len(companies))
        else:
            people = self._search_people(filters)
            result = SearchResult(people=people, total_people=len(people))
        result.search_time_ms = (time.perf_counter() - t0) * 1000
        return result

    def _search_people(self, filters: FlatFilters) -> list[Person]:
        ds = self.dataset
        mask = np.ones(len(ds.people), dtype=bool)

        for i, person in enumerate(ds.people):
            if not _person_passes_filters(person, filters):
                mask[i] = False

        bounds = _parse_experience(filters.years_of_experience)
        if bounds is not None:
            low, high = bounds
            mask &= ds.years_of_experience >= low
            if high is not None:
                mask &= ds.years_of_experience <= high

        return [ds.people[i] for i in np.flatnonzero(mask)]


# ── Alias tables ────────────────────────────────────────────────────────────

INDUSTRY_ALIASES = {
    "technology": ["tech", "software", "it", "artificial intelligence", "ai", "machine learning", "ml",
                   "deep learning", "data science", "cloud", "saas", "computer", "科技", "技术", "互联网"],
    "finance": ["fintech", "banking", "financial", "investment", "trading", "insurance", "金融", "银行", "投资"],
    "healthcare": ["health", "medical", "biotech", "pharma", "hospital", "clinic", "医疗", "健康", "生物"],
    "e-commerce": ["ecommerce", "retail", "shopping", "marketplace", "电商", "零售"],
    "education": ["edtech", "learning", "school", "university", "training", "教育", "培训"],
    "retail": ["shopping", "store", "consumer", "fashion", "零售", "消费"],
}

LOCATION_ALIASES = {
    "london": ["uk", "united kingdom", "britain", "england", "europe", "英国", "伦敦", "欧洲"],
    "berlin": ["germany", "deutschland", "europe", "德国", "柏林", "欧洲"],
    "munich": ["germany", "deutschland", "europe", "德国", "慕尼黑", "欧洲"],
    "paris": ["france", "europe", "法国", "巴黎", "欧洲"],
    "milan": ["italy", "italia", "europe", "意大利", "米兰", "欧洲"],
    "barcelona": ["spain", "españa", "europe", "西班牙", "巴塞罗那", "欧洲"],
    "dublin": ["ireland", "europe", "爱尔兰", "都柏林", "欧洲"],
    "helsinki": ["finland", "europe", "nordic", "芬兰", "赫尔辛基", "欧洲", "北欧"],
    "singapore": ["sg", "asia", "southeast asia", "新加坡", "亚洲"],
    "tokyo": ["japan", "asia", "日本", "东京", "亚洲"],
    "hong kong": ["hk", "asia", "香港", "亚洲"],
    "seoul": ["korea", "south korea", "asia", "韩国", "首尔", "亚洲"],
    "new york": ["usa", "united states", "america", "ny", "nyc", "美国", "纽约"],
    "san francisco": ["usa", "united states", "america", "sf", "bay area", "silicon valley", "美国", "旧金山", "硅谷"],
    "menlo park": ["usa", "united states", "america", "bay area", "silicon valley", "美国", "硅谷"],
    "mountain view": ["usa", "united states", "america", "bay area", "silicon valley", "美国", "硅谷"],
    "seattle": ["usa", "united states", "america", "美国", "西雅图"],
    "boston": ["usa", "united states", "america", "美国", "波士顿"],
    "austin": ["usa", "united states", "america", "texas", "美国", "奥斯汀"],
    "sydney": ["australia", "澳大利亚", "悉尼"],
}

JOB_TITLE_ALIASES = {
    "product manager": ["pm", "产品经理", "产品管理", "product management"],
    "software engineer": ["swe", "developer", "programmer", "软件工程师", "开发工程师", "程序员"],
    "cto": ["chief technology officer", "首席技术官", "技术总监"],
    "chief technology officer": ["cto", "首席技术官"],
    "ceo": ["chief executive officer", "首席执行官", "总裁"],
    "cfo": ["chief financial officer", "首席财务官", "财务总监"],
    "vp of engineering": ["vp engineering", "engineering vp", "工程副总裁", "技术副总裁"],
    "data scientist": ["data science", "数据科学家", "数据分析师"],
    "ml engineer": ["machine learning engineer", "机器学习工程师", "ai engineer", "ai工程师"],
    "designer": ["ui designer", "ux designer", "设计师", "产品设计师"],
    "marketing director": ["director of marketing", "head of marketing", "市场总监"],
}

STARTUP_HEADCOUNTS = {"1-10", "11-50", "51-200"}
LARGE_HEADCOUNTS = {"501-1000", "1001-5000", "5001+"}


# ── Matching ────────────────────────────────────────────────────────────────

def _person_passes_filters(p: Person, f: FlatFilters) -> bool:
    return (
        _matches_title(p.title, f.job_title)
        and _matches_location(p.location, f.location)
        and _matches_industry(p.industry, f.industry)
        and _matches_substring(p.seniority, f.seniority)
        and _matches_headcount(p.company_headcount, f.company_headcount)
        and _matches_substring(p.company, [f.company_name] if f.company_name else [])
    )


def _company_passes_filters(c: Company, f: FlatFilters) -> bool:
    return (
        _matches_industry(c.industry, f.industry)
        and _matches_location(c.location, f.location)
        and _matches_headcount(c.headcount, f.company_headcount)
        and _matches_substring(c.name, [f.company_name] if f.company_name else [])
    )


def _norm(s: str) -> str:
    return s.lower().strip()


def _matches_substring(value: str, wanted: list[str]) -> bool:
    if not wanted:
        return True
    v = _norm(value)
    return any(_norm(w) in v for w in wanted)


def _overlaps(value: str, wanted: str) -> bool:
    if not value or not wanted:
        return False
    return _contains_term(value, wanted) or _contains_term(wanted, value)


def _matches_title(value: str, wanted: list[str]) -> bool:
    if not wanted:
        return True
    v = _norm(value)
    for w in map(_norm, wanted):
        if _overlaps(v, w):
            return True
        for title, aliases in JOB_TITLE_ALIASES.items():
            if not _contains_term(v, title):
                continue
            if _contains_term(w, title) or any(_contains_term(w, a) for a in aliases):
                return True
    return False


def _matches_industry(value: str, wanted: list[str]) -> bool:
    if not wanted:
        return True
    v = _norm(value)
    for w in map(_norm, wanted):
        if _overlaps(v, w):
            return True
        for industry, aliases in INDUSTRY_ALIASES.items():
            if industry in v and any(_contains_term(w, a) for a in aliases):
                return True
            if industry in w and any(_contains_term(v, a) for a in aliases):
                return True
    return False


def _matches_location(value: str, wanted: list[str]) -> bool:
    if not wanted:
        return True
    v = _norm(value)
    for w in map(_norm, wanted):
        if _overlaps(v, w):
            return True
        for location, aliases in LOCATION_ALIASES.items():
            if location in v and any(_contains_term(w, a) for a in aliases):
                return True
    return False


def _matches_headcount(value: str, wanted: list[str]) -> bool:
    if not wanted:
        return True
    for w in map(_norm, wanted):
        if "startup" in w or "small" in w:
            if value in STARTUP_HEADCOUNTS:
                return True
        elif "large" in w or "enterprise" in w:
            if value in LARGE_HEADCOUNTS:
                return True
        elif w in _norm(value):
            return True
    return False


def _contains_term(text: str, term: str) -> bool:
    """Word-boundary containment for ASCII terms ("it" must not match "digital")."""
    if term.isascii():
        return re.search(rf"\b{re.escape(term)}\b", text) is not None
    return term in text


_EXPERIENCE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:(\+)|-\s*(\d+(?:\.\d+)?))?")


def _parse_experience(spec: str | None) -> tuple[float, float | None] | None:
    """'5+' -> (5, None); '3-5' -> (3, 5); a bare number is a minimum."""
    if not spec:
        return None
    m = _EXPERIENCE.search(spec)
    if not m:
        return None
    low = float(m.group(1))
    high = float(m.group(3)) if m.group(3) else None
    return low, high


# ── Formatting ──────────────────────────────────────────────────────────────

def format_results(result: SearchResult) -> str:
    """Render a search result as chat-ready Markdown."""
    parts = []

    if result.total_people > 0:
        parts.append(f"🔍 **Search Complete! Found {result.total_people} matching candidates:**\n")
        for i, p in enumerate(result.people[:MAX_PEOPLE_SHOWN], start=1):
            years = int(p.years_of_experience) if float(p.years_of_experience).is_integer() else p.years_of_experience
            parts.append(f"**{i}. {p.name}** - {p.title} @ {p.company}")
            parts.append(f"   - 📍 Location: {p.location}")
            parts.append(f"   - 🏢 Industry: {p.industry}")
            parts.append(f"   - 👔 Seniority: {p.seniority}")
            parts.append(f"   - 📊 Company Size: {p.company_headcount}")
            parts.append(f"   - ⏱️ Experience: {years} years")
            parts.append(f"   - 🔧 Skills: {', '.join(p.skills)}\n")
        if result.total_people > MAX_PEOPLE_SHOWN:
            parts.append(f"\n... and {result.total_people - MAX_PEOPLE_SHOWN} more candidates")

    if result.total_companies > 0:
        parts.append(f"\n**Found {result.total_companies} matching companies:**\n")
        for i, c in enumerate(result.companies[:MAX_COMPANIES_SHOWN], start=1):
            parts.append(f"**{i}. {c.name}**")
            parts.append(f"   - 🏢 Industry: {c.industry}")
            parts.append(f"   - 📍 Location: {c.location}")
            parts.append(f"   - 📊 Size: {c.headcount}")
            parts.append(f"   - 🏷️ Type: {c.type}\n")
        if result.total_companies > MAX_COMPANIES_SHOWN:
            parts.append(f"\n... and {result.total_companies - MAX_COMPANIES_SHOWN} more companies")

    if result.total_people == 0 and result.total_companies == 0:
        parts.append(
            "😔 **No matching results found**\n\n"
            "Suggestions:\n"
            "- Try broadening your search criteria\n"
            "- Check if location or industry is correct\n"
            "- Use more general job titles"
        )

    return "\n".join(parts)
