"""
Load the people/company dataset from JSONL.

Each line is one record. Malformed lines are skipped and missing fields get
neutral defaults, so one bad row never takes the dataset down. Numeric
columns the search engine filters on are kept as NumPy arrays next to the
records.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
PEOPLE_FILE = DATA_DIR / "people.jsonl"
COMPANIES_FILE = DATA_DIR / "companies.jsonl"


# ── Records ─────────────────────────────────────────────────────────────────

@dataclass
class Person:
    id: str
    name: str
    title: str
    seniority: str
    location: str
    industry: str
    company: str
    company_headcount: str
    years_of_experience: float
    skills: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "seniority": self.seniority,
            "location": self.location,
            "industry": self.industry,
            "company": self.company,
            "companyHeadcount": self.company_headcount,
            "yearsOfExperience": self.years_of_experience,
            "skills": list(self.skills),
        }


@dataclass
class Company:
    id: str
    name: str
    industry: str
    location: str
    headcount: str
    type: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "industry": self.industry,
            "location": self.location,
            "headcount": self.headcount,
            "type": self.type,
        }


# ── Dataset ─────────────────────────────────────────────────────────────────

class Dataset:
    """In-memory people and company records."""

    def __init__(self, people: list[Person] | None = None, companies: list[Company] | None = None):
        self.people: list[Person] = people or []
        self.companies: list[Company] = companies or []
        self.years_of_experience = np.array([p.years_of_experience for p in self.people], dtype=np.float64)

    def __len__(self):
        return len(self.people) + len(self.companies)

    @staticmethod
    def load(people_path: str | Path = PEOPLE_FILE, companies_path: str | Path = COMPANIES_FILE) -> "Dataset":
        people = [_person(i, raw) for i, raw in enumerate(_read_jsonl(people_path))]
        companies = [_company(i, raw) for i, raw in enumerate(_read_jsonl(companies_path))]
        logger.info("Loaded %d people and %d companies", len(people), len(companies))
        return Dataset(people, companies)


def _read_jsonl(path: str | Path) -> list[dict]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    rows = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed line %d in %s", lineno, path.name)
                continue
            if isinstance(raw, dict):
                rows.append(raw)
    return rows


def _person(i: int, raw: dict) -> Person:
    return Person(
        id=str(raw.get("id") or f"p{i}"),
        name=_str(raw.get("name")),
        title=_str(raw.get("title")),
        seniority=_str(raw.get("seniority")),
        location=_str(raw.get("location")),
        industry=_str(raw.get("industry")),
        company=_str(raw.get("company")),
        company_headcount=_str(raw.get("company_headcount")),
        years_of_experience=_safe_float(raw.get("years_of_experience")) or 0.0,
        skills=[s for s in raw.get("skills") or [] if isinstance(s, str)],
    )


def _company(i: int, raw: dict) -> Company:
    return Company(
        id=str(raw.get("id") or f"c{i}"),
        name=_str(raw.get("name")),
        industry=_str(raw.get("industry")),
        location=_str(raw.get("location")),
        headcount=_str(raw.get("headcount")),
        type=_str(raw.get("type")),
    )


# ── Helpers ─────────────────────────────────────────────────────────────────

def _safe_float(val) -> float | None:
    if val is None:
        return None
    try:
        return float(val)
    except (ValueError, TypeError):
        return None


def _str(val) -> str:
    return str(val).strip() if val is not None else ""
