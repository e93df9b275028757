"""
Token usage tracker for oracle (LLM) calls.

Usage is grouped by purpose (intent classification, query rewrite, filter
extraction, response generation). When a store path is given, every call is
appended to a JSON file so totals accumulate across runs; write_report()
renders a Markdown summary.
"""

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Pricing per 1M tokens
PRICING = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4-turbo-preview": {"input": 10.00, "output": 30.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
}


@dataclass
class APICall:
    timestamp: float
    model: str
    purpose: str  # "intent_classification", "query_rewrite", "filter_extraction", "response_generation"
    input_tokens: int
    output_tokens: int
    cost_usd: float


class TokenTracker:
    def __init__(self, store_path: str | Path | None = None):
        self.store_path = Path(store_path) if store_path else None
        self._session_calls: list[APICall] = []
        self._lock = threading.Lock()

    def log(self, model: str, purpose: str, input_tokens: int, output_tokens: int = 0) -> APICall:
        pricing = PRICING.get(model, {"input": 0.0, "output": 0.0})
        cost = (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000

        call = APICall(
            timestamp=time.time(),
            model=model,
            purpose=purpose,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
        )
        with self._lock:
            self._session_calls.append(call)
            if self.store_path is not None:
                store = self._load_store()
                store.append(asdict(call))
                self._save_store(store)

        return call

    @property
    def calls(self) -> list[APICall]:
        return list(self._session_calls)

    def summary(self) -> dict:
        """Summary of calls made by this process."""
        return _summarize(self._session_calls)

    def cumulative_summary(self) -> dict:
        """Summary of all persisted calls (falls back to this process without a store)."""
        if self.store_path is None:
            return self.summary()
        return _summarize([APICall(**entry) for entry in self._load_store()])

    def write_report(self, path: str | Path = "TOKENS.md") -> None:
        session = self.summary()
        cumulative = self.cumulative_summary()

        lines = [
            "# Token Usage Report\n",
            "## Cumulative (All Sessions)\n",
            f"**Total API calls:** {cumulative['total_calls']}",
            f"**Total cost:** ${cumulative['total_cost_usd']:.6f}\n",
            "| Purpose | Calls | Input Tokens | Output Tokens | Cost |",
            "|---------|-------|-------------|---------------|------|",
        ]
        for purpose, data in cumulative["by_purpose"].items():
            lines.append(
                f"| {purpose} | {data['count']} | {data['input_tokens']:,} | "
                f"{data['output_tokens']:,} | ${data['cost_usd']:.6f} |"
            )

        lines.extend([
            "",
            "## This Run\n",
            f"**API calls:** {session['total_calls']}",
            f"**Cost:** ${session['total_cost_usd']:.6f}\n",
        ])

        if cumulative["by_purpose"]:
            lines.append("## Per-Call Averages\n")
            for purpose, data in cumulative["by_purpose"].items():
                avg = data["cost_usd"] / data["count"]
                lines.append(f"**Avg {purpose} cost:** ${avg:.8f} ({data['count']} calls)")

        Path(path).write_text("\n".join(lines) + "\n")

    def reset(self) -> None:
        self._session_calls.clear()

    def _load_store(self) -> list[dict]:
        if self.store_path is None or not self.store_path.exists():
            return []
        try:
            return json.loads(self.store_path.read_text())
        except (json.JSONDecodeError, ValueError):
            logger.warning("Token usage store %s is unreadable, starting fresh", self.store_path)
            return []

    def _save_store(self, calls: list[dict]) -> None:
        self.store_path.write_text(json.dumps(calls, indent=2) + "\n")


def _summarize(calls: list[APICall]) -> dict:
    by_purpose: dict[str, dict] = {}
    for call in calls:
        if call.purpose not in by_purpose:
            by_purpose[call.purpose] = {
                "count": 0, "input_tokens": 0, "output_tokens": 0, "cost_usd": 0.0
            }
        s = by_purpose[call.purpose]
        s["count"] += 1
        s["input_tokens"] += call.input_tokens
        s["output_tokens"] += call.output_tokens
        s["cost_usd"] += call.cost_usd

    total_cost = sum(s["cost_usd"] for s in by_purpose.values())
    total_calls = sum(s["count"] for s in by_purpose.values())
    return {"by_purpose": by_purpose, "total_calls": total_calls, "total_cost_usd": total_cost}
