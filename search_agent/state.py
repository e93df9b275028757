"""
Per-turn agent state.

TurnState is an immutable snapshot. Nodes read it and return a patch (a dict
of field -> new value); the graph driver applies the patch to get the next
snapshot. The pre-turn filters/meta/previous_context are kept alongside so a
failed extraction can restore them.
"""

import dataclasses
from dataclasses import dataclass, field

from .filters import PreviousContext, SearchFilters, SearchMeta
from .intent import Intent


@dataclass(frozen=True)
class TurnState:
    session_id: str
    user_input: str
    filters: SearchFilters = field(default_factory=SearchFilters)
    meta: SearchMeta = field(default_factory=SearchMeta)
    previous_context: PreviousContext | None = None
    skip_fields: tuple[str, ...] = ()
    intent: Intent | None = None
    rewritten_query: str | None = None
    response: str = ""

    # Pre-turn values, for rollback
    initial_filters: SearchFilters = field(default_factory=SearchFilters)
    initial_meta: SearchMeta = field(default_factory=SearchMeta)
    initial_previous_context: PreviousContext | None = None
    initial_skip_fields: tuple[str, ...] = ()

    @classmethod
    def start(
        cls,
        session_id: str,
        user_input: str,
        filters: SearchFilters,
        meta: SearchMeta,
        previous_context: PreviousContext | None = None,
        skip_fields=(),
    ) -> "TurnState":
        return cls(
            session_id=session_id,
            user_input=user_input,
            filters=filters,
            meta=meta,
            previous_context=previous_context,
            skip_fields=tuple(skip_fields),
            initial_filters=filters,
            initial_meta=meta,
            initial_previous_context=previous_context,
            initial_skip_fields=tuple(skip_fields),
        )

    def apply(self, patch: dict | None) -> "TurnState":
        if not patch:
            return self
        return dataclasses.replace(self, **patch)

    def rollback_patch(self) -> dict:
        """Patch restoring the filter-related fields to their pre-turn values."""
        return {
            "filters": self.initial_filters,
            "meta": self.initial_meta,
            "previous_context": self.initial_previous_context,
            "skip_fields": self.initial_skip_fields,
        }
