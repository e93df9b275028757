#!/usr/bin/env python3
"""
Search agent demo: a multi-turn conversation in the terminal.

Usage:
    python demo.py              # interactive REPL
    python demo.py --scripted   # run a predefined conversation
"""

import asyncio
import logging
import sys

from search_agent import events
from search_agent.config import load_settings
from search_agent.data_loader import Dataset
from search_agent.filters import format_filters
from search_agent.graph import SearchAgent
from search_agent.oracle import OpenAIOracle
from search_agent.search_engine import SearchEngine
from search_agent.service import ChatService
from search_agent.session_store import SessionStore
from search_agent.token_tracker import TokenTracker


async def _send(service: ChatService, session_id: str, message: str) -> None:
    """Run one turn, printing the reply as it streams and the filters after it."""
    async for event in service.stream_message(session_id, message):
        if event.type == events.CONTENT:
            print(event.data["chunk"], end="", flush=True)
        elif event.type == events.FILTERS:
            state = event.state
            print()
            print(f"\n  Domain: {state.meta.domain}  Completeness: {state.meta.completeness_score}%")
            if not state.filters.is_empty():
                print("  Filters:")
                print("\n".join(f"    {line}" for line in format_filters(state.filters).splitlines()))
        elif event.type == events.ERROR:
            print(f"\n  [error] {event.data['message']}")


async def run_interactive(service: ChatService):
    session = await service.create_session()
    print("\nDescribe who or what you're looking for (or 'quit' to exit, 'new' to start over):\n")

    while True:
        try:
            message = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not message:
            continue
        if message.lower() in ("quit", "exit", "q"):
            break
        if message.lower() == "new":
            await service.store.clear_filters(session.session_id)
            print("  (filters cleared)\n")
            continue

        print("agent> ", end="")
        await _send(service, session.session_id, message)
        print()


SCRIPTED_CONVERSATION = [
    "Find CTOs in Singapore",
    "in fintech",
    "yes",
    "now find companies",
    "any",
    "Find engineers in the Bay Area with 5+ years of experience",
    "go ahead",
]


async def run_scripted(service: ChatService):
    session = await service.create_session()
    for i, message in enumerate(SCRIPTED_CONVERSATION, 1):
        print(f"\n{'═' * 60}")
        print(f"  Turn {i}: \"{message}\"")
        print(f"{'═' * 60}")
        await _send(service, session.session_id, message)


async def main():
    settings = load_settings()
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    print("Loading dataset...")
    dataset = Dataset.load()
    tracker = TokenTracker(settings.token_usage_path)
    oracle = OpenAIOracle.from_settings(settings, tracker)
    agent = SearchAgent(
        oracle,
        SearchEngine(dataset),
        stream_responses=settings.stream_responses,
        turn_timeout=settings.turn_timeout_seconds,
    )
    service = ChatService(SessionStore(), agent)
    print(f"Ready: {len(dataset.people)} people, {len(dataset.companies)} companies.\n")

    try:
        if "--scripted" in sys.argv:
            await run_scripted(service)
        else:
            await run_interactive(service)
    finally:
        await oracle.close()

    tracker.write_report()
    s = tracker.summary()
    print(f"\nToken usage: {s['total_calls']} API calls, ${s['total_cost_usd']:.6f} total cost")
    print("Report written to TOKENS.md")


if __name__ == "__main__":
    asyncio.run(main())
