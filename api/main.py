"""FastAPI application for the conversational search API."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from search_agent.config import Settings, load_settings
from search_agent.data_loader import Dataset
from search_agent.graph import SearchAgent
from search_agent.oracle import Oracle, OpenAIOracle
from search_agent.search_engine import SearchEngine
from search_agent.service import ChatService
from search_agent.session_store import SessionStore
from search_agent.token_tracker import TokenTracker

from .routes import router

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


async def _reap_forever(store: SessionStore, interval: float, max_age: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await store.reap(max_age)


def create_app(settings: Settings = settings, oracle: Oracle | None = None) -> FastAPI:
    """Build the app; pass an oracle to bypass the OpenAI client (tests, demos)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Loading dataset...")
        dataset = Dataset.load()
        engine = SearchEngine(dataset)

        app.state.settings = settings
        app.state.tracker = TokenTracker(settings.token_usage_path)
        app.state.oracle = oracle or OpenAIOracle.from_settings(settings, app.state.tracker)

        store = SessionStore(settings.session_snapshot_path)
        await store.open()
        agent = SearchAgent(
            app.state.oracle,
            engine,
            stream_responses=settings.stream_responses,
            turn_timeout=settings.turn_timeout_seconds,
        )
        app.state.service = ChatService(store, agent)

        reaper = asyncio.create_task(
            _reap_forever(store, settings.session_reap_interval_seconds, settings.session_max_age_seconds)
        )
        logger.info("Ready: %d people, %d companies, model=%s",
                    len(dataset.people), len(dataset.companies), settings.openai_model)
        try:
            yield
        finally:
            reaper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reaper
            await store.close()
            if oracle is None:
                await app.state.oracle.close()

    app = FastAPI(title="People Search Agent API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id"],
    )

    app.include_router(router)
    return app


app = create_app()
