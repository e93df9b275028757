"""
Text-completion oracle backed by the OpenAI chat completions API.

Two entry points: invoke() returns the whole reply, stream() yields text
chunks as they arrive. Every failure (missing API key, transport error,
timeout, empty reply) surfaces as OracleError so call sites can fall back.
"""

import asyncio
import logging
from typing import AsyncIterator, Protocol

from openai import AsyncOpenAI, OpenAIError

from .config import Settings
from .errors import OracleError
from .token_tracker import TokenTracker

logger = logging.getLogger(__name__)

INTENT_CLASSIFICATION = "intent_classification"
QUERY_REWRITE = "query_rewrite"
FILTER_EXTRACTION = "filter_extraction"
RESPONSE_GENERATION = "response_generation"


class Oracle(Protocol):
    async def invoke(self, system_prompt: str, user_prompt: str, purpose: str) -> str: ...

    def stream(self, system_prompt: str, user_prompt: str, purpose: str) -> AsyncIterator[str]: ...


class OpenAIOracle:
    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        temperature: float = 0.1,
        timeout: float = 30.0,
        tracker: TokenTracker | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.tracker = tracker or TokenTracker()
        self._client = None
        if api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        else:
            logger.warning("OPENAI_API_KEY not set; all oracle calls will use fallbacks")

    @classmethod
    def from_settings(cls, settings: Settings, tracker: TokenTracker | None = None) -> "OpenAIOracle":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            temperature=settings.temperature,
            timeout=settings.oracle_timeout_seconds,
            tracker=tracker,
        )

    def _messages(self, system_prompt: str, user_prompt: str) -> list[dict]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise OracleError("OPENAI_API_KEY is not set")
        return self._client

    async def invoke(self, system_prompt: str, user_prompt: str, purpose: str) -> str:
        client = self._require_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=self._messages(system_prompt, user_prompt),
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise OracleError(f"{purpose} call timed out after {self.timeout:.0f}s") from e
        except OpenAIError as e:
            raise OracleError(f"{purpose} call failed: {e}") from e

        usage = response.usage
        if usage is not None:
            self.tracker.log(
                model=self.model,
                purpose=purpose,
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
            )

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise OracleError(f"{purpose} call returned an empty reply")
        return content.strip()

    async def stream(self, system_prompt: str, user_prompt: str, purpose: str) -> AsyncIterator[str]:
        client = self._require_client()
        try:
            stream = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=self._messages(system_prompt, user_prompt),
                    temperature=self.temperature,
                    stream=True,
                    stream_options={"include_usage": True},
                ),
                timeout=self.timeout,
            )
            # Closed on every exit, including a consumer that stops reading
            async with stream:
                chunks = stream.__aiter__()
                while True:
                    try:
                        chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.timeout)
                    except StopAsyncIteration:
                        break
                    if chunk.usage is not None:
                        self.tracker.log(
                            model=self.model,
                            purpose=purpose,
                            input_tokens=chunk.usage.prompt_tokens,
                            output_tokens=chunk.usage.completion_tokens,
                        )
                    if chunk.choices and chunk.choices[0].delta.content:
                        yield chunk.choices[0].delta.content
        except TimeoutError as e:
            raise OracleError(f"{purpose} stream timed out after {self.timeout:.0f}s") from e
        except OpenAIError as e:
            raise OracleError(f"{purpose} stream failed: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
