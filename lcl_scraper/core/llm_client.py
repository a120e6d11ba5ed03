"""LLM provider chain: Groq first, OpenAI-compatible second.

Providers are tried in order and the first non-empty answer wins. Failures
are returned as ``ProviderFailure`` values, never raised to the caller.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from groq import AsyncGroq
from openai import AsyncOpenAI

from lcl_scraper.config import Settings, get_settings
from lcl_scraper.core.exceptions import LLMError
from lcl_scraper.logging import get_logger
from lcl_scraper.utils.text import strip_code_fences

logger = get_logger(__name__)


@dataclass
class ProviderFailure:
    provider: str
    error: str


@dataclass
class LLMResult:
    """Outcome of running the provider chain once."""

    content: str | None = None
    provider: str | None = None
    failures: list[ProviderFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.content is not None

    def parse_json(self) -> Any | None:
        """JSON payload with ```json fences removed, or None if malformed."""
        if not self.content:
            return None
        try:
            return json.loads(strip_code_fences(self.content))
        except json.JSONDecodeError as e:
            logger.warning(
                "llm_json_error",
                provider=self.provider,
                error=str(e),
                content=self.content[:200],
            )
            return None


class LLMProvider(ABC):
    """One chat-completion backend."""

    name = "base"

    def __init__(self, api_key: str, model: str, timeout: float = 30.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @abstractmethod
    async def complete(
        self, system: str, user: str, temperature: float = 0.1, max_tokens: int = 768
    ) -> str | None:
        """Return the raw completion text; may raise on transport errors."""


class GroqProvider(LLMProvider):
    name = "groq"

    def __init__(self, api_key: str, model: str, timeout: float = 30.0):
        super().__init__(api_key, model, timeout)
        self._client: AsyncGroq | None = None

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of Groq client."""
        if self._client is None:
            self._client = AsyncGroq(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def complete(
        self, system: str, user: str, temperature: float = 0.1, max_tokens: int = 768
    ) -> str | None:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        base_url: str | None = None,
    ):
        super().__init__(api_key, model, timeout)
        self.base_url = base_url
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI (or compatible) client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key, base_url=self.base_url, timeout=self.timeout
            )
        return self._client

    async def complete(
        self, system: str, user: str, temperature: float = 0.1, max_tokens: int = 768
    ) -> str | None:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content


def providers_from_settings(settings: Settings) -> list[LLMProvider]:
    """Configured providers in fallback order."""
    providers: list[LLMProvider] = []
    if settings.groq_api_key:
        providers.append(
            GroqProvider(settings.groq_api_key, settings.groq_model, settings.llm_timeout)
        )
    if settings.openai_api_key:
        providers.append(
            OpenAIProvider(
                settings.openai_api_key,
                settings.openai_model,
                settings.llm_timeout,
                base_url=settings.openai_base_url,
            )
        )
    return providers


class LLMClient:
    """Ordered chain of fallible providers with short-circuit on first success."""

    def __init__(
        self,
        providers: list[LLMProvider] | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.providers = (
            providers if providers is not None else providers_from_settings(self.settings)
        )

    @property
    def is_enabled(self) -> bool:
        return bool(self.providers)

    async def _call(
        self, provider: LLMProvider, system: str, user: str, temperature: float, max_tokens: int
    ) -> str:
        try:
            content = await asyncio.wait_for(
                provider.complete(system, user, temperature, max_tokens),
                timeout=provider.timeout + 5,
            )
        except asyncio.TimeoutError as e:
            raise LLMError("timeout", model=provider.model, provider=provider.name) from e
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(str(e), model=provider.model, provider=provider.name) from e
        if not content or not content.strip():
            raise LLMError("empty response", model=provider.model, provider=provider.name)
        return content

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_tokens: int = 768,
    ) -> LLMResult:
        result = LLMResult()
        for provider in self.providers:
            try:
                result.content = await self._call(provider, system, user, temperature, max_tokens)
            except LLMError as e:
                logger.warning("llm_provider_failed", provider=provider.name, error=e.message)
                result.failures.append(ProviderFailure(provider.name, e.message))
                continue
            result.provider = provider.name
            logger.debug("llm_completed", provider=provider.name, chars=len(result.content))
            return result

        if not self.providers:
            result.failures.append(ProviderFailure("none", "no LLM provider configured"))
        return result


# Singleton
_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get singleton LLM client instance."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
