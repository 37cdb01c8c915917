"""Model and search provider capabilities, selected by id from lookup tables.

Every vendor sits behind one of two small interfaces:

- `ModelProvider.complete` / `complete_stream` (a pydantic-ai Agent underneath)
- `SearchProvider.search` (DuckDuckGo by default)

`ProviderRegistry` turns a `ModelSelection` or search provider id into an
instance, resolving credentials (request first, then server settings) and
raising ConfigurationError naming the missing setting before any call.
"""
from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import anyio.to_thread
import logfire
from pydantic_ai import Agent

from .config import Settings
from .errors import ConfigurationError, ProviderError
from .models import Image, ModelSelection, SearchResponse, Source


class ModelProvider(Protocol):
    async def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000) -> str: ...

    def complete_stream(
        self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000
    ) -> AsyncIterator[str]: ...


class SearchProvider(Protocol):
    async def search(self, query: str, max_results: int = 5) -> SearchResponse: ...


class PydanticAIModelProvider:
    """ModelProvider backed by a pydantic-ai Agent. Failures surface as ProviderError."""

    def __init__(
        self,
        model: Any,
        system_prompt: str = "You are a meticulous investment research analyst.",
        name: str | None = None,
    ):
        self.agent = Agent(model, system_prompt=system_prompt)
        self.name = name or getattr(model, "system", None) or "model"

    async def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000) -> str:
        try:
            result = await self.agent.run(
                prompt, model_settings={"temperature": temperature, "max_tokens": max_tokens}
            )
        except Exception as e:
            raise ProviderError(self.name, str(e) or type(e).__name__) from e
        return result.output if isinstance(result.output, str) else str(result.output)

    async def complete_stream(
        self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000
    ) -> AsyncIterator[str]:
        try:
            async with self.agent.run_stream(
                prompt, model_settings={"temperature": temperature, "max_tokens": max_tokens}
            ) as result:
                async for delta in result.stream_text(delta=True):
                    yield delta
        except Exception as e:
            raise ProviderError(self.name, str(e) or type(e).__name__) from e


class DuckDuckGoSearchProvider:
    """Web and image search through the `ddgs` client.

    The client is synchronous, so calls run in a worker thread.
    """

    def __init__(self, client_factory: Callable[[], Any] | None = None, include_images: bool = True):
        if client_factory is None:
            from ddgs import DDGS

            client_factory = DDGS
        self._client_factory = client_factory
        self.include_images = include_images

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        return await anyio.to_thread.run_sync(self._search_sync, query, max_results)

    def _search_sync(self, query: str, max_results: int) -> SearchResponse:
        client = self._client_factory()
        try:
            hits = client.text(query, max_results=max_results) or []
        except Exception as e:
            raise ProviderError("duckduckgo", str(e) or type(e).__name__) from e
        sources = [
            Source(title=h.get("title") or "Untitled", url=h["href"], snippet=h.get("body") or "")
            for h in hits
            if h.get("href")
        ]
        images: list[Image] = []
        if self.include_images and sources:
            try:
                pictures = client.images(query, max_results=max(1, max_results // 2)) or []
            except Exception as e:
                # Image search is decoration; a failure here must not lose the sources.
                logfire.debug('Image search failed: {query}', query=query, error=str(e))
                pictures = []
            images = [
                Image(url=p["image"], description=p.get("title") or "")
                for p in pictures
                if p.get("image")
            ]
        return SearchResponse(sources=sources, images=images)


# Model backends

def _openai_compatible(base_url: str | None = None) -> Callable[[str, str | None], ModelProvider]:
    def build(model_id: str, api_key: str | None) -> ModelProvider:
        from pydantic_ai.models.openai import OpenAIChatModel
        from pydantic_ai.providers.openai import OpenAIProvider

        provider = OpenAIProvider(base_url=base_url, api_key=api_key) if base_url else OpenAIProvider(api_key=api_key)
        return PydanticAIModelProvider(OpenAIChatModel(model_id, provider=provider))

    return build


def _anthropic(model_id: str, api_key: str | None) -> ModelProvider:
    from pydantic_ai.models.anthropic import AnthropicModel
    from pydantic_ai.providers.anthropic import AnthropicProvider

    return PydanticAIModelProvider(AnthropicModel(model_id, provider=AnthropicProvider(api_key=api_key)))


def _groq(model_id: str, api_key: str | None) -> ModelProvider:
    from pydantic_ai.models.groq import GroqModel
    from pydantic_ai.providers.groq import GroqProvider

    return PydanticAIModelProvider(GroqModel(model_id, provider=GroqProvider(api_key=api_key)))


def _google(model_id: str, api_key: str | None) -> ModelProvider:
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    return PydanticAIModelProvider(GoogleModel(model_id, provider=GoogleProvider(api_key=api_key)))


def _mistral(model_id: str, api_key: str | None) -> ModelProvider:
    from pydantic_ai.models.mistral import MistralModel
    from pydantic_ai.providers.mistral import MistralProvider

    return PydanticAIModelProvider(MistralModel(model_id, provider=MistralProvider(api_key=api_key)))


@dataclass(frozen=True)
class ModelBackend:
    build: Callable[[str, str | None], ModelProvider]
    env_var: str | None = None
    """Setting holding the server-side credential. None when no credential is needed."""


@dataclass(frozen=True)
class SearchBackend:
    build: Callable[[str | None], SearchProvider]
    env_var: str | None = None


MODEL_PROVIDERS: dict[str, ModelBackend] = {
    "openai": ModelBackend(_openai_compatible(), "OPENAI_API_KEY"),
    "anthropic": ModelBackend(_anthropic, "ANTHROPIC_API_KEY"),
    "groq": ModelBackend(_groq, "GROQ_API_KEY"),
    "google": ModelBackend(_google, "GOOGLE_API_KEY"),
    "mistral": ModelBackend(_mistral, "MISTRAL_API_KEY"),
    "deepseek": ModelBackend(_openai_compatible("https://api.deepseek.com/v1"), "DEEPSEEK_API_KEY"),
    "openrouter": ModelBackend(_openai_compatible("https://openrouter.ai/api/v1"), "OPENROUTER_API_KEY"),
    "xai": ModelBackend(_openai_compatible("https://api.x.ai/v1"), "XAI_API_KEY"),
    "ollama": ModelBackend(_openai_compatible("http://localhost:11434/v1")),
}

SEARCH_PROVIDERS: dict[str, SearchBackend] = {
    "duckduckgo": SearchBackend(lambda api_key: DuckDuckGoSearchProvider()),
}

# (thinking model, task model) used when a provider is named without models.
DEFAULT_MODELS: dict[str, tuple[str, str]] = {
    "openai": ("gpt-4o", "gpt-4o-mini"),
    "anthropic": ("claude-3-5-sonnet-latest", "claude-3-5-haiku-latest"),
    "deepseek": ("deepseek-reasoner", "deepseek-chat"),
    "mistral": ("mistral-large-latest", "mistral-medium-latest"),
    "xai": ("grok-2-1212", "grok-2-mini-1212"),
    "google": ("gemini-2.0-flash", "gemini-1.5-flash"),
    "openrouter": ("anthropic/claude-3.5-sonnet", "anthropic/claude-3.5-haiku"),
    "groq": ("llama-3.3-70b-versatile", "llama-3.1-8b-instant"),
}


def default_selection(provider: str | None, role: str, api_key: str | None = None) -> ModelSelection:
    """Model selection for `role` ('thinking' or 'task') on `provider`, using its default models."""
    provider = provider or "openai"
    thinking, task = DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openai"])
    return ModelSelection(provider=provider, model=thinking if role == "thinking" else task, api_key=api_key)


class ProviderRegistry:
    """Builds provider instances from ids, once per run."""

    def __init__(
        self,
        settings: Settings,
        model_backends: dict[str, ModelBackend] | None = None,
        search_backends: dict[str, SearchBackend] | None = None,
    ):
        self.settings = settings
        self.model_backends = MODEL_PROVIDERS if model_backends is None else model_backends
        self.search_backends = SEARCH_PROVIDERS if search_backends is None else search_backends

    def model(self, selection: ModelSelection | None, role: str) -> ModelProvider:
        if selection is None or not selection.provider or not selection.model:
            raise ConfigurationError(
                f"{role.upper()}_MODEL",
                f"{role.capitalize()} model not configured. Set {role.upper()}_PROVIDER and "
                f"{role.upper()}_MODEL, or pass a {role} model selection.",
            )
        backend = self.model_backends.get(selection.provider)
        if backend is None:
            raise ConfigurationError(
                f"{role.upper()}_PROVIDER",
                f"Unknown {role} model provider {selection.provider!r}. "
                f"Known providers: {', '.join(sorted(self.model_backends))}",
            )
        api_key = self._credential(selection.api_key, backend.env_var, f"{role} model ({selection.provider}/{selection.model})")
        try:
            return backend.build(selection.model, api_key)
        except ImportError as e:
            raise ConfigurationError(
                f"{role.upper()}_PROVIDER",
                f"Failed to initialize {role} model ({selection.provider}/{selection.model}): {e}",
            ) from e

    def search(self, provider_id: str | None, api_key: str | None = None) -> SearchProvider:
        provider_id = provider_id or self.settings.SEARCH_PROVIDER
        backend = self.search_backends.get(provider_id)
        if backend is None:
            raise ConfigurationError(
                "SEARCH_PROVIDER",
                f"Unknown search provider {provider_id!r}. "
                f"Known providers: {', '.join(sorted(self.search_backends)) or 'none'}",
            )
        return backend.build(self._credential(api_key, backend.env_var, f"search provider {provider_id}"))

    def _credential(self, explicit: str | None, env_var: str | None, what: str) -> str | None:
        if explicit:
            return explicit
        if env_var is None:
            return None
        server = getattr(self.settings, env_var, "")
        if not server:
            raise ConfigurationError(env_var, f"No API key found for {what}. Set the {env_var} environment variable.")
        return server
