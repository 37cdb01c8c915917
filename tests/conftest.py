"""Fixtures for company-research tests."""

from __future__ import annotations

import re

import logfire
import pytest

from company_research.config import Settings
from company_research.errors import ProviderError
from company_research.models import Image, SearchResponse, Source
from company_research.providers import ModelBackend, ProviderRegistry, SearchBackend

logfire.configure(send_to_logfire=False, console=False)


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModel:
    """ModelProvider double. `reply` may be a string or a function of the prompt."""

    def __init__(self, reply="A finding.", chunks=None, fail: Exception | None = None, stream_fail: Exception | None = None):
        self.reply = reply
        self.chunks = chunks
        self.fail = fail
        self.stream_fail = stream_fail
        self.calls: list[dict] = []
        self.stream_calls: list[dict] = []

    async def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000) -> str:
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.fail:
            raise self.fail
        return self.reply(prompt) if callable(self.reply) else self.reply

    async def complete_stream(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 4000):
        self.stream_calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        for chunk in self.chunks if self.chunks is not None else [self.reply]:
            yield chunk
        if self.stream_fail:
            raise self.stream_fail


class FakeSearch:
    """SearchProvider double: one source and one image per query, unique by query."""

    def __init__(self, fail_when=None, empty_when=None):
        self.fail_when = fail_when
        self.empty_when = empty_when
        self.queries: list[str] = []

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        self.queries.append(query)
        if self.fail_when and self.fail_when(query):
            raise ProviderError("fake", f"search failed for {query}")
        if self.empty_when and self.empty_when(query):
            return SearchResponse()
        slug = re.sub(r"\W+", "-", query.lower()).strip("-")
        return SearchResponse(
            sources=[Source(title=query, url=f"https://example.com/{slug}", snippet=f"About {query}")],
            images=[Image(url=f"https://images.example.com/{slug}.png", description=query)],
        )


def fake_settings(**overrides) -> Settings:
    values = dict(
        THINKING_PROVIDER="fake",
        THINKING_MODEL="thinker",
        TASK_PROVIDER="fake",
        TASK_MODEL="tasker",
        SEARCH_PROVIDER="fake",
        CACHE_PATH="",
    )
    values.update(overrides)
    return Settings(**values)


def fake_registry(settings: Settings, thinking: FakeModel, task: FakeModel, search: FakeSearch) -> ProviderRegistry:
    models = {"thinker": thinking, "tasker": task}
    return ProviderRegistry(
        settings,
        model_backends={"fake": ModelBackend(lambda model_id, api_key: models[model_id])},
        search_backends={"fake": SearchBackend(lambda api_key: search)},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return fake_settings()


@pytest.fixture
def thinking_model() -> FakeModel:
    return FakeModel(
        reply="Weigh fundamentals over hype.",
        chunks=["# Report\n\n## Company Overview\nAcme builds ", "rockets.\n"],
    )


@pytest.fixture
def task_model() -> FakeModel:
    return FakeModel(reply="A finding.")


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def registry(settings, thinking_model, task_model, search) -> ProviderRegistry:
    return fake_registry(settings, thinking_model, task_model, search)
