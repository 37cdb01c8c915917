"""Entry point tying admission, caching and the pipeline together.

    request -> rate limiter -> validation -> cache probe
            -> (miss) pipeline under a depth-dependent timeout -> cache write

The cache and rate limiter are passed in, so one process shares a single
instance of each across all requests.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import logfire

from .batch import BatchCoordinator
from .cache import ResultCache, estimate_cost_savings, estimate_token_savings
from .config import Settings
from .errors import CacheError
from .events import BatchEvent, CompleteEvent, ErrorEvent, EventHandler
from .fingerprint import request_key
from .models import BatchRequest, CachedResearch, CacheType, ModelSelection, ResearchReport, ResearchRequest
from .providers import ProviderRegistry
from .rate_limit import RATE_LIMITS, RateLimiter, rate_limit_key
from .researcher import CompanyResearcher
from .storage import JsonFileStore
from .validators import validate_batch, validate_request


class ResearchService:
    def __init__(
        self,
        settings: Settings,
        *,
        cache: ResultCache | None = None,
        rate_limiter: RateLimiter | None = None,
        registry: ProviderRegistry | None = None,
    ):
        self.settings = settings
        self.cache = cache if cache is not None else ResultCache(settings.cache_config())
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.registry = registry if registry is not None else ProviderRegistry(settings)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResearchService":
        store = JsonFileStore(settings.CACHE_PATH) if settings.CACHE_PATH else None
        cache = ResultCache(settings.cache_config(), store=store)
        try:
            cache.load()
        except CacheError as e:
            logfire.warn('Could not load the result cache, starting empty', error=str(e))
        return cls(settings, cache=cache)

    def resolve(self, request: ResearchRequest) -> ResearchRequest:
        """Fill in server-side defaults for the models and search provider the request leaves out."""
        update = {}
        if request.thinking_model is None:
            update["thinking_model"] = self._default_model(self.settings.THINKING_PROVIDER, self.settings.THINKING_MODEL)
        if request.task_model is None:
            update["task_model"] = self._default_model(self.settings.TASK_PROVIDER, self.settings.TASK_MODEL)
        if request.search_provider is None and request.depth != "fast" and self.settings.SEARCH_PROVIDER:
            update["search_provider"] = self.settings.SEARCH_PROVIDER
        return request.model_copy(update=update) if update else request

    @staticmethod
    def _default_model(provider: str, model: str) -> ModelSelection | None:
        return ModelSelection(provider=provider, model=model) if provider and model else None

    async def research(
        self,
        request: ResearchRequest,
        *,
        caller: str | None = None,
        route: str = "company-research",
        on_event: EventHandler | None = None,
        ttl: float | None = None,
    ) -> ResearchReport:
        """Research one subject. Raises CapacityError, ValidationError or ConfigurationError up front."""
        self.rate_limiter.enforce(rate_limit_key(caller, route), RATE_LIMITS["default"])
        validate_request(request)
        return await self.run_one(self.resolve(request), on_event, ttl=ttl)

    def research_batch(
        self,
        batch: BatchRequest,
        *,
        caller: str | None = None,
        route: str = "bulk-company-research",
    ) -> AsyncIterator[BatchEvent]:
        """Admit and validate now, then return the batch's event stream."""
        self.rate_limiter.enforce(rate_limit_key(caller, route), RATE_LIMITS["default"])
        entities = validate_batch(list(batch.entities), self.settings.MAX_BATCH_ENTITIES)
        batch = batch.model_copy(update={"entities": tuple(entities)})

        async def run_entity(request: ResearchRequest, on_event: EventHandler) -> ResearchReport:
            return await self.run_one(self.resolve(request), on_event, cache_type="bulk-company-research")

        coordinator = BatchCoordinator(run_entity, wave_size=self.settings.BATCH_WAVE_SIZE)
        return coordinator.run_batch(batch)

    async def run_one(
        self,
        request: ResearchRequest,
        on_event: EventHandler | None = None,
        *,
        cache_type: CacheType = "company-research",
        ttl: float | None = None,
    ) -> ResearchReport:
        """Cache probe, then the pipeline under its depth timeout, then cache write.

        A cancelled or timed-out run never reaches the cache write.
        """
        def emit(event) -> None:
            if on_event:
                on_event(event)

        use_cache = self.cache.config.enabled
        key = request_key(request)

        if use_cache:
            cached = self._cache_lookup(key, request, cache_type, emit)
            if cached is not None:
                emit(CompleteEvent(report=cached, cached=True))
                return cached

        researcher = CompanyResearcher(
            request,
            self.registry,
            max_parallel_searches=self.settings.MAX_PARALLEL_SEARCHES,
            on_event=on_event,
        )
        report = await asyncio.wait_for(researcher.run(), timeout=self.settings.timeout_for(request.depth))

        if use_cache:
            self._cache_store(key, request, cache_type, report, ttl, emit)
        emit(CompleteEvent(report=report))
        return report

    def _cache_lookup(self, key: str, request: ResearchRequest, cache_type: CacheType, emit) -> ResearchReport | None:
        try:
            entry = self.cache.get(key)
            if entry is None:
                self.cache.record_miss()
                return None
            provider = request.thinking_model.provider if request.thinking_model else "openai"
            self.cache.record_hit(
                key,
                cost_savings=estimate_cost_savings(provider, cache_type, request.depth),
                token_savings=estimate_token_savings(cache_type, request.depth),
            )
        except CacheError as e:
            logfire.warn('Cache read failed for {key}', key=key, error=str(e))
            emit(ErrorEvent(message=f"Cache unavailable, running uncached: {e}"))
            return None
        logfire.info('Cache hit for {key}', key=key)
        return entry.data.report

    def _cache_store(
        self, key: str, request: ResearchRequest, cache_type: CacheType, report: ResearchReport, ttl, emit
    ) -> None:
        try:
            self.cache.set(
                key,
                cache_type,
                CachedResearch(report=report, metadata={"depth": request.depth, "language": request.language}),
                request_params={
                    "subject": request.subject,
                    "depth": request.depth,
                    "provider": request.thinking_model.provider if request.thinking_model else None,
                    "model": request.thinking_model.model if request.thinking_model else None,
                },
                ttl=ttl,
            )
        except CacheError as e:
            logfire.warn('Cache write failed for {key}', key=key, error=str(e))
            emit(ErrorEvent(message=f"Could not cache the report: {e}"))
