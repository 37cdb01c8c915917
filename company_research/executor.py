"""Runs one search task end to end: search call, then synthesis call.

`run` never raises for provider failures. A failed task comes back as a
SearchTaskResult with no sources and an `error`, so sibling tasks and the
pipeline keep going with partial data.
"""
from __future__ import annotations

import asyncio

import logfire

from .events import ErrorEvent, EventHandler, ProgressEvent
from .models import Depth, SearchTask, SearchTaskResult
from .prompts import learning_prompt
from .providers import ModelProvider, SearchProvider

MAX_RESULTS: dict[Depth, int] = {"fast": 0, "medium": 5, "deep": 10}
LEARNING_TEMPERATURE = 0.3
LEARNING_MAX_TOKENS = 1000


class SearchTaskExecutor:
    def __init__(
        self,
        subject: str,
        search_provider: SearchProvider,
        task_model: ModelProvider,
        *,
        depth: Depth = "medium",
        max_parallel: int = 5,
        on_event: EventHandler | None = None,
    ):
        self.subject = subject
        self.search_provider = search_provider
        self.task_model = task_model
        self.max_results = MAX_RESULTS[depth] or MAX_RESULTS["medium"]
        self.max_parallel = max(1, max_parallel)
        self.on_event = on_event

    def _emit(self, event) -> None:
        if self.on_event:
            self.on_event(event)

    @logfire.instrument('Search task: {task.query}')
    async def run(self, task: SearchTask, index: int = 1, total: int = 1) -> SearchTaskResult:
        self._emit(ProgressEvent(
            step="search-execution",
            status="processing",
            message=f"Searching: {task.query} ({index}/{total})",
        ))
        try:
            response = await self.search_provider.search(task.query, self.max_results)

            if not response.sources:
                logfire.info('No results for query: {query}', query=task.query)
                result = SearchTaskResult(task=task)
            else:
                prompt = learning_prompt(self.subject, task.research_goal, task.section, response.sources)
                learning = await self.task_model.complete(
                    prompt, temperature=LEARNING_TEMPERATURE, max_tokens=LEARNING_MAX_TOKENS
                )
                result = SearchTaskResult(
                    task=task,
                    sources=tuple(response.sources),
                    images=tuple(response.images),
                    learning=learning,
                )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logfire.warn('Search task failed: {query}', query=task.query, error=reason)
            self._emit(ErrorEvent(message=f'Search failed for "{task.query}": {reason}'))
            result = SearchTaskResult(task=task, error=reason)

        self._emit(ProgressEvent(
            step="search-execution",
            status="task-complete",
            message=f"Completed: {task.query} ({index}/{total})",
        ))
        return result

    async def run_all(self, tasks: list[SearchTask]) -> list[SearchTaskResult]:
        """Run every task with at most `max_parallel` in flight.

        Returns one result per task, in task order, once all have settled.
        """
        semaphore = asyncio.Semaphore(self.max_parallel)
        total = len(tasks)

        async def bounded(i: int, task: SearchTask) -> SearchTaskResult:
            async with semaphore:
                return await self.run(task, i, total)

        self._emit(ProgressEvent(step="search-execution", status="start", message=f"Executing {total} searches..."))
        results = await asyncio.gather(*(bounded(i, t) for i, t in enumerate(tasks, 1)))
        succeeded = sum(1 for r in results if not r.failed)
        self._emit(ProgressEvent(
            step="search-execution",
            status="complete",
            message=f"Completed {succeeded} of {total} searches",
            percentage=100.0,
        ))
        return list(results)

