"""Run the research pipeline for many entities, in fixed-size waves.

Waves run one after another; the entities inside a wave run concurrently
and are all awaited before the next wave starts. The wave size is the one
knob trading throughput against upstream rate limits.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from uuid import uuid4

import logfire

from .events import (
    BatchCompleteEvent,
    BatchEvent,
    BatchProgressEvent,
    BatchStatusEvent,
    EntityCompleteEvent,
    EntityErrorEvent,
    EntityResult,
    EntityStartEvent,
    EntityUpdateEvent,
    EventHandler,
)
from .models import BatchRequest, ResearchReport, ResearchRequest

DEFAULT_WAVE_SIZE = 3

EntityRunner = Callable[[ResearchRequest, EventHandler], Awaitable[ResearchReport]]

_DONE = object()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def waves(items: list[str], size: int) -> list[list[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchCoordinator:
    def __init__(self, runner: EntityRunner, wave_size: int = DEFAULT_WAVE_SIZE):
        if wave_size < 1:
            raise ValueError("wave_size must be at least 1")
        self.runner = runner
        self.wave_size = wave_size

    async def run_batch(self, batch: BatchRequest) -> AsyncIterator[BatchEvent]:
        """Yield per-entity events as they happen, a progress event per wave, then a final summary.

        One entity failing never stops the batch.
        """
        batch_id = uuid4().hex[:12]
        entities = list(batch.entities)
        results = {entity: EntityResult(entity=entity) for entity in entities}
        total = len(entities)
        logfire.info('Batch {batch_id}: starting research for {total} entities', batch_id=batch_id, total=total)

        yield BatchStatusEvent(batch_id=batch_id, total=total, entities=list(results.values()))

        for wave in waves(entities, self.wave_size):
            queue: asyncio.Queue = asyncio.Queue()
            tasks = [
                asyncio.create_task(self._run_entity(batch.request_for(entity), results, queue))
                for entity in wave
            ]
            try:
                pending = len(tasks)
                while pending:
                    event = await queue.get()
                    if event is _DONE:
                        pending -= 1
                    else:
                        yield event
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            completed = sum(1 for r in results.values() if r.status == "completed")
            errors = sum(1 for r in results.values() if r.status == "error")
            yield BatchProgressEvent(
                completed=completed,
                errors=errors,
                total=total,
                percentage=round((completed + errors) / total * 100),
            )

        summary = {
            "completed": sum(1 for r in results.values() if r.status == "completed"),
            "errors": sum(1 for r in results.values() if r.status == "error"),
        }
        logfire.info('Batch {batch_id}: all entities processed', batch_id=batch_id, **summary)
        yield BatchCompleteEvent(batch_id=batch_id, total=total, results=list(results.values()), summary=summary)

    async def _run_entity(
        self, request: ResearchRequest, results: dict[str, EntityResult], queue: asyncio.Queue
    ) -> None:
        entity = request.subject
        started = _now()
        try:
            results[entity] = EntityResult(entity=entity, status="processing", started_at=started)
            queue.put_nowait(EntityStartEvent(entity=entity))

            report = await self.runner(
                request, lambda event: queue.put_nowait(EntityUpdateEvent(entity=entity, event=event))
            )

            results[entity] = EntityResult(
                entity=entity, status="completed", report=report, started_at=started, completed_at=_now()
            )
            queue.put_nowait(EntityCompleteEvent(entity=entity, report=report))
        except Exception as e:
            message = str(e) or type(e).__name__
            logfire.error('Error researching {entity}', entity=entity, error=message)
            results[entity] = EntityResult(
                entity=entity, status="error", error=message, started_at=started, completed_at=_now()
            )
            queue.put_nowait(EntityErrorEvent(entity=entity, message=message))
        finally:
            queue.put_nowait(_DONE)
