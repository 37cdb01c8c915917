import asyncio

import pytest

from company_research.events import ErrorEvent, ProgressEvent
from company_research.executor import SearchTaskExecutor
from company_research.models import SearchResponse, SearchTask

from conftest import FakeModel, FakeSearch


def _task(query: str) -> SearchTask:
    return SearchTask(query=query, research_goal="Understand Acme", section="companyOverview", priority="high")


@pytest.mark.asyncio
async def test_run_synthesizes_learning_from_sources():
    model = FakeModel(reply="Acme sells rockets.")
    executor = SearchTaskExecutor("Acme", FakeSearch(), model, depth="deep")

    result = await executor.run(_task("Acme products"))

    assert result.learning == "Acme sells rockets."
    assert len(result.sources) == 1
    assert not result.failed
    assert model.calls[0]["temperature"] == 0.3
    assert model.calls[0]["max_tokens"] == 1000
    assert "Acme products" in model.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_run_without_sources_skips_the_model():
    model = FakeModel()
    executor = SearchTaskExecutor("Acme", FakeSearch(empty_when=lambda q: True), model)

    result = await executor.run(_task("Acme obscure"))

    assert result.sources == ()
    assert result.learning == ""
    assert model.calls == []


@pytest.mark.asyncio
async def test_run_degrades_on_search_failure():
    events = []
    executor = SearchTaskExecutor("Acme", FakeSearch(fail_when=lambda q: True), FakeModel(), on_event=events.append)

    result = await executor.run(_task("Acme broken"))

    assert result.failed
    assert result.sources == ()
    errors = [e for e in events if isinstance(e, ErrorEvent)]
    assert len(errors) == 1
    assert "Acme broken" in errors[0].message
    assert events[-1] == ProgressEvent(
        step="search-execution", status="task-complete", message="Completed: Acme broken (1/1)"
    )


@pytest.mark.asyncio
async def test_run_degrades_on_model_failure():
    executor = SearchTaskExecutor("Acme", FakeSearch(), FakeModel(fail=RuntimeError("quota")))
    result = await executor.run(_task("Acme products"))
    assert result.error == "quota"
    assert result.sources == ()


@pytest.mark.asyncio
async def test_run_all_keeps_task_order_and_bounds_concurrency():
    in_flight = 0
    peak = 0

    class SlowSearch:
        async def search(self, query, max_results=5):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01 if query.endswith("0") else 0)
            in_flight -= 1
            return SearchResponse()

    tasks = [_task(f"query {i}") for i in range(7)]
    executor = SearchTaskExecutor("Acme", SlowSearch(), FakeModel(), max_parallel=2)

    results = await executor.run_all(tasks)

    assert [r.task.query for r in results] == [t.query for t in tasks]
    assert peak <= 2


@pytest.mark.asyncio
async def test_run_all_reports_start_and_completion():
    events = []
    executor = SearchTaskExecutor(
        "Acme", FakeSearch(fail_when=lambda q: "b" in q), FakeModel(), on_event=events.append
    )

    await executor.run_all([_task("a"), _task("b")])

    progress = [e for e in events if isinstance(e, ProgressEvent)]
    assert progress[0].status == "start"
    assert progress[-1].status == "complete"
    assert progress[-1].message == "Completed 1 of 2 searches"
