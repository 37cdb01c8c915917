import pytest

from company_research.errors import ConfigurationError, ReportWritingError
from company_research.events import ErrorEvent, MessageEvent, ReasoningEvent
from company_research.models import ModelSelection, ResearchRequest, SearchTask, SearchTaskResult, Source
from company_research.providers import ModelBackend, ProviderRegistry
from company_research.researcher import CompanyResearcher, default_plan, format_findings, unique_by_url

from conftest import FakeModel, FakeSearch, fake_registry

THINKER = ModelSelection(provider="fake", model="thinker")
TASKER = ModelSelection(provider="fake", model="tasker")


def _request(**overrides) -> ResearchRequest:
    values = dict(subject="Acme", thinking_model=THINKER, task_model=TASKER, search_provider="fake")
    values.update(overrides)
    return ResearchRequest(**values)


@pytest.mark.asyncio
async def test_fast_run_makes_one_model_call_and_no_searches(settings, thinking_model):
    task_model = FakeModel(reply="Acme is a rocket company.")
    registry = ProviderRegistry(
        settings,
        model_backends={"fake": ModelBackend(lambda m, k: {"thinker": thinking_model, "tasker": task_model}[m])},
        search_backends={},
    )
    events = []

    report = await CompanyResearcher(_request(depth="fast"), registry, on_event=events.append).run()

    assert report.title == "Acme - Quick Analysis"
    assert report.content == "Acme is a rocket company."
    assert report.sources == () and report.images == () and report.sections == {}
    assert len(task_model.calls) == 1
    assert task_model.calls[0]["temperature"] == 0.7
    assert task_model.calls[0]["max_tokens"] == 4000
    assert thinking_model.calls == [] and thinking_model.stream_calls == []
    assert any(isinstance(e, MessageEvent) for e in events)


@pytest.mark.asyncio
async def test_fast_run_failure_is_fatal(settings, thinking_model, search):
    registry = fake_registry(settings, thinking_model, FakeModel(fail=RuntimeError("down")), search)
    with pytest.raises(ReportWritingError):
        await CompanyResearcher(_request(depth="fast"), registry).run()


@pytest.mark.asyncio
async def test_fast_run_rejects_empty_output(settings, thinking_model, search):
    registry = fake_registry(settings, thinking_model, FakeModel(reply="  "), search)
    with pytest.raises(ReportWritingError):
        await CompanyResearcher(_request(depth="fast"), registry).run()


@pytest.mark.asyncio
async def test_medium_run_streams_report_over_findings(registry, thinking_model, task_model, search):
    request = _request(depth="medium", website="acme.com", competitors=("Globex",))

    report = await CompanyResearcher(request, registry).run()

    assert report.title == "Acme - Investment Analysis"
    assert len(search.queries) == 5
    assert len(task_model.calls) == 5
    assert len(report.sources) == 5
    assert len(report.images) == 5
    assert thinking_model.stream_calls[0]["temperature"] == 0.5
    assert thinking_model.stream_calls[0]["max_tokens"] == 5000
    assert "A finding." in thinking_model.stream_calls[0]["prompt"]


@pytest.mark.asyncio
async def test_deep_run_survives_failed_searches(settings, thinking_model, task_model):
    search = FakeSearch(fail_when=lambda q: " vs " in q)
    registry = fake_registry(settings, thinking_model, task_model, search)
    events = []
    request = _request(depth="deep", competitors=("Globex", "Initech"))

    report = await CompanyResearcher(request, registry, on_event=events.append).run()

    assert len(search.queries) == 12
    assert len(report.sources) == 10
    assert len([e for e in events if isinstance(e, ErrorEvent)]) == 2
    assert report.title == "Acme - Comprehensive Investment Analysis"
    assert report.sections == {"companyOverview": "Acme builds rockets."}
    assert thinking_model.stream_calls[0]["max_tokens"] == 8000


@pytest.mark.asyncio
async def test_deep_run_falls_back_to_default_plan(settings, task_model, search):
    thinking = FakeModel(fail=RuntimeError("planner down"), chunks=["## Company Overview\nFine."])
    registry = fake_registry(settings, thinking, task_model, search)
    events = []
    researcher = CompanyResearcher(_request(depth="deep"), registry, on_event=events.append)

    report = await researcher.run()

    assert researcher.plan == default_plan("Acme")
    assert any(isinstance(e, ErrorEvent) and "planning" in e.message for e in events)
    assert report.sections == {"companyOverview": "Fine."}


@pytest.mark.asyncio
async def test_reasoning_is_kept_out_of_the_report(settings, task_model, search):
    thinking = FakeModel(reply="plan", chunks=["<think>weighing", " options</think>", "Final report."])
    registry = fake_registry(settings, thinking, task_model, search)
    events = []

    report = await CompanyResearcher(_request(depth="medium"), registry, on_event=events.append).run()

    assert report.content == "Final report."
    assert "".join(e.content for e in events if isinstance(e, ReasoningEvent)) == "weighing options"


@pytest.mark.asyncio
async def test_failed_final_synthesis_is_fatal(settings, task_model, search):
    thinking = FakeModel(chunks=["partial"], stream_fail=RuntimeError("connection reset"))
    registry = fake_registry(settings, thinking, task_model, search)
    with pytest.raises(ReportWritingError):
        await CompanyResearcher(_request(depth="medium"), registry).run()


@pytest.mark.asyncio
async def test_missing_model_is_a_configuration_error(registry, search):
    with pytest.raises(ConfigurationError) as exc:
        await CompanyResearcher(_request(thinking_model=None), registry).run()
    assert exc.value.setting == "THINKING_MODEL"
    assert search.queries == []


@pytest.mark.asyncio
async def test_researcher_runs_once(registry):
    researcher = CompanyResearcher(_request(depth="fast"), registry)
    await researcher.run()
    with pytest.raises(RuntimeError):
        await researcher.run()


def test_unique_by_url_keeps_first_occurrence_and_caps():
    sources = [Source(title=t, url=u) for t, u in [("a", "1"), ("b", "2"), ("c", "1"), ("d", "3")]]
    assert [s.title for s in unique_by_url(sources, 2)] == ["a", "b"]


def test_format_findings_groups_by_section():
    task = SearchTask(query="q", research_goal="Know Acme", section="companyOverview")
    results = [SearchTaskResult(task=task, learning="Acme builds rockets."), SearchTaskResult(task=task)]
    text = format_findings(results, [Source(title="Home", url="https://acme.com")], by_section=True)
    assert text.startswith("## Company Overview\n[Know Acme]\nAcme builds rockets.")
    assert "[1] Home - https://acme.com" in text
    assert format_findings([SearchTaskResult(task=task)], [], by_section=False) == ""
