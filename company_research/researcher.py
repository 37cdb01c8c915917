"""Depth-aware company research pipeline.

All three depths share one forward-only shape, `init -> plan -> search ->
synthesize -> done`, and differ in which steps do any work:

- fast: init -> synthesize. One task-model call over the request context.
- medium: a fixed handful of searches, then a streamed thinking-model report.
- deep: a thinking-model plan, many searches per section, then a streamed,
  sectioned report.

Failed searches degrade to empty results; only configuration problems and
a failed final synthesis stop a run.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

import logfire

from .errors import PlanningError, ReportWritingError
from .events import ErrorEvent, EventHandler, MessageEvent, ProgressEvent, ReasoningEvent
from .executor import SearchTaskExecutor
from .models import (
    Image,
    PlannedSection,
    ResearchPlan,
    ResearchReport,
    ResearchRequest,
    SearchTaskResult,
    Source,
)
from .prompts import deep_report_prompt, fast_research_prompt, medium_report_prompt, plan_prompt
from .providers import ModelProvider, ProviderRegistry, SearchProvider
from .queries import deep_search_tasks, medium_search_tasks
from .sections import (
    INVESTMENT_RESEARCH_SECTIONS,
    extract_section_focus,
    parse_sections,
    section_priority,
    section_title,
)
from .streaming import ThinkTagStreamDecoder

STATES = ("init", "plan", "search", "synthesize", "done")

SOURCE_LIMITS = {"medium": 30, "deep": 50}
IMAGE_LIMITS = {"medium": 10, "deep": 20}

T = TypeVar("T", Source, Image)


def unique_by_url(items: Iterable[T], limit: int) -> list[T]:
    """First occurrence of each URL, in order, at most `limit` of them."""
    seen: dict[str, T] = {}
    for item in items:
        seen.setdefault(item.url, item)
    return list(seen.values())[:limit]


def default_plan(subject: str, rationale: str = "") -> ResearchPlan:
    return ResearchPlan(
        subject=subject,
        rationale=rationale,
        sections=[
            PlannedSection(
                id=sid,
                title=section["title"],
                prompts=section["prompts"],
                priority=section_priority(sid),
                focus=extract_section_focus(sid, rationale),
            )
            for sid, section in INVESTMENT_RESEARCH_SECTIONS.items()
        ],
    )


def format_findings(results: list[SearchTaskResult], sources: list[Source], by_section: bool) -> str:
    """Learnings grouped by originating task (and section), plus a numbered source list."""
    usable = [r for r in results if r.learning]
    if not usable:
        return ""
    blocks: list[str] = []
    if by_section:
        grouped: dict[str, list[SearchTaskResult]] = {}
        for r in usable:
            grouped.setdefault(r.task.section, []).append(r)
        for section_id, group in grouped.items():
            learnings = "\n\n".join(f"[{r.task.research_goal}]\n{r.learning}" for r in group)
            blocks.append(f"## {section_title(section_id)}\n{learnings}")
    else:
        blocks.extend(f"[{r.task.research_goal}]\n{r.learning}" for r in usable)
    if sources:
        numbered = "\n".join(f"[{i}] {s.title} - {s.url}" for i, s in enumerate(sources, 1))
        blocks.append(f"Sources:\n{numbered}")
    return "\n\n".join(blocks)


class CompanyResearcher:
    """One research run for one request. Not reusable across requests."""

    def __init__(
        self,
        request: ResearchRequest,
        registry: ProviderRegistry,
        *,
        max_parallel_searches: int = 5,
        on_event: EventHandler | None = None,
    ):
        self.request = request
        self.registry = registry
        self.max_parallel_searches = max_parallel_searches
        self.on_event = on_event
        self.state = "init"
        self.thinking_model: ModelProvider | None = None
        self.task_model: ModelProvider | None = None
        self.search_provider: SearchProvider | None = None
        self.plan: ResearchPlan | None = None
        self.results: list[SearchTaskResult] = []

    def _emit(self, event) -> None:
        if self.on_event:
            self.on_event(event)

    def _progress(self, step: str, status: str, message: str = "", percentage: float | None = None) -> None:
        self._emit(ProgressEvent(step=step, status=status, message=message, percentage=percentage))

    def _advance(self, state: str) -> None:
        if STATES.index(state) <= STATES.index(self.state):
            raise RuntimeError(f"Cannot move research from {self.state!r} back to {state!r}")
        self.state = state

    def init(self) -> None:
        """Resolve models and the search provider. Raises ConfigurationError before any call."""
        self._progress("initialization", "start", "Initializing AI models and search providers")
        self.thinking_model = self.registry.model(self.request.thinking_model, "thinking")
        self.task_model = self.registry.model(self.request.task_model, "task")
        if self.request.depth != "fast":
            self.search_provider = self.registry.search(self.request.search_provider, self.request.search_api_key)
        self._progress("initialization", "complete", "AI models and search providers initialized")

    @logfire.instrument('Company research: {self.request.subject}')
    async def run(self) -> ResearchReport:
        if self.state != "init":
            raise RuntimeError("A CompanyResearcher runs once")
        self.init()
        depth = self.request.depth
        if depth == "fast":
            report = await self.run_fast()
        elif depth == "medium":
            report = await self.run_medium()
        else:
            report = await self.run_deep()
        self._advance("done")
        return report

    async def run_fast(self) -> ResearchReport:
        self._progress("fast-research", "start", "Starting fast company analysis...")
        self._advance("synthesize")
        self._progress("fast-research", "generating", "AI is analyzing the company...")
        try:
            content = await self.task_model.complete(
                fast_research_prompt(self.request), temperature=0.7, max_tokens=4000
            )
        except Exception as e:
            raise ReportWritingError(f"Failed to generate fast analysis: {e}") from e
        if not content or not content.strip():
            raise ReportWritingError("Failed to generate fast analysis: the model returned no text")
        self._emit(MessageEvent(content=content))
        self._progress("fast-research", "complete", "Fast analysis complete!", 100.0)
        return ResearchReport(title=f"{self.request.subject} - Quick Analysis", content=content)

    async def run_medium(self) -> ResearchReport:
        self._progress("medium-research", "start", "Starting medium-depth company research...")
        self._advance("plan")
        tasks = medium_search_tasks(self.request)

        self._advance("search")
        self.results = await self._executor().run_all(tasks)

        self._advance("synthesize")
        sources = unique_by_url((s for r in self.results for s in r.sources), SOURCE_LIMITS["medium"])
        images = unique_by_url((i for r in self.results for i in r.images), IMAGE_LIMITS["medium"])
        prompt = medium_report_prompt(self.request, format_findings(self.results, sources, by_section=False))
        content = await self._stream_report(prompt, max_tokens=5000)
        self._progress("medium-research", "complete", "Investment analysis complete!", 100.0)
        return ResearchReport(
            title=f"{self.request.subject} - Investment Analysis",
            content=content,
            sources=tuple(sources),
            images=tuple(images),
        )

    async def run_deep(self) -> ResearchReport:
        self._progress("deep-research", "start", "Starting comprehensive company deep dive...")
        self._advance("plan")
        self._progress("research-plan", "generating", "Creating investment research plan...")
        self.plan = await self.plan_research()

        self._progress("search-queries", "generating", "Generating search queries for all investment areas...")
        tasks = deep_search_tasks(self.request, self.plan)

        self._advance("search")
        self.results = await self._executor().run_all(tasks)

        self._advance("synthesize")
        self._progress("report-generation", "start", "Generating comprehensive investment report...")
        sources = unique_by_url((s for r in self.results for s in r.sources), SOURCE_LIMITS["deep"])
        images = unique_by_url((i for r in self.results for i in r.images), IMAGE_LIMITS["deep"])
        prompt = deep_report_prompt(self.request, self.plan, format_findings(self.results, sources, by_section=True))
        content = await self._stream_report(prompt, max_tokens=8000)
        self._progress("deep-research", "complete", "Deep dive research complete!", 100.0)
        return ResearchReport(
            title=f"{self.request.subject} - Comprehensive Investment Analysis",
            content=content,
            sections=parse_sections(content),
            sources=tuple(sources),
            images=tuple(images),
        )

    @logfire.instrument('Plan research')
    async def plan_research(self) -> ResearchPlan:
        """Ask the thinking model which sections matter most.

        The plan only weights the queries, so a failed planning call falls
        back to the default plan instead of failing the run.
        """
        try:
            rationale = await self._plan_rationale()
        except PlanningError as e:
            logfire.warn('Research planning failed, using default plan', error=str(e))
            self._emit(ErrorEvent(message=f"Research planning failed, using the default plan: {e}"))
            return default_plan(self.request.subject)
        logfire.debug('Research plan rationale', rationale=rationale)
        return default_plan(self.request.subject, rationale)

    async def _plan_rationale(self) -> str:
        try:
            rationale = await self.thinking_model.complete(plan_prompt(self.request), temperature=0.3, max_tokens=1000)
        except Exception as e:
            raise PlanningError(str(e) or type(e).__name__) from e
        if not rationale or not rationale.strip():
            raise PlanningError("the model returned no text")
        return rationale

    def _executor(self) -> SearchTaskExecutor:
        return SearchTaskExecutor(
            self.request.subject,
            self.search_provider,
            self.task_model,
            depth=self.request.depth,
            max_parallel=self.max_parallel_searches,
            on_event=self.on_event,
        )

    @logfire.instrument('Write final report')
    async def _stream_report(self, prompt: str, max_tokens: int) -> str:
        self._progress("report-generation", "processing", "Generating investment analysis...")
        decoder = ThinkTagStreamDecoder(
            on_content=lambda text: self._emit(MessageEvent(content=text)),
            on_reasoning=lambda text: self._emit(ReasoningEvent(content=text)),
        )
        try:
            async for chunk in self.thinking_model.complete_stream(prompt, temperature=0.5, max_tokens=max_tokens):
                decoder.feed(chunk)
        except Exception as e:
            raise ReportWritingError(f"Failed to generate investment report: {e}") from e
        decoder.flush()
        content = decoder.text.strip()
        if not content:
            raise ReportWritingError("Failed to generate investment report: the model returned no text")
        return content
