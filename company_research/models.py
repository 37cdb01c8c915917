"""Data models for company research."""
from typing import Annotated, Any, Literal

from annotated_types import Ge, Le
from pydantic import BaseModel, ConfigDict, Field

Depth = Literal["fast", "medium", "deep"]
Priority = Literal["high", "medium", "low"]
CacheType = Literal[
    "company-research",
    "market-research",
    "bulk-company-research",
    "free-form-research",
]


class ModelSelection(BaseModel):
    """Which model to call, on which provider, with an optional client credential."""
    model_config = ConfigDict(frozen=True)

    provider: str = Field(description="Provider id, e.g. 'openai' or 'anthropic'")
    model: str = Field(description="Model id on that provider")
    api_key: str | None = Field(default=None, repr=False, exclude=True)


class ResearchRequest(BaseModel):
    """Immutable input to a research run."""
    model_config = ConfigDict(frozen=True)

    subject: str = Field(description="Company or market name")
    website: str | None = None
    industry: str | None = None
    sub_industries: tuple[str, ...] = ()
    competitors: tuple[str, ...] = ()
    research_sources: tuple[str, ...] = Field(
        default=(), description="Extra domains to search with a site: query"
    )
    additional_context: str | None = None
    depth: Depth = "medium"
    language: str = "en-US"
    thinking_model: ModelSelection | None = None
    task_model: ModelSelection | None = None
    search_provider: str | None = None
    search_api_key: str | None = Field(default=None, repr=False, exclude=True)


class BatchRequest(BaseModel):
    """Many subjects researched with shared settings, fast by default."""
    model_config = ConfigDict(frozen=True)

    entities: tuple[str, ...]
    industry: str | None = Field(default=None, description="Industry shared by every entity")
    depth: Depth = "fast"
    language: str = "en-US"
    thinking_model: ModelSelection | None = None
    task_model: ModelSelection | None = None
    search_provider: str | None = None
    search_api_key: str | None = Field(default=None, repr=False, exclude=True)

    def request_for(self, entity: str) -> ResearchRequest:
        return ResearchRequest(
            subject=entity,
            industry=self.industry,
            depth=self.depth,
            language=self.language,
            thinking_model=self.thinking_model,
            task_model=self.task_model,
            search_provider=self.search_provider,
            search_api_key=self.search_api_key,
        )


class Source(BaseModel):
    """A web page returned by a search provider."""

    title: str = Field(default="Untitled", description="Human-readable page/article title")
    url: str = Field(description="Canonical URL")
    snippet: str = ""


class Image(BaseModel):
    url: str
    description: str = ""


class SearchResponse(BaseModel):
    """Raw output of one search provider call."""

    sources: list[Source] = Field(default_factory=list)
    images: list[Image] = Field(default_factory=list)


class SearchTask(BaseModel):
    """One search query and the report section it feeds."""
    model_config = ConfigDict(frozen=True)

    query: str
    research_goal: str = Field(description="Why this query matters")
    section: str = Field(description="Id of the report section this feeds")
    priority: Priority = "medium"


class SearchTaskResult(BaseModel):
    """Output of one executor run. `error` is set when the task degraded."""
    model_config = ConfigDict(frozen=True)

    task: SearchTask
    sources: tuple[Source, ...] = ()
    images: tuple[Image, ...] = ()
    learning: str = ""
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class PlannedSection(BaseModel):
    id: str
    title: str
    prompts: list[str]
    priority: Priority
    focus: str = ""


class ResearchPlan(BaseModel):
    """Deep research plan: every catalog section, prioritised."""

    subject: str
    rationale: str = Field(default="", description="Thinking-model explanation of the priorities")
    sections: list[PlannedSection]


class ResearchReport(BaseModel):
    """Final output of a pipeline run."""
    model_config = ConfigDict(frozen=True)

    title: str
    content: str = Field(description="Full markdown report")
    sections: dict[str, str] = Field(
        default_factory=dict, description="Section id to section body, best effort"
    )
    sources: tuple[Source, ...] = ()
    images: tuple[Image, ...] = ()


class CachedResearch(BaseModel):
    """Payload stored in a cache entry."""

    report: ResearchReport
    metadata: dict[str, Any] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    id: str
    key: str
    type: CacheType
    data: CachedResearch
    request_params: dict[str, Any] = Field(default_factory=dict)
    created_at: float
    expires_at: float
    ttl: float = Field(description="Seconds")
    hit_count: int = 0
    last_accessed_at: float


class CacheStats(BaseModel):
    total_hits: int = 0
    total_misses: int = 0
    total_entries: int = 0
    estimated_cost_savings: float = Field(default=0.0, description="USD")
    estimated_token_savings: int = 0
    last_updated: float = 0.0


def _default_ttls() -> dict[str, float]:
    hour = 60 * 60
    return {
        "company-research": 24 * hour,
        "market-research": 12 * hour,
        "bulk-company-research": 24 * hour,
        "free-form-research": 6 * hour,
    }


class CacheConfig(BaseModel):
    enabled: bool = True
    ttl: dict[CacheType, float] = Field(default_factory=_default_ttls, description="Seconds per category")
    max_entries: Annotated[int, Ge(1)] = 500
    auto_cleanup: bool = True


class CacheInfo(BaseModel):
    total_size: int
    valid_entries: int
    expired_entries: int
    hit_rate: Annotated[float, Ge(0), Le(1)]
