"""Search task generation for the medium and deep depth profiles."""
from __future__ import annotations

from datetime import date

from .models import ResearchPlan, ResearchRequest, SearchTask
from .sections import ADDITIONAL_RESEARCH

MAX_MEDIUM_TASKS = 10
MEDIUM_COMPETITORS = 3


def medium_search_tasks(request: ResearchRequest, year: int | None = None) -> list[SearchTask]:
    """A small fixed set of high-value queries, capped at MAX_MEDIUM_TASKS."""
    year = year or date.today().year
    name = request.subject
    tasks = [
        SearchTask(
            query=f"{name} company overview products services",
            research_goal="Understand what the company does and their main offerings",
            section="companyOverview",
            priority="high",
        )
    ]
    if request.website:
        tasks.append(SearchTask(
            query=f"site:{request.website} products pricing",
            research_goal="Get official information about products and pricing",
            section="companyOverview",
            priority="high",
        ))
    tasks.append(SearchTask(
        query=f"{name} news {year}",
        research_goal="Find recent developments and announcements",
        section="recentNews",
        priority="high",
    ))
    for competitor in request.competitors[:MEDIUM_COMPETITORS]:
        tasks.append(SearchTask(
            query=f"{name} vs {competitor} comparison",
            research_goal=f"Understand competitive positioning against {competitor}",
            section="competitiveAnalysis",
            priority="medium",
        ))
    tasks.append(SearchTask(
        query=f"{name} funding round valuation investment",
        research_goal="Find funding history and investor information",
        section="recentNews",
        priority="medium",
    ))
    return tasks[:MAX_MEDIUM_TASKS]


def deep_search_tasks(request: ResearchRequest, plan: ResearchPlan, year: int | None = None) -> list[SearchTask]:
    """Several queries per planned section, plus one per user-specified source.

    High priority sections get an extra query seeded from the plan's focus.
    """
    year = year or date.today().year
    name = request.subject
    industry = request.industry or name
    tasks: list[SearchTask] = []

    for section in plan.sections:
        def add(query: str, goal: str) -> None:
            tasks.append(SearchTask(query=query, research_goal=goal, section=section.id, priority=section.priority))

        sid = section.id
        if sid == "companyOverview":
            add(f"{name} products services technology platform", "Understand core offerings and technology")
            add(f"{name} business model revenue streams pricing", "Understand how they make money")
            if request.website:
                add(f"site:{request.website} case studies ROI customers", "Find customer success stories and ROI data")
        elif sid == "companyProductDeepDive":
            add(f"{name} architecture integrations technical documentation", "Understand how the technology works")
        elif sid == "customersBuyersChannels":
            add(f"{name} customers case study go-to-market partners", "Identify customers and channels")
        elif sid == "competitiveAnalysis":
            for competitor in request.competitors:
                add(f"{name} vs {competitor} comparison features pricing", f"Detailed comparison with {competitor}")
            add(f"{industry} competitive landscape market leaders {name}", "Understand overall market competition")
        elif sid == "marketBackground":
            add(f"{industry} market size growth rate trends {year}", "Understand market dynamics and size")
            add(f"{industry} challenges problems pain points", "Understand market problems being solved")
        elif sid == "trendsAndStrategy":
            add(f"{industry} trends {year} strategy outlook", "Understand macro-trends shaping the category")
        elif sid == "recentNews":
            add(f"{name} latest news announcements {year}", "Find recent developments")
            add(f"{name} funding investment acquisition partnership", "Find strategic moves and funding events")

        if section.priority == "high" and section.focus:
            add(f"{name} {section.focus[:120]}", f"Follow the plan's focus for {section.title}")

    for source in request.research_sources:
        tasks.append(SearchTask(
            query=f"site:{source} {name}",
            research_goal=f"Find information about {name} on {source}",
            section=ADDITIONAL_RESEARCH,
            priority="medium",
        ))
    return tasks
