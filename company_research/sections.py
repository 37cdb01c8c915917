"""Investment report section catalog and best-effort section parsing."""
from __future__ import annotations

import re
from typing import TypedDict

from .models import Priority


class Section(TypedDict):
    title: str
    prompts: list[str]


INVESTMENT_RESEARCH_SECTIONS: dict[str, Section] = {
    "companyOverview": {
        "title": "Company Overview",
        "prompts": [
            "Provide a brief overview of the company",
            "Analyze the company's products, core technologies, and offerings",
            "Identify primary use-cases and pain-points solved, by industry vertical and business size",
            "Explain how the company makes money, including product and pricing strategy and upsell opportunities",
            "Estimate ROI from the customer perspective with quantitative data",
        ],
    },
    "companyProductDeepDive": {
        "title": "Company and Product Deep Dive",
        "prompts": [
            "Describe technical architecture, integrations, and underlying innovations in detail",
            "Analyze primary use-cases and pain-points solved by industry vertical and business size",
        ],
    },
    "customersBuyersChannels": {
        "title": "Customers, Buyers, and Channels",
        "prompts": [
            "Profile primary customer types including verticals, business size, and buying personas",
            "Analyze go-to-market strategy, channel partnerships, distribution, and geographic focus",
            "Describe buying cycles, implementation times and decision-making processes",
            "Identify key purchase criteria for budget holders and users",
        ],
    },
    "marketBackground": {
        "title": "Market Background and Context",
        "prompts": [
            "Define the market, typical issues and risks, and its evolution over time",
            "Explain how incumbent tools fall short in the current environment",
            "Assess current market size and projected growth of relevant sub-markets",
        ],
    },
    "competitiveAnalysis": {
        "title": "Competitive Analysis",
        "prompts": [
            "Analyze direct competitors, indirect competitors, and adjacent market players",
            "Segment competitors by product features, pricing models, and target customers",
            "Discuss bundling and platformization trends and M&A opportunities",
        ],
    },
    "trendsAndStrategy": {
        "title": "Broader Trends and Strategic Positioning",
        "prompts": [
            "Analyze macro-trends impacting the category",
            "Assess strategic risks and threats",
            "Describe growth opportunities including new products, adjacencies, and partnerships",
        ],
    },
    "bullBearCase": {
        "title": "Bull Case / Bear Case",
        "prompts": [
            "Develop the bull case a seasoned investor would consider",
            "Develop the bear case highlighting key risks and challenges",
        ],
    },
    "keyQuestions": {
        "title": "Key Questions and Next Steps",
        "prompts": [
            "Formulate 10 critical questions for a 1-hour CEO meeting",
            "Identify further research priorities and information gaps",
        ],
    },
    "recentNews": {
        "title": "Key Recent News and Updates",
        "prompts": [
            "Compile the most important recent announcements, launches, partnerships, and customer wins",
            "Track recent funding events and strategic moves by key competitors",
        ],
    },
}

# Sections fed by queries that are not tied to a catalog entry.
ADDITIONAL_RESEARCH = "additionalResearch"

_HIGH_PRIORITY = {"companyOverview", "competitiveAnalysis", "bullBearCase"}
_MEDIUM_PRIORITY = {"marketBackground", "customersBuyersChannels", "recentNews"}

_HEADER_RE = re.compile(r"^##[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)


def section_priority(section_id: str) -> Priority:
    if section_id in _HIGH_PRIORITY:
        return "high"
    if section_id in _MEDIUM_PRIORITY:
        return "medium"
    return "low"


def section_title(section_id: str) -> str:
    section = INVESTMENT_RESEARCH_SECTIONS.get(section_id)
    return section["title"] if section else section_id


def extract_section_focus(section_id: str, rationale: str) -> str:
    """Sentences of the planning rationale that mention the section by title."""
    section = INVESTMENT_RESEARCH_SECTIONS.get(section_id)
    if not section or not rationale:
        return ""
    pattern = re.compile(rf"{re.escape(section['title'])}[^.]*\.", re.IGNORECASE)
    return " ".join(pattern.findall(rationale))


def parse_sections(markdown: str) -> dict[str, str]:
    """Split a report on `## ` headers into catalog section bodies.

    Headers that do not exactly match a catalog title end the previous
    section and are left out of the map; their text stays in the report.
    """
    by_title = {s["title"]: sid for sid, s in INVESTMENT_RESEARCH_SECTIONS.items()}
    sections: dict[str, str] = {}
    current: str | None = None
    start = 0

    for match in _HEADER_RE.finditer(markdown):
        if current is not None:
            sections[current] = markdown[start:match.start()].strip()
        current = by_title.get(match.group(1).strip())
        start = match.end()

    if current is not None:
        sections[current] = markdown[start:].strip()
    return sections
