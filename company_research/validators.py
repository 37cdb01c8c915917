"""Deterministic validators for research and batch requests.

These are intentionally lightweight and fast: they reject malformed input
before any rate-limited provider is called.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import CompanyResearchError
from .models import ResearchRequest


@dataclass(frozen=True)
class ValidationError(CompanyResearchError):
    stage: str
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return f"[{self.stage}] {self.message}"


_DOMAIN_RE = re.compile(r"^(https?://)?[\w.-]+\.[a-z]{2,}(/\S*)?$", re.IGNORECASE)


def validate_request(request: ResearchRequest) -> None:
    if not request.subject or not request.subject.strip():
        raise ValidationError("request", "Missing subject: provide a company or market name")
    if request.website and not _DOMAIN_RE.match(request.website.strip()):
        raise ValidationError("request", f"Website does not look like a domain or URL: {request.website!r}")
    for source in request.research_sources:
        if not _DOMAIN_RE.match(source.strip()):
            raise ValidationError("request", f"Research source does not look like a domain: {source!r}")


def validate_batch(entities: list[str], max_entities: int) -> list[str]:
    """Return the cleaned entity list, or raise if it cannot be run."""
    cleaned = [e.strip() for e in entities if e and e.strip()]
    if not cleaned:
        raise ValidationError("batch", "Missing or empty entity list")
    if len(cleaned) > max_entities:
        raise ValidationError("batch", f"Too many entities. Maximum is {max_entities}")
    if len(set(cleaned)) != len(cleaned):
        raise ValidationError("batch", "Entity names must be unique")
    return cleaned
