"""Deterministic cache keys for research requests.

Two requests that would produce the same report must map to the same key,
so names are normalised and list fields are sorted before hashing.
"""
from __future__ import annotations

import hashlib
from collections.abc import Iterable

from .models import ResearchRequest


def short_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _hash_list(values: Iterable[str]) -> str:
    return short_hash(",".join(sorted(_norm(v) for v in values)))


def company_key(
    company: str,
    depth: str,
    provider: str | None = None,
    model: str | None = None,
    *,
    additional_context: str | None = None,
    industry: str | None = None,
    competitors: Iterable[str] = (),
    language: str | None = None,
    search_provider: str | None = None,
) -> str:
    parts = ["company", _norm(company), depth, provider or "default", model or "default"]
    if additional_context:
        parts.append(short_hash(additional_context))
    if industry:
        parts.append(_norm(industry))
    competitors = list(competitors)
    if competitors:
        parts.append(_hash_list(competitors))
    if language:
        parts.append(_norm(language))
    if search_provider:
        parts.append(_norm(search_provider))
    return ":".join(parts)


def request_key(request: ResearchRequest) -> str:
    """Fingerprint of everything in a company request that changes the report."""
    thinking = request.thinking_model
    task = request.task_model
    model = thinking.model if thinking else None
    if task:
        model = f"{model or 'default'}+{task.provider}/{task.model}"
    key = company_key(
        request.subject,
        request.depth,
        thinking.provider if thinking else None,
        model,
        additional_context=request.additional_context,
        industry=request.industry,
        competitors=request.competitors,
        language=request.language,
        search_provider=request.search_provider if request.depth != "fast" else None,
    )
    extras = [request.website or "", *sorted(request.sub_industries), "|", *sorted(request.research_sources)]
    if any(x for x in extras if x != "|"):
        key = f"{key}:{short_hash(','.join(_norm(x) for x in extras))}"
    return key
