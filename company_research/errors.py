"""Error classes, one per failure class, so callers can tell what to retry."""

from __future__ import annotations


class CompanyResearchError(Exception):
    """Base class for company-research errors."""


class ConfigurationError(CompanyResearchError):
    """A model, provider or credential is missing. Raised before any external call."""

    def __init__(self, setting: str, message: str):
        super().__init__(message)
        self.setting = setting


class ProviderError(CompanyResearchError):
    """A search or model call failed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CapacityError(CompanyResearchError):
    """The caller exceeded its rate limit."""

    def __init__(self, key: str, limit: int, retry_after: int):
        super().__init__(f"Rate limit exceeded for {key}. Retry after {retry_after}s.")
        self.key = key
        self.limit = limit
        self.retry_after = retry_after


class CacheError(CompanyResearchError):
    """The cache could not be read from or written to its store."""


class PlanningError(CompanyResearchError):
    pass


class ReportWritingError(CompanyResearchError):
    pass
