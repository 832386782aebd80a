"""Orchestrators: multi-step search pipelines (e.g. need-to-book)."""

from nearbook.orchestrators.booking import (
    NeedToBookOrchestrator,
    OpportunitySearchResponse,
    SearchSettings,
)

__all__ = [
    "NeedToBookOrchestrator",
    "OpportunitySearchResponse",
    "SearchSettings",
]
