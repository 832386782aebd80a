"""Need-to-book search: classifier, candidate search, proximity ranker."""

from nearbook.orchestrators.booking.candidates import day_gap, find_candidates
from nearbook.orchestrators.booking.classifier import classify
from nearbook.orchestrators.booking.distance import (
    DistanceStrategy,
    DrivingDistanceStrategy,
    EstimateStrategy,
    GreatCircleStrategy,
    fallback_strategies,
    select_strategy,
)
from nearbook.orchestrators.booking.models import (
    CandidateJob,
    DayOpportunity,
    OpportunitySearchResponse,
    SearchWarning,
)
from nearbook.orchestrators.booking.orchestrator import NeedToBookOrchestrator, SearchSettings
from nearbook.orchestrators.booking.ranker import ProximityRanker

__all__ = [
    "CandidateJob",
    "DayOpportunity",
    "DistanceStrategy",
    "DrivingDistanceStrategy",
    "EstimateStrategy",
    "GreatCircleStrategy",
    "NeedToBookOrchestrator",
    "OpportunitySearchResponse",
    "ProximityRanker",
    "SearchSettings",
    "SearchWarning",
    "classify",
    "day_gap",
    "fallback_strategies",
    "find_candidates",
    "select_strategy",
]
