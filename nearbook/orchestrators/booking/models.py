"""Result models for the need-to-book search pipeline."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from nearbook.contracts.calendar_v1 import CalendarEvent
from nearbook.orchestrators.booking.constants import DistanceStrategyKind


class SearchWarning(BaseModel):
    """A non-fatal problem, tagged with where it came from (e.g. 'calendar:Work')."""

    model_config = ConfigDict(frozen=True)

    source: str
    message: str

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


@dataclass(frozen=True)
class DistanceResult:
    km: float
    strategy: DistanceStrategyKind
    estimated: bool = False


@dataclass(frozen=True)
class Classification:
    targets: list[CalendarEvent] = field(default_factory=list)
    ordinary: list[CalendarEvent] = field(default_factory=list)


class CandidateJob(BaseModel):
    """An ordinary event near a target, with its (real or estimated) distance."""

    model_config = ConfigDict(frozen=True)

    event: CalendarEvent
    distance_km: float = Field(ge=0.0)
    estimated: bool = Field(
        default=False, description="True when distance_km is a time-gap estimate, not a measurement"
    )
    day_key: str = Field(description="ISO date of the target's local day")
    strategy: DistanceStrategyKind

    def to_consumer_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_wire(),
            "distanceKm": round(self.distance_km, 3),
            "estimated": self.estimated,
        }


class DayOpportunity(BaseModel):
    """One bookable day: the target plus nearby jobs, nearest first."""

    model_config = ConfigDict(frozen=True)

    target: CalendarEvent
    candidates: list[CandidateJob] = Field(min_length=1)
    directions_url: str | None = None

    def to_consumer_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "target": self.target.to_wire(),
            "candidates": [c.to_consumer_dict() for c in self.candidates],
        }
        if self.directions_url:
            out["directionsUrl"] = self.directions_url
        return out


@dataclass(frozen=True)
class RankResult:
    """Ranker output for one target."""

    opportunity: DayOpportunity | None
    strategy: DistanceStrategyKind
    warnings: list[SearchWarning] = field(default_factory=list)
    dropped: int = 0

    @property
    def degraded(self) -> bool:
        return self.strategy == DistanceStrategyKind.ESTIMATE


class OpportunitySearchResponse(BaseModel):
    """Final response from the need-to-book orchestrator."""

    targets: list[CalendarEvent] = Field(default_factory=list)
    opportunities_by_day: dict[str, DayOpportunity] = Field(default_factory=dict)
    warnings: list[SearchWarning] = Field(default_factory=list)
    meta: dict[str, Any] = Field(
        default_factory=lambda: {
            "calendars_searched": [],
            "events_fetched": 0,
            "strategy": None,
            "candidates_considered": 0,
            "dropped_candidates": 0,
            "timing_ms": {},
        },
        description="Pipeline metadata: calendars, counts, strategy, timing",
    )

    @property
    def warning(self) -> str | None:
        """All warnings joined for display; None when the search was clean."""
        if not self.warnings:
            return None
        return "; ".join(str(w) for w in self.warnings)

    def to_consumer_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "targets": [t.to_wire() for t in self.targets],
            "opportunitiesByDay": {
                day: opp.to_consumer_dict()
                for day, opp in sorted(self.opportunities_by_day.items())
            },
        }
        if self.warning:
            out["warning"] = self.warning
        return out
