"""Proximity ranker: resolves candidate distances and builds a day opportunity.

Lookups run as independent tasks bounded by a semaphore and a per-lookup timeout.
Their outcomes are merged in candidate order after all of them settle, so ties keep
discovery order under the stable sort.

When a pass shows the strategy's service is unreachable, the ranker steps down to the
next fallback (driving, great circle, estimate) and keeps it for later targets.
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, tzinfo

from nearbook.contracts.calendar_v1 import CalendarEvent
from nearbook.core.errors import GeodataUnavailableError
from nearbook.core.logger import logger
from nearbook.observability import traceable
from nearbook.orchestrators.booking.candidates import target_day_key
from nearbook.orchestrators.booking.constants import (
    DEFAULT_DISTANCE_THRESHOLD_KM,
    DistanceStrategyKind,
    WarningSource,
)
from nearbook.orchestrators.booking.distance import DistanceStrategy, EstimateStrategy
from nearbook.orchestrators.booking.models import (
    CandidateJob,
    DayOpportunity,
    DistanceResult,
    RankResult,
    SearchWarning,
)
from nearbook.services.maps_client import directions_url

# Google Maps dir links accept a limited number of stops
MAX_DIRECTION_STOPS = 9

NO_GEODATA_REASON = "no geodata service configured"


def estimate_warning(estimate: EstimateStrategy, reason: str) -> SearchWarning:
    return SearchWarning(
        source=WarningSource.GEODATA,
        message=(
            f"Real distance data unavailable ({reason}); distances are estimates from the "
            f"time gap (±{estimate.window_days:g} days, {estimate.km_per_day:g} km/day)"
        ),
    )


def downgrade_warning(
    failed: DistanceStrategyKind, fallback: DistanceStrategy, estimate: EstimateStrategy
) -> SearchWarning:
    reason = f"{failed} service unreachable"
    if fallback.kind == DistanceStrategyKind.ESTIMATE:
        return estimate_warning(estimate, reason)
    return SearchWarning(
        source=WarningSource.GEODATA,
        message=f"{reason}; distances are straight-line between geocoded addresses",
    )


def _sort_by_distance(jobs: list[CandidateJob]) -> list[CandidateJob]:
    # sorted() is stable: equal distances keep discovery order
    return sorted(jobs, key=lambda j: j.distance_km)


@dataclass
class _Pass:
    """Outcome of resolving every eligible candidate with one strategy."""

    eligible: int
    jobs: list[CandidateJob] = field(default_factory=list)
    failed: int = 0
    timed_out: int = 0
    unavailable: int = 0

    @property
    def dropped(self) -> int:
        return self.failed + self.timed_out + self.unavailable

    @property
    def service_unreachable(self) -> bool:
        # needs at least one refusal and no lookup that got through; timeouts alone never count
        return self.unavailable > 0 and self.unavailable + self.timed_out == self.eligible


class ProximityRanker:
    """Ranks candidates for one target with a strategy chosen per search call.

    One ranker serves one search call. A step down to a fallback strategy sticks for
    every later target of that call.
    """

    def __init__(
        self,
        strategy: DistanceStrategy,
        estimate: EstimateStrategy | None = None,
        threshold_km: float = DEFAULT_DISTANCE_THRESHOLD_KM,
        max_concurrency: int = 8,
        lookup_timeout: float | None = 8.0,
        default_tz: tzinfo = UTC,
        fallbacks: Sequence[DistanceStrategy] | None = None,
    ):
        self._strategy = strategy
        self._estimate = estimate or EstimateStrategy(default_tz=default_tz)
        if fallbacks is None:
            fallbacks = [] if strategy.kind == DistanceStrategyKind.ESTIMATE else [self._estimate]
        self._fallbacks = [s for s in fallbacks if s is not strategy]
        self._threshold_km = threshold_km
        self._max_concurrency = max(1, max_concurrency)
        self._lookup_timeout = lookup_timeout
        self._tz = default_tz
        self._downgrades: list[SearchWarning] = []

    @property
    def strategy(self) -> DistanceStrategy:
        """The strategy currently in use, after any step down."""
        return self._strategy

    async def _lookup(
        self,
        strategy: DistanceStrategy,
        semaphore: asyncio.Semaphore,
        target: CalendarEvent,
        candidate: CalendarEvent,
    ) -> DistanceResult | None:
        async with semaphore:
            if self._lookup_timeout is None or strategy.queues_requests:
                return await strategy.resolve(target, candidate)
            return await asyncio.wait_for(
                strategy.resolve(target, candidate), timeout=self._lookup_timeout
            )

    async def _resolve_all(
        self,
        strategy: DistanceStrategy,
        target: CalendarEvent,
        candidates: Sequence[CalendarEvent],
    ) -> _Pass:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(
            *(self._lookup(strategy, semaphore, target, c) for c in candidates),
            return_exceptions=True,
        )

        day_key = target_day_key(target, self._tz)
        origin = target.location or ""
        result = _Pass(eligible=len(candidates))
        for candidate, outcome in zip(candidates, outcomes):
            destination = candidate.location or ""
            if isinstance(outcome, GeodataUnavailableError):
                result.unavailable += 1
                logger.lookup_failed(strategy.kind, origin, destination, str(outcome))
                continue
            if isinstance(outcome, TimeoutError):
                result.timed_out += 1
                logger.lookup_failed(strategy.kind, origin, destination, "lookup timed out")
                continue
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.lookup_failed(strategy.kind, origin, destination, f"{outcome!r}")
                continue
            if outcome is None:
                result.failed += 1
                logger.lookup_failed(strategy.kind, origin, destination, "not found")
                continue
            result.jobs.append(
                CandidateJob(
                    event=candidate,
                    distance_km=outcome.km,
                    estimated=outcome.estimated,
                    day_key=day_key,
                    strategy=outcome.strategy,
                )
            )
        return result

    def _step_down(self) -> DistanceStrategy:
        failed = self._strategy.kind
        fallback = self._fallbacks.pop(0)
        logger.warning(
            "%s service unreachable; falling back to %s", failed, fallback.kind
        )
        logger.strategy_selected(fallback.kind, f"{failed} service unreachable")
        self._downgrades.append(downgrade_warning(failed, fallback, self._estimate))
        self._strategy = fallback
        return fallback

    @traceable(name="booking_rank_target", run_type="chain")
    async def rank(
        self,
        target: CalendarEvent,
        candidates: Sequence[CalendarEvent],
        threshold_km: float | None = None,
    ) -> RankResult:
        """Distance-rank candidates for target and group them under its day.

        Degradation is reported through RankResult.warnings and never raised.
        """
        t0 = time.monotonic()
        threshold = self._threshold_km if threshold_km is None else threshold_km
        strategy = self._strategy

        eligible = [c for c in candidates if strategy.accepts(target, c)]
        outcome = await self._resolve_all(strategy, target, eligible)
        while outcome.service_unreachable and self._fallbacks:
            strategy = self._step_down()
            eligible = [c for c in candidates if strategy.accepts(target, c)]
            outcome = await self._resolve_all(strategy, target, eligible)

        warnings = list(self._downgrades)
        if strategy.kind == DistanceStrategyKind.ESTIMATE and not self._downgrades:
            warnings.append(estimate_warning(self._estimate, NO_GEODATA_REASON))

        dropped = outcome.dropped
        if dropped:
            warnings.append(
                SearchWarning(
                    source=f"{WarningSource.TARGET}:{target.id}",
                    message=(
                        f"{dropped} of {len(eligible)} distance lookups failed; "
                        "those jobs were skipped"
                    ),
                )
            )

        jobs = outcome.jobs
        if strategy.applies_threshold:
            jobs = [j for j in jobs if j.distance_km <= threshold]
        jobs = _sort_by_distance(jobs)

        opportunity: DayOpportunity | None = None
        if jobs:
            stops = [target.location or ""] + [j.event.location or "" for j in jobs]
            opportunity = DayOpportunity(
                target=target,
                candidates=jobs,
                directions_url=directions_url(*stops[:MAX_DIRECTION_STOPS]),
            )

        logger.target_ranked(
            target.title,
            target_day_key(target, self._tz),
            kept=len(jobs),
            dropped=dropped,
            strategy=strategy.kind,
            duration_seconds=time.monotonic() - t0,
        )
        return RankResult(
            opportunity=opportunity, strategy=strategy.kind, warnings=warnings, dropped=dropped
        )
