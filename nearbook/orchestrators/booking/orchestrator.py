"""Need-to-book orchestrator: fetch, classify, search candidates, rank, aggregate.

Pipeline (one search call):
  1. Resolve calendars and fetch events for the horizon (concurrently, per calendar)
  2. Classify events into targets and ordinary events
  3. Candidate search per target
  4. Select a distance strategy once, then rank each target's candidates
  5. Aggregate day opportunities and warnings
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from datetime import time as dt_time
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nearbook.contracts.calendar_v1 import Calendar, CalendarEvent
from nearbook.core.config import Config
from nearbook.core.errors import NearbookError, UnauthenticatedError, UpstreamUnavailableError
from nearbook.core.logger import logger
from nearbook.observability import traceable
from nearbook.orchestrators.booking.candidates import find_candidates, target_day_key
from nearbook.orchestrators.booking.classifier import classify
from nearbook.orchestrators.booking.constants import (
    ALL_CALENDARS,
    DEFAULT_CANDIDATE_WINDOW_DAYS,
    DEFAULT_DISTANCE_THRESHOLD_KM,
    DEFAULT_ESTIMATE_KM_PER_DAY,
    DEFAULT_ESTIMATE_MIN_KM,
    DEFAULT_ESTIMATE_WINDOW_DAYS,
    DEFAULT_MARKER,
    DEFAULT_SEARCH_HORIZON_DAYS,
    DistanceStrategyKind,
    SearchStage,
    WarningSource,
)
from nearbook.orchestrators.booking.distance import (
    DistanceStrategy,
    EstimateStrategy,
    Geocoder,
    RoutingService,
    fallback_strategies,
    select_strategy,
)
from nearbook.orchestrators.booking.models import (
    DayOpportunity,
    OpportunitySearchResponse,
    RankResult,
    SearchWarning,
)
from nearbook.orchestrators.booking.ranker import (
    NO_GEODATA_REASON,
    ProximityRanker,
    estimate_warning,
)


class EventSource(Protocol):
    """Read-only calendar provider (GoogleService in production)."""

    @property
    def is_connected(self) -> bool: ...

    def list_calendars(self) -> list[Calendar]: ...

    def list_events(
        self, calendar_id: str | None, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]: ...


def user_tz(tz_name: str | None) -> tzinfo:
    if not tz_name:
        return UTC
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r; using UTC", tz_name)
        return UTC


def search_window(
    start: date | None, horizon_days: int, tz: tzinfo = UTC
) -> tuple[datetime, datetime]:
    """(time_min, time_max) in UTC: local midnight of start through horizon_days later."""
    start = start or datetime.now(tz).date()
    time_min = datetime.combine(start, dt_time.min, tzinfo=tz)
    time_max = time_min + timedelta(days=horizon_days)
    return time_min.astimezone(UTC), time_max.astimezone(UTC)


@dataclass(frozen=True)
class SearchSettings:
    """Tunables for one orchestrator; per-call arguments override the first four."""

    marker: str = DEFAULT_MARKER
    horizon_days: int = DEFAULT_SEARCH_HORIZON_DAYS
    window_days: float = DEFAULT_CANDIDATE_WINDOW_DAYS
    threshold_km: float = DEFAULT_DISTANCE_THRESHOLD_KM
    strategy_mode: str = "auto"
    estimate_window_days: float = DEFAULT_ESTIMATE_WINDOW_DAYS
    estimate_km_per_day: float = DEFAULT_ESTIMATE_KM_PER_DAY
    estimate_min_km: float = DEFAULT_ESTIMATE_MIN_KM
    lookup_timeout: float | None = 8.0
    max_concurrency: int = 8
    timezone: str = "UTC"
    default_calendar_id: str = "primary"

    @classmethod
    def from_config(cls, cfg: Config) -> "SearchSettings":
        return cls(
            marker=cfg.need_to_book_marker,
            horizon_days=cfg.search_horizon_days,
            window_days=cfg.candidate_window_days,
            threshold_km=cfg.distance_threshold_km,
            strategy_mode=cfg.distance_strategy,
            estimate_window_days=cfg.estimate_window_days,
            estimate_km_per_day=cfg.estimate_km_per_day,
            estimate_min_km=cfg.estimate_min_km,
            lookup_timeout=cfg.geodata_timeout_seconds,
            max_concurrency=cfg.geodata_max_concurrency,
            timezone=cfg.user_timezone,
            default_calendar_id=cfg.google_calendar_default_id,
        )

    @property
    def tz(self) -> tzinfo:
        return user_tz(self.timezone)


def _ms_since(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 1)


def _dedupe(warnings: list[SearchWarning]) -> list[SearchWarning]:
    return list(dict.fromkeys(warnings))


class NeedToBookOrchestrator:
    """Finds days on which need-to-book jobs sit close to already-scheduled events."""

    def __init__(
        self,
        events: EventSource,
        routing: RoutingService | None = None,
        geocoder: Geocoder | None = None,
        settings: SearchSettings | None = None,
    ):
        self._events = events
        self._routing = routing
        self._geocoder = geocoder
        self._settings = settings or SearchSettings()

    @property
    def settings(self) -> SearchSettings:
        return self._settings

    async def _resolve_calendars(self, calendar_ids: Sequence[str]) -> dict[str, str]:
        """Map calendar id -> display name, expanding 'all' to every readable calendar."""
        resolved: dict[str, str] = {}
        if any(cid == ALL_CALENDARS for cid in calendar_ids):
            calendars = await asyncio.to_thread(self._events.list_calendars)
            for cal in calendars:
                resolved.setdefault(cal.id, cal.display_name)
        for cid in calendar_ids:
            if cid != ALL_CALENDARS:
                resolved.setdefault(cid, cid)
        if not resolved:
            raise UpstreamUnavailableError("No readable calendars found")
        return resolved

    async def _fetch_events(
        self,
        calendars: dict[str, str],
        time_min: datetime,
        time_max: datetime,
    ) -> tuple[list[CalendarEvent], list[SearchWarning]]:
        """Fetch every calendar concurrently; a failed calendar becomes a warning.

        Fatal when every calendar failed. Events are deduplicated by id, first wins.
        """
        ids = list(calendars)
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(self._events.list_events, cid, time_min, time_max)
                for cid in ids
            ),
            return_exceptions=True,
        )

        events: list[CalendarEvent] = []
        warnings: list[SearchWarning] = []
        seen: set[str] = set()
        failures: list[BaseException] = []
        for cid, outcome in zip(ids, outcomes):
            if isinstance(outcome, UnauthenticatedError):
                raise outcome
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures.append(outcome)
                logger.warning("Calendar %s could not be read: %s", calendars[cid], outcome)
                warnings.append(
                    SearchWarning(
                        source=f"{WarningSource.CALENDAR}:{calendars[cid]}",
                        message=f"could not be read ({outcome})",
                    )
                )
                continue
            for event in outcome:
                if event.id in seen:
                    continue
                seen.add(event.id)
                events.append(event)

        if failures and len(failures) == len(ids):
            first = failures[0]
            if isinstance(first, UpstreamUnavailableError):
                raise first
            raise UpstreamUnavailableError(f"Calendar source failed: {first}") from first
        return events, warnings

    @traceable(name="need_to_book_search", run_type="chain")
    async def search(
        self,
        start: date | None = None,
        calendar_ids: Sequence[str] | None = None,
        window_days: float | None = None,
        threshold_km: float | None = None,
        marker: str | None = None,
    ) -> OpportunitySearchResponse:
        """Run one need-to-book search.

        Raises UnauthenticatedError or UpstreamUnavailableError when the search cannot
        run. Every other problem degrades into warnings on the response.
        """
        s = self._settings
        window = s.window_days if window_days is None else window_days
        threshold = s.threshold_km if threshold_km is None else threshold_km
        marker = marker or s.marker
        tz = s.tz
        ids = list(calendar_ids or [s.default_calendar_id or "primary"])

        pipeline_start = time.monotonic()
        timing_ms: dict[str, float] = {}
        stage = SearchStage.NOT_STARTED

        if not self._events.is_connected:
            raise UnauthenticatedError()

        time_min, time_max = search_window(start, s.horizon_days, tz)
        logger.search_started(ids, time_min, time_max)

        estimate = EstimateStrategy(
            window_days=s.estimate_window_days,
            km_per_day=s.estimate_km_per_day,
            min_km=s.estimate_min_km,
            default_tz=tz,
        )
        chain: list[DistanceStrategy] = []
        try:
            # 1. Fetch
            t0 = time.monotonic()
            calendars = await self._resolve_calendars(ids)
            events, warnings = await self._fetch_events(calendars, time_min, time_max)
            timing_ms["fetch"] = _ms_since(t0)

            # 2. Classify
            stage = SearchStage.CLASSIFYING_EVENTS
            logger.stage(stage)
            t0 = time.monotonic()
            classification = classify(events, marker)
            timing_ms["classify"] = _ms_since(t0)

            # 3. Candidate search
            stage = SearchStage.SEARCHING_CANDIDATES
            logger.stage(stage)
            t0 = time.monotonic()
            work: list[tuple[CalendarEvent, list[CalendarEvent]]] = []
            for target in classification.targets:
                if not target.has_location:
                    warnings.append(
                        SearchWarning(
                            source=f"{WarningSource.TARGET}:{target.id}",
                            message=f"{target.title!r} has no location; no nearby jobs searched",
                        )
                    )
                    continue
                candidates = find_candidates(
                    target, classification.ordinary, window, marker, default_tz=tz
                )
                if candidates:
                    work.append((target, candidates))
            timing_ms["candidates"] = _ms_since(t0)

            # 4. Distances
            strategy, reason = select_strategy(
                s.strategy_mode, self._routing, self._geocoder, estimate
            )
            fallbacks = fallback_strategies(strategy, self._geocoder, estimate)
            chain = [strategy, *fallbacks]
            logger.strategy_selected(strategy.kind, reason)
            stage = SearchStage.RESOLVING_DISTANCES
            logger.stage(f"{stage}:{strategy.kind}")
            if strategy.kind == DistanceStrategyKind.ESTIMATE and classification.targets:
                warnings.append(estimate_warning(estimate, NO_GEODATA_REASON))

            ranker = ProximityRanker(
                strategy,
                estimate=estimate,
                threshold_km=threshold,
                max_concurrency=s.max_concurrency,
                lookup_timeout=s.lookup_timeout,
                default_tz=tz,
                fallbacks=fallbacks,
            )
            t0 = time.monotonic()
            results: list[RankResult] = []
            for target, candidates in work:
                results.append(await ranker.rank(target, candidates, threshold))
            timing_ms["ranking"] = _ms_since(t0)

            # 5. Aggregate
            stage = SearchStage.AGGREGATING
            logger.stage(stage)
            opportunities: dict[str, DayOpportunity] = {}
            dropped = 0
            strategies_used: list[str] = []
            for result in results:
                warnings.extend(result.warnings)
                dropped += result.dropped
                if result.strategy not in strategies_used:
                    strategies_used.append(result.strategy)
                opp = result.opportunity
                if opp is None:
                    continue
                day = target_day_key(opp.target, tz)
                kept = opportunities.get(day)
                if kept is not None:
                    warnings.append(
                        SearchWarning(
                            source=WarningSource.RANKER,
                            message=(
                                f"{day}: {opp.target.title!r} shares the day with "
                                f"{kept.target.title!r}; showing the first"
                            ),
                        )
                    )
                    continue
                opportunities[day] = opp

            warnings = _dedupe(warnings)
            stage = SearchStage.DONE
            timing_ms["total"] = _ms_since(pipeline_start)
            meta: dict[str, Any] = {
                "calendars_searched": list(calendars),
                "events_fetched": len(events),
                "strategy": strategy.kind,
                "strategy_reason": reason,
                "strategies_used": strategies_used or [strategy.kind],
                "candidates_considered": sum(len(c) for _, c in work),
                "dropped_candidates": dropped,
                "window": {"time_min": time_min.isoformat(), "time_max": time_max.isoformat()},
                "timing_ms": timing_ms,
            }
            logger.search_finished(
                targets=len(classification.targets),
                days=len(opportunities),
                warnings=len(warnings),
            )
            return OpportunitySearchResponse(
                targets=classification.targets,
                opportunities_by_day=opportunities,
                warnings=warnings,
                meta=meta,
            )
        except NearbookError as e:
            logger.error(f"Search failed during {stage}: {e}")
            logger.stage(SearchStage.FAILED)
            logger.search_finished(targets=0, days=0, warnings=0, success=False)
            raise
        finally:
            for used in chain:
                await used.aclose()
