"""Distance strategies: driving distance, geocode + great circle, time-gap estimate.

A strategy is selected once per search call by select_strategy(), in that priority
order, based on which geodata services are configured. When its service turns out to be
unreachable the ranker steps down through fallback_strategies(). Strategies never retry.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from datetime import UTC, tzinfo
from typing import Protocol

from nearbook.contracts.calendar_v1 import CalendarEvent, Coordinates
from nearbook.orchestrators.booking.candidates import day_gap
from nearbook.orchestrators.booking.constants import (
    DEFAULT_ESTIMATE_KM_PER_DAY,
    DEFAULT_ESTIMATE_MIN_KM,
    DEFAULT_ESTIMATE_WINDOW_DAYS,
    EARTH_RADIUS_KM,
    DistanceStrategyKind,
)
from nearbook.orchestrators.booking.models import DistanceResult

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Coordinates | None: ...


class RoutingService(Protocol):
    async def driving_distance_km(self, origin: str, destination: str) -> float | None: ...


def haversine_km(a: Coordinates, b: Coordinates, radius_km: float = EARTH_RADIUS_KM) -> float:
    """Great-circle distance on a spherical Earth."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * radius_km * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _same_place(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


class DistanceStrategy(ABC):
    """Resolves the distance from a target (origin) to a candidate (destination)."""

    kind: DistanceStrategyKind
    # When False the candidate time window stands in for the distance threshold
    applies_threshold: bool = True

    def accepts(self, origin: CalendarEvent, destination: CalendarEvent) -> bool:
        """Pre-filter before resolve(); False excludes without counting a failure."""
        return True

    @property
    def queues_requests(self) -> bool:
        """True when the backing service rate-limits itself and times each request.

        Time spent waiting for a turn must then not count against a lookup timeout.
        """
        return False

    @abstractmethod
    async def resolve(
        self, origin: CalendarEvent, destination: CalendarEvent
    ) -> DistanceResult | None:
        """Distance for the pair, or None when this pair cannot be resolved.

        May raise GeodataUnavailableError when the backing service is unusable.
        """

    async def aclose(self) -> None:
        """Release per-call state."""


class DrivingDistanceStrategy(DistanceStrategy):
    kind = DistanceStrategyKind.DRIVING

    def __init__(self, routing: RoutingService):
        self._routing = routing

    async def resolve(
        self, origin: CalendarEvent, destination: CalendarEvent
    ) -> DistanceResult | None:
        o = (origin.location or "").strip()
        d = (destination.location or "").strip()
        if not o or not d:
            return None
        if _same_place(o, d):
            return DistanceResult(km=0.0, strategy=self.kind)
        km = await self._routing.driving_distance_km(o, d)
        if km is None or km < 0:
            return None
        return DistanceResult(km=km, strategy=self.kind)


class GreatCircleStrategy(DistanceStrategy):
    """Geocodes both ends and measures the haversine distance.

    Each distinct address is geocoded at most once for the lifetime of the strategy,
    which is a single search call.
    """

    kind = DistanceStrategyKind.GREAT_CIRCLE

    def __init__(self, geocoder: Geocoder):
        self._geocoder = geocoder
        self._lookups: dict[str, asyncio.Task[Coordinates | None]] = {}

    @property
    def queues_requests(self) -> bool:
        return getattr(self._geocoder, "min_interval_seconds", 0) > 0

    async def _coordinates(self, address: str) -> Coordinates | None:
        key = address.strip().casefold()
        task = self._lookups.get(key)
        if task is None:
            task = asyncio.ensure_future(self._geocoder.geocode(address.strip()))
            self._lookups[key] = task
        # shield: one caller timing out must not cancel a lookup others share
        return await asyncio.shield(task)

    async def resolve(
        self, origin: CalendarEvent, destination: CalendarEvent
    ) -> DistanceResult | None:
        o = (origin.location or "").strip()
        d = (destination.location or "").strip()
        if not o or not d:
            return None
        if _same_place(o, d):
            return DistanceResult(km=0.0, strategy=self.kind)
        a, b = await asyncio.gather(self._coordinates(o), self._coordinates(d))
        if a is None or b is None:
            return None
        return DistanceResult(km=haversine_km(a, b), strategy=self.kind)

    async def aclose(self) -> None:
        pending = [t for t in self._lookups.values() if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        # retrieve exceptions so finished failed lookups are not reported as unhandled
        for t in self._lookups.values():
            if t.done() and not t.cancelled():
                t.exception()
        self._lookups.clear()


class EstimateStrategy(DistanceStrategy):
    """Synthetic distance from the time gap, for when no geodata can be used.

    Results are flagged estimated=True; only candidates within window_days are kept.
    """

    kind = DistanceStrategyKind.ESTIMATE
    applies_threshold = False

    def __init__(
        self,
        window_days: float = DEFAULT_ESTIMATE_WINDOW_DAYS,
        km_per_day: float = DEFAULT_ESTIMATE_KM_PER_DAY,
        min_km: float = DEFAULT_ESTIMATE_MIN_KM,
        default_tz: tzinfo = UTC,
    ):
        self.window_days = window_days
        self.km_per_day = km_per_day
        self.min_km = min_km
        self._tz = default_tz

    def accepts(self, origin: CalendarEvent, destination: CalendarEvent) -> bool:
        return day_gap(origin, destination, self._tz) <= self.window_days

    def estimate_km(self, gap_days: float) -> float:
        return max(gap_days * self.km_per_day, self.min_km)

    async def resolve(
        self, origin: CalendarEvent, destination: CalendarEvent
    ) -> DistanceResult | None:
        gap = day_gap(origin, destination, self._tz)
        if gap > self.window_days:
            return None
        return DistanceResult(km=self.estimate_km(gap), strategy=self.kind, estimated=True)


def select_strategy(
    mode: str,
    routing: RoutingService | None,
    geocoder: Geocoder | None,
    estimate: EstimateStrategy,
) -> tuple[DistanceStrategy, str]:
    """Pick the strategy for one search call. Returns (strategy, reason).

    mode is auto | driving | great_circle | estimate. An explicit mode whose service
    is not configured falls through to the next available strategy.
    """
    order = [
        DistanceStrategyKind.DRIVING,
        DistanceStrategyKind.GREAT_CIRCLE,
        DistanceStrategyKind.ESTIMATE,
    ]
    if mode in order:
        order = order[order.index(DistanceStrategyKind(mode)) :]

    for kind in order:
        if kind == DistanceStrategyKind.DRIVING and routing is not None:
            return DrivingDistanceStrategy(routing), "routing service configured"
        if kind == DistanceStrategyKind.GREAT_CIRCLE and geocoder is not None:
            reason = "geocoding service configured"
            if routing is None and mode in ("auto", DistanceStrategyKind.DRIVING):
                reason = "no routing service; using geocoding"
            return GreatCircleStrategy(geocoder), reason
    if mode == DistanceStrategyKind.ESTIMATE:
        return estimate, "estimate requested"
    return estimate, "no routing or geocoding service configured"


def fallback_strategies(
    primary: DistanceStrategy,
    geocoder: Geocoder | None,
    estimate: EstimateStrategy,
) -> list[DistanceStrategy]:
    """Strategies to step down to, in order, when primary's service is unreachable."""
    if primary.kind == DistanceStrategyKind.ESTIMATE:
        return []
    chain: list[DistanceStrategy] = []
    if primary.kind == DistanceStrategyKind.DRIVING and geocoder is not None:
        chain.append(GreatCircleStrategy(geocoder))
    chain.append(estimate)
    return chain
