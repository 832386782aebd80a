"""Candidate search: events close in time to a target that have a usable location."""

import logging
from collections.abc import Iterable
from datetime import UTC, tzinfo

from nearbook.contracts.calendar_v1 import CalendarEvent
from nearbook.orchestrators.booking.classifier import matches_marker
from nearbook.orchestrators.booking.constants import (
    DEFAULT_CANDIDATE_WINDOW_DAYS,
    DEFAULT_MARKER,
    SECONDS_PER_DAY,
)

logger = logging.getLogger(__name__)


def day_gap(a: CalendarEvent, b: CalendarEvent, default_tz: tzinfo = UTC) -> float:
    """Absolute start-to-start gap in fractional days (not rounded).

    An 18-hour gap is 0.75 days, a 25-hour gap is ~1.04 days. All-day starts count
    from local midnight in default_tz.
    """
    delta = a.start.instant(default_tz) - b.start.instant(default_tz)
    return abs(delta.total_seconds()) / SECONDS_PER_DAY


def target_day_key(target: CalendarEvent, default_tz: tzinfo = UTC) -> str:
    """ISO date of the target's start day in the user's timezone."""
    return target.start.local_date(default_tz).isoformat()


def find_candidates(
    target: CalendarEvent,
    pool: Iterable[CalendarEvent],
    window_days: float = DEFAULT_CANDIDATE_WINDOW_DAYS,
    marker: str = DEFAULT_MARKER,
    default_tz: tzinfo = UTC,
) -> list[CalendarEvent]:
    """Events from pool within window_days of target, in pool order.

    Returns [] when the target has no location; callers report that as a
    no-location condition.
    """
    if not target.has_location:
        return []

    out: list[CalendarEvent] = []
    for event in pool:
        if event.id == target.id:
            continue
        if not event.has_location:
            continue
        if matches_marker(event.title, marker):
            continue
        if day_gap(event, target, default_tz) > window_days:
            continue
        out.append(event)

    logger.debug(
        "Candidates for %r: %s within ±%s days", target.title, len(out), window_days
    )
    return out
