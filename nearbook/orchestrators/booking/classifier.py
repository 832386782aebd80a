"""Event classifier: splits events into need-to-book targets and ordinary events."""

import logging
from collections.abc import Iterable

from nearbook.contracts.calendar_v1 import CalendarEvent
from nearbook.orchestrators.booking.constants import DEFAULT_MARKER
from nearbook.orchestrators.booking.models import Classification

logger = logging.getLogger(__name__)


def matches_marker(title: str | None, marker: str = DEFAULT_MARKER) -> bool:
    """Case-insensitive substring match of the marker in the title."""
    if not title or not marker:
        return False
    return marker.casefold() in title.casefold()


def classify(events: Iterable[CalendarEvent], marker: str = DEFAULT_MARKER) -> Classification:
    """Partition events in one pass, keeping input order on both sides."""
    targets: list[CalendarEvent] = []
    ordinary: list[CalendarEvent] = []
    for event in events:
        if matches_marker(event.title, marker):
            targets.append(event)
        else:
            ordinary.append(event)
    logger.debug(
        "Classifier: %s targets, %s ordinary (marker=%r)", len(targets), len(ordinary), marker
    )
    return Classification(targets=targets, ordinary=ordinary)
