"""Calendar contract v1: shared types for events, calendars, and geodata."""

from nearbook.contracts.calendar_v1 import (
    Calendar,
    CalendarEvent,
    Coordinates,
    EventTime,
)

__all__ = [
    "Calendar",
    "CalendarEvent",
    "Coordinates",
    "EventTime",
]
