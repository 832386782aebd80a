"""Calendar contract v1.

Canonical types for data read from the calendar and geodata providers:
  - EventTime / CalendarEvent (Google Calendar event wire shape)
  - Calendar (calendarList entry)
  - Coordinates (geocoder output)

Models accept the Google wire field names (summary, htmlLink, dateTime, ...) and the
Python names; to_wire() dumps back to the wire names.
"""

from __future__ import annotations

import datetime as dt
import logging
from datetime import UTC, datetime, time, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

READABLE_ACCESS_ROLES = frozenset({"reader", "writer", "owner"})

logger = logging.getLogger(__name__)


def _zone(name: str | None, default: tzinfo) -> tzinfo:
    if not name:
        return default
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown event time zone %r; using %s", name, default)
        return default


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventTime(BaseModel):
    """One endpoint of an event: a timed instant or an all-day date, never both."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    date_time: datetime | None = Field(default=None, alias="dateTime")
    date: dt.date | None = Field(default=None)
    time_zone: str | None = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def _exactly_one_representation(self) -> EventTime:
        if (self.date_time is None) == (self.date is None):
            raise ValueError("exactly one of dateTime or date must be set")
        return self

    @property
    def is_all_day(self) -> bool:
        return self.date is not None

    def instant(self, default_tz: tzinfo = UTC) -> datetime:
        """Aware datetime for this endpoint. All-day dates start at local midnight."""
        if self.date_time is not None:
            if self.date_time.tzinfo is None:
                return self.date_time.replace(tzinfo=_zone(self.time_zone, default_tz))
            return self.date_time
        assert self.date is not None
        return datetime.combine(self.date, time.min, tzinfo=_zone(self.time_zone, default_tz))

    def local_date(self, default_tz: tzinfo = UTC) -> dt.date:
        """Calendar date as seen in default_tz (the user's timezone)."""
        if self.date_time is not None:
            return self.instant(default_tz).astimezone(default_tz).date()
        assert self.date is not None
        return self.date


class CalendarEvent(BaseModel):
    """A calendar event as fetched from the event source."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(description="Stable id, unique within its source calendar")
    title: str = Field(default="", alias="summary")
    description: str | None = Field(default=None)
    start: EventTime
    end: EventTime
    location: str | None = Field(default=None)
    detail_uri: str = Field(default="", alias="htmlLink", description="Deep link to the event")
    calendar_id: str | None = Field(default=None, alias="calendarId")

    @field_validator("title", "detail_uri", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value

    @model_validator(mode="after")
    def _start_not_after_end(self) -> CalendarEvent:
        if self.start.instant() > self.end.instant():
            raise ValueError(f"event {self.id!r} starts after it ends")
        return self

    @property
    def has_location(self) -> bool:
        return bool(self.location and self.location.strip())

    @classmethod
    def from_google(cls, item: dict, calendar_id: str | None = None) -> CalendarEvent:
        data = dict(item)
        if calendar_id is not None:
            data["calendarId"] = calendar_id
        return cls.model_validate(data)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------


class Calendar(BaseModel):
    """One calendarList entry."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str
    name: str = Field(default="", alias="summary")
    access_role: str = Field(default="", alias="accessRole")
    primary: bool = Field(default=False)
    description: str | None = Field(default=None)
    background_color: str | None = Field(default=None, alias="backgroundColor")

    @property
    def is_readable(self) -> bool:
        return self.access_role in READABLE_ACCESS_ROLES

    @property
    def display_name(self) -> str:
        return self.name or ("Primary" if self.primary else self.id)


# ---------------------------------------------------------------------------
# Geodata
# ---------------------------------------------------------------------------


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
