from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from nearbook.contracts.calendar_v1 import Calendar, CalendarEvent, EventTime
from nearbook.orchestrators.booking.constants import DistanceStrategyKind
from nearbook.orchestrators.booking.models import (
    CandidateJob,
    DayOpportunity,
    OpportunitySearchResponse,
    SearchWarning,
)

GOOGLE_ITEM = {
    "id": "evt1",
    "status": "confirmed",
    "summary": "Inspect Roof - need to book",
    "location": "10 High St",
    "htmlLink": "https://www.google.com/calendar/event?eid=abc",
    "start": {"dateTime": "2026-03-10T09:00:00-05:00", "timeZone": "America/New_York"},
    "end": {"dateTime": "2026-03-10T10:00:00-05:00", "timeZone": "America/New_York"},
    "organizer": {"email": "me@example.com"},
}


def test_event_from_google_wire_shape():
    event = CalendarEvent.from_google(GOOGLE_ITEM, calendar_id="primary")
    assert event.title == "Inspect Roof - need to book"
    assert event.detail_uri.endswith("eid=abc")
    assert event.calendar_id == "primary"
    assert event.start.instant() == datetime(2026, 3, 10, 14, 0, tzinfo=UTC)
    assert event.start.local_date() == date(2026, 3, 10)

    wire = event.to_wire()
    assert wire["summary"] == event.title
    assert wire["htmlLink"] == event.detail_uri
    assert wire["start"]["dateTime"].startswith("2026-03-10T09:00:00")


def test_all_day_event():
    event = CalendarEvent.from_google(
        {"id": "d", "summary": "Fair", "start": {"date": "2026-03-11"}, "end": {"date": "2026-03-12"}}
    )
    assert event.start.is_all_day
    assert event.start.instant() == datetime(2026, 3, 11, tzinfo=UTC)
    assert not event.has_location


def test_local_date_is_taken_in_the_given_timezone():
    time = EventTime.model_validate({"dateTime": "2026-03-10T21:00:00-05:00"})
    assert time.local_date(ZoneInfo("America/New_York")) == date(2026, 3, 10)
    assert time.local_date(UTC) == date(2026, 3, 11)
    # all-day dates are calendar dates everywhere
    assert EventTime(date=date(2026, 3, 10)).local_date(ZoneInfo("Asia/Tokyo")) == date(2026, 3, 10)


def test_unknown_event_time_zone_falls_back_and_logs(caplog):
    time = EventTime.model_validate(
        {"dateTime": "2026-03-10T09:00:00", "timeZone": "Mars/Olympus_Mons"}
    )
    with caplog.at_level("WARNING"):
        assert time.instant(UTC) == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
    assert "Mars/Olympus_Mons" in caplog.text


@pytest.mark.parametrize(
    "start",
    [
        {},
        {"date": "2026-03-11", "dateTime": "2026-03-11T09:00:00Z"},
    ],
)
def test_event_time_needs_exactly_one_representation(start):
    with pytest.raises(ValidationError):
        EventTime.model_validate(start)


def test_event_must_not_end_before_it_starts():
    item = dict(GOOGLE_ITEM, end={"dateTime": "2026-03-10T08:00:00-05:00"})
    with pytest.raises(ValidationError):
        CalendarEvent.from_google(item)


def test_missing_summary_becomes_empty_title():
    item = {k: v for k, v in GOOGLE_ITEM.items() if k != "summary"}
    assert CalendarEvent.from_google(item).title == ""


def test_calendar_readability():
    assert Calendar.model_validate({"id": "a", "accessRole": "owner"}).is_readable
    assert Calendar.model_validate({"id": "b", "accessRole": "reader"}).is_readable
    assert not Calendar.model_validate({"id": "c", "accessRole": "freeBusyReader"}).is_readable
    assert Calendar.model_validate({"id": "p", "primary": True}).display_name == "Primary"


def _event(event_id: str, day: int) -> CalendarEvent:
    start = datetime(2026, 3, day, 9, tzinfo=UTC)
    return CalendarEvent(
        id=event_id,
        title=event_id,
        start=EventTime(date_time=start),
        end=EventTime(date_time=start + timedelta(hours=1)),
        location="Somewhere",
    )


def test_consumer_dict_shape():
    target_a, target_b = _event("a", 12), _event("b", 10)
    job = CandidateJob(
        event=_event("c", 10),
        distance_km=3.14159,
        estimated=True,
        day_key="2026-03-10",
        strategy=DistanceStrategyKind.ESTIMATE,
    )
    response = OpportunitySearchResponse(
        targets=[target_a, target_b],
        opportunities_by_day={
            "2026-03-12": DayOpportunity(target=target_a, candidates=[job]),
            "2026-03-10": DayOpportunity(
                target=target_b, candidates=[job], directions_url="https://maps"
            ),
        },
        warnings=[
            SearchWarning(source="geodata", message="estimates"),
            SearchWarning(source="calendar:Work", message="could not be read"),
        ],
    )

    out = response.to_consumer_dict()
    assert [t["id"] for t in out["targets"]] == ["a", "b"]
    assert list(out["opportunitiesByDay"]) == ["2026-03-10", "2026-03-12"]
    day = out["opportunitiesByDay"]["2026-03-10"]
    assert day["target"]["id"] == "b"
    assert day["directionsUrl"] == "https://maps"
    assert day["candidates"] == [
        {"event": job.event.to_wire(), "distanceKm": 3.142, "estimated": True}
    ]
    assert "directionsUrl" not in out["opportunitiesByDay"]["2026-03-12"]
    assert out["warning"] == "geodata: estimates; calendar:Work: could not be read"


def test_clean_response_has_no_warning_key():
    out = OpportunitySearchResponse().to_consumer_dict()
    assert out == {"targets": [], "opportunitiesByDay": {}}


def test_day_opportunity_needs_a_candidate():
    with pytest.raises(ValidationError):
        DayOpportunity(target=_event("a", 10), candidates=[])
