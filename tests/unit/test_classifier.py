from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from nearbook.contracts.calendar_v1 import CalendarEvent, EventTime
from nearbook.orchestrators.booking.classifier import classify, matches_marker

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def _event(event_id: str, title: str | None) -> CalendarEvent:
    return CalendarEvent(
        id=event_id,
        summary=title,
        start=EventTime(date_time=T0),
        end=EventTime(date_time=T0 + timedelta(hours=1)),
    )


def test_marker_match_is_case_insensitive_substring():
    assert matches_marker("Inspect Roof - NEED TO BOOK", "need to book")
    assert matches_marker("need to book: gutter clean", "Need To Book")
    assert not matches_marker("needs booking", "need to book")


def test_untitled_events_are_ordinary():
    result = classify([_event("a", None), _event("b", "")])
    assert result.targets == []
    assert [e.id for e in result.ordinary] == ["a", "b"]


def test_classify_keeps_input_order_on_both_sides():
    events = [
        _event("1", "Dentist"),
        _event("2", "Boiler service - need to book"),
        _event("3", "Lunch"),
        _event("4", "NEED TO BOOK window fitting"),
    ]
    result = classify(events)
    assert [e.id for e in result.targets] == ["2", "4"]
    assert [e.id for e in result.ordinary] == ["1", "3"]


def test_custom_marker():
    result = classify([_event("1", "TBC: survey"), _event("2", "need to book")], marker="tbc")
    assert [e.id for e in result.targets] == ["1"]


TITLES = st.one_of(
    st.none(),
    st.sampled_from(["Need to book roof", "need TO book", "Meeting", "booked", ""]),
    st.text(max_size=20),
)


@pytest.mark.property
@given(st.lists(TITLES, max_size=30))
def test_classification_is_a_partition(titles):
    events = [_event(str(i), t) for i, t in enumerate(titles)]
    result = classify(events)

    target_ids = {e.id for e in result.targets}
    ordinary_ids = {e.id for e in result.ordinary}
    assert target_ids.isdisjoint(ordinary_ids)
    assert target_ids | ordinary_ids == {e.id for e in events}
    assert len(result.targets) + len(result.ordinary) == len(events)
