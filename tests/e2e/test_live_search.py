import pytest

from nearbook.core.errors import GeodataUnavailableError
from nearbook.interfaces.cli import MAPS_CHECK_DESTINATION, MAPS_CHECK_ORIGIN


@pytest.mark.asyncio
async def test_live_search_returns_consumer_shape(live_search):
    orchestrator, _ = live_search
    response = await orchestrator.search()

    payload = response.to_consumer_dict()
    assert set(payload) >= {"targets", "opportunitiesByDay"}
    for day, opp in payload["opportunitiesByDay"].items():
        distances = [c["distanceKm"] for c in opp["candidates"]]
        assert distances == sorted(distances)
        assert len(day) == 10


@pytest.mark.asyncio
async def test_live_all_calendars(live_search):
    orchestrator, _ = live_search
    response = await orchestrator.search(calendar_ids=["all"])
    assert response.meta["calendars_searched"]


@pytest.mark.asyncio
async def test_live_driving_distance(live_search):
    _, geodata = live_search
    if geodata.routing is None:
        pytest.skip("no routing key configured")
    try:
        km = await geodata.routing.driving_distance_km(MAPS_CHECK_ORIGIN, MAPS_CHECK_DESTINATION)
    except GeodataUnavailableError as e:
        pytest.skip(f"routing service unavailable: {e}")
    assert km is not None and km > 0
