"""Tests for the flood event store client."""

import httpx
import pytest

from conftest import BASE_URL, FakeStore, make_station
from flashflood_mcp.exceptions import FloodConnectionError, FloodQueryError
from flashflood_mcp.flood_client import FloodClient
from flashflood_mcp.models import Selection


@pytest.mark.asyncio
async def test_client_initialization():
    """Test client context manager."""
    async with FloodClient(BASE_URL) as client:
        assert client.client is not None
    assert client.client is None


@pytest.mark.asyncio
async def test_request_outside_context_manager():
    client = FloodClient(BASE_URL)
    with pytest.raises(RuntimeError):
        await client.list_stations()


@pytest.mark.asyncio
async def test_fetch_all_stations_pages_in_order():
    """Every page is fetched and concatenated in page order."""
    store = FakeStore(stations=[make_station(f"S{i:02d}", f"Station {i}") for i in range(5)])
    async with FloodClient(BASE_URL, transport=store.transport()) as client:
        stations = await client.fetch_all_stations(page_size=2)

    assert [s.station_id for s in stations] == ["S00", "S01", "S02", "S03", "S04"]
    pages = sorted(int(r.url.params["page"]) for r in store.requests)
    assert pages == [1, 2, 3]
    assert all(r.url.params["hasData"] == "1" for r in store.requests)


@pytest.mark.asyncio
async def test_fetch_all_stations_single_page():
    store = FakeStore(stations=[make_station("S1", "Midori")])
    async with FloodClient(BASE_URL, transport=store.transport()) as client:
        stations = await client.fetch_all_stations()
    assert len(stations) == 1
    assert len(store.requests) == 1


@pytest.mark.asyncio
async def test_station_event_query_parameters(arakawa_store):
    async with FloodClient(BASE_URL, transport=arakawa_store.transport()) as client:
        response = await client.get_events(
            Selection(kind="station", name="A"),
            peak_start="2019-01-01",
            peak_end="2019-12-31",
            include_matched_series=True,
        )

    request = arakawa_store.requests[-1]
    assert request.url.path == "/api/stations/A/events"
    assert request.url.params["includeRecent"] == "0"
    assert request.url.params["peakStart"] == "2019-01-01"
    assert request.url.params["peakEnd"] == "2019-12-31"
    assert request.url.params["includeMatchedSeries"] == "1"
    assert "includeMatchedEvents" not in request.url.params

    assert response.summary.matched_events == 1
    assert response.summary.max_peak_value == pytest.approx(7.2)
    assert [p.id for p in response.matched_series] == [1]


@pytest.mark.asyncio
async def test_basin_name_is_percent_encoded():
    store = FakeStore(events={"b:Tone River": []})
    async with FloodClient(BASE_URL, transport=store.transport()) as client:
        response = await client.get_events(Selection(kind="basin", name="Tone River"))

    assert store.requests[-1].url.raw_path.startswith(b"/api/basins/Tone%20River/events")
    assert response.summary.matched_events == 0
    assert response.summary.max_peak_value is None
    assert response.matched_series is None


@pytest.mark.asyncio
async def test_not_found_raises_query_error():
    store = FakeStore()
    async with FloodClient(BASE_URL, transport=store.transport()) as client:
        with pytest.raises(FloodQueryError):
            await client.get_events(Selection(kind="station", name="missing"))


@pytest.mark.asyncio
async def test_server_error_raises_connection_error(arakawa_store):
    arakawa_store.fail_status["s:A"] = 503
    async with FloodClient(BASE_URL, transport=arakawa_store.transport()) as client:
        with pytest.raises(FloodConnectionError):
            await client.get_events(Selection(kind="station", name="A"))


@pytest.mark.asyncio
async def test_transport_error_raises_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with FloodClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(FloodConnectionError):
            await client.list_stations()


@pytest.mark.asyncio
async def test_response_without_summary():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"items": []}))
    async with FloodClient(BASE_URL, transport=transport) as client:
        with pytest.raises(FloodQueryError):
            await client.get_events(Selection(kind="basin", name="Tone"))


@pytest.mark.asyncio
async def test_invalid_json_body():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
    async with FloodClient(BASE_URL, transport=transport) as client:
        with pytest.raises(FloodQueryError):
            await client.get_events(Selection(kind="basin", name="Tone"))


if __name__ == "__main__":
    pytest.main([__file__])
