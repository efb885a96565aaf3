"""Shared fixtures: an in-memory station/event store behind httpx.MockTransport."""

import math

import httpx
import pytest

BASE_URL = "http://testserver/api"


def make_station(station_id, name=None, basin=None, name2=None, name3=None, **extra):
    return {
        "station_id": station_id,
        "latitude": extra.get("latitude", 35.0),
        "longitude": extra.get("longitude", 139.0),
        "basin_name": basin,
        "river_name": extra.get("river_name"),
        "station_name": name,
        "station_name2": name2,
        "station_name3": name3,
        "description": None,
        "has_data": extra.get("has_data", 1),
    }


def make_event(event_id, peak_time, peak_value, station_id="S1", basin=None):
    return {
        "id": event_id,
        "station_id": station_id,
        "basin_name": basin,
        "start_time": None,
        "peak_time": peak_time,
        "end_time": None,
        "start_value": None,
        "peak_value": peak_value,
        "end_value": None,
        "rise_time": 2.0,
        "fall_time": 4.0,
        "peak_time_str": peak_time,
    }


def summarize(events):
    """Summary the way the real store computes it."""
    values = [e["peak_value"] for e in events if e["peak_value"] is not None]
    times = [e["peak_time"] for e in events if e["peak_time"]]
    if not events:
        return {
            "totalEvents": 0,
            "matchedEvents": 0,
            "firstStartTime": None,
            "lastEndTime": None,
            "minPeakTime": None,
            "maxPeakTime": None,
            "maxPeakValue": None,
            "avgPeakValue": None,
            "avgRiseTime": None,
            "avgFallTime": None,
        }
    finite = [v for v in values if math.isfinite(v)]
    return {
        "totalEvents": len(events),
        "matchedEvents": len(events),
        "firstStartTime": None,
        "lastEndTime": None,
        "minPeakTime": min(times) if times else None,
        "maxPeakTime": max(times) if times else None,
        "maxPeakValue": max(finite) if finite else None,
        "avgPeakValue": sum(finite) / len(finite) if finite else None,
        "avgRiseTime": 2.0,
        "avgFallTime": 4.0,
    }


class FakeStore:
    """Serves /stations and /{stations,basins}/{id}/events from memory."""

    def __init__(self, stations=None, events=None):
        self.stations = stations or []
        # "s:<id>" / "b:<name>" -> list of event dicts
        self.events = events or {}
        self.requests: list[httpx.Request] = []
        self.fail_status: dict[str, int] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def event_requests(self, key=None):
        found = [r for r in self.requests if r.url.path.endswith("/events")]
        if key is None:
            return found
        return [r for r in found if self._key_for(r.url.path) == key]

    @staticmethod
    def _key_for(path):
        parts = path.split("/")
        # ['', 'api', 'stations'|'basins', '<id>', 'events']
        prefix = "s" if parts[2] == "stations" else "b"
        return f"{prefix}:{parts[3]}"

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path == "/api/stations":
            page = int(params.get("page", "1"))
            size = int(params.get("pageSize", "200"))
            items = self.stations
            if params.get("hasData") in ("0", "1"):
                items = [s for s in items if s["has_data"] == int(params["hasData"])]
            total = len(items)
            return httpx.Response(
                200,
                json={
                    "items": items[(page - 1) * size : page * size],
                    "pagination": {
                        "page": page,
                        "pageSize": size,
                        "total": total,
                        "totalPages": math.ceil(total / size),
                    },
                },
            )

        if path.endswith("/events"):
            key = self._key_for(path)
            if key in self.fail_status:
                return httpx.Response(self.fail_status[key], json={"error": "boom"})
            events = self.events.get(key)
            if events is None:
                return httpx.Response(404, json={"error": "not found"})

            start = params.get("peakStart")
            end = params.get("peakEnd")
            matched = [
                e
                for e in events
                if (not start or (e["peak_time"] or "")[:10] >= start)
                and (not end or (e["peak_time"] or "")[:10] <= end)
            ]
            body = {"summary": summarize(matched), "recentEvents": []}
            if params.get("includeMatchedSeries") == "1":
                body["matchedSeries"] = [
                    {
                        "id": e["id"],
                        "peak_time": e["peak_time"],
                        "peak_value": e["peak_value"],
                        "peak_time_str": e["peak_time_str"],
                    }
                    for e in matched
                ]
            if params.get("includeMatchedEvents") == "1":
                body["matchedEventsDetail"] = matched
            return httpx.Response(200, json=body)

        return httpx.Response(404, json={"error": "no route"})


@pytest.fixture
def arakawa_store():
    """Three stations in basin Arakawa plus a few elsewhere, with events."""
    stations = [
        make_station("A", "Midori", "Arakawa"),
        make_station("B", "Iwabuchi", "Arakawa", name2="Iwabuchi Suimon"),
        make_station("C", "Yorii", "Arakawa"),
        make_station("D", "Yattajima", "Tone", name2="Tonegawa Yatta"),
        make_station("E", "Kurihashi", "Tone"),
        make_station("F", "Nowhere", None),
    ]
    basin_events = [
        make_event(1, "2019-10-12T21:00:00", 7.2, "A", "Arakawa"),
        make_event(2, "2020-07-04T06:00:00", 3.1, "B", "Arakawa"),
        make_event(3, "2021-08-14T12:00:00", 5.5, "C", "Arakawa"),
        make_event(4, "2022-09-20T03:00:00", 4.8, "A", "Arakawa"),
    ]
    events = {
        "b:Arakawa": basin_events,
        "s:A": [e for e in basin_events if e["station_id"] == "A"],
        "s:B": [e for e in basin_events if e["station_id"] == "B"],
        "s:C": [e for e in basin_events if e["station_id"] == "C"],
        "s:D": [],
        "b:Tone": [],
    }
    return FakeStore(stations=stations, events=events)
