"""Client for the flash-flood station and event store API."""

import asyncio
import json
import logging
import os
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .exceptions import FloodConnectionError, FloodQueryError
from .models import EventsResponse, Selection, Station, StationsPage

logger = logging.getLogger(__name__)

BASE_URL = os.environ.get("FLASHFLOOD_API_URL", "http://localhost:3000/api")
USER_AGENT = "flashflood-mcp/0.1.0"
REQUEST_TIMEOUT = 30.0
STATION_PAGE_SIZE = 1000
STATION_HAS_DATA = True


def _flag(value: bool) -> str:
    return "1" if value else "0"


class FloodClient:
    """Client for the station listing and event query endpoints."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Make a request to the store and decode its JSON body."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        url = f"{self.base_url}{path}"
        logger.debug("%s %s %s", method, url, kwargs.get("params"))

        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise FloodConnectionError(f"Request timeout after {REQUEST_TIMEOUT}s") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise FloodQueryError("Station, basin or resource not found.") from e
            elif status == 429:
                raise FloodConnectionError("Rate limit exceeded.") from e
            elif status >= 500:
                raise FloodConnectionError(
                    f"Flood API server error ({status}). Please try again later."
                ) from e
            raise FloodConnectionError(f"Request failed with status {status}") from e
        except httpx.RequestError as e:
            raise FloodConnectionError(f"Network error: {e}") from e
        except json.JSONDecodeError as e:
            raise FloodQueryError(f"Invalid JSON response: {e}") from e

    async def list_stations(
        self,
        page: int = 1,
        page_size: int = STATION_PAGE_SIZE,
        has_data: bool | None = STATION_HAS_DATA,
    ) -> StationsPage:
        """Fetch one page of the station listing.

        Args:
            page: 1-based page number
            page_size: Stations per page
            has_data: Restrict to stations with (True) or without (False)
                recorded data; None lists all stations

        Returns:
            The page items and pagination info.
        """
        params = {"page": str(page), "pageSize": str(page_size)}
        if has_data is not None:
            params["hasData"] = _flag(has_data)

        data = await self._request("GET", "/stations", params=params)
        try:
            return StationsPage.model_validate(data)
        except ValidationError as e:
            raise FloodQueryError(f"Unexpected station listing: {e}") from e

    async def fetch_all_stations(
        self,
        page_size: int = STATION_PAGE_SIZE,
        has_data: bool | None = STATION_HAS_DATA,
    ) -> list[Station]:
        """Page through the whole station listing.

        The first page tells how many pages exist; the rest are fetched
        concurrently and concatenated in page order.
        """
        first = await self.list_stations(1, page_size, has_data)
        stations = list(first.items)

        total_pages = first.pagination.total_pages or 1
        if total_pages > 1:
            pages = await asyncio.gather(
                *(
                    self.list_stations(page, page_size, has_data)
                    for page in range(2, total_pages + 1)
                )
            )
            for page_data in pages:
                stations.extend(page_data.items)

        logger.info("Loaded %d stations over %d page(s)", len(stations), total_pages)
        return stations

    async def get_events(
        self,
        selection: Selection,
        peak_start: str | None = None,
        peak_end: str | None = None,
        include_recent: bool = False,
        include_matched_series: bool = False,
        include_matched_events: bool = False,
    ) -> EventsResponse:
        """Query flood events for a station or basin.

        Args:
            selection: Station or basin to query
            peak_start: Inclusive lower bound on peak date (YYYY-MM-DD)
            peak_end: Inclusive upper bound on peak date (YYYY-MM-DD)
            include_recent: Include the most recent events
            include_matched_series: Include per-event peak points in range
            include_matched_events: Include full event rows in range

        Returns:
            Summary scoped to the range plus any requested detail.
        """
        if selection.kind == "station":
            path = f"/stations/{quote(selection.name, safe='')}/events"
        else:
            path = f"/basins/{quote(selection.name, safe='')}/events"

        params = {"includeRecent": _flag(include_recent)}
        if peak_start:
            params["peakStart"] = peak_start
        if peak_end:
            params["peakEnd"] = peak_end
        if include_matched_series:
            params["includeMatchedSeries"] = "1"
        if include_matched_events:
            params["includeMatchedEvents"] = "1"

        data = await self._request("GET", path, params=params)
        if not isinstance(data, dict) or "summary" not in data:
            raise FloodQueryError("Event response has no summary.")
        try:
            return EventsResponse.model_validate(data)
        except ValidationError as e:
            raise FloodQueryError(f"Unexpected event response: {e}") from e
