"""Search-to-panel coordination for one user session."""

import logging
import os

from pydantic import BaseModel

from .events import RANGE_DEBOUNCE_SECONDS, EventAggregator, EventPanel, chart_title
from .exceptions import FloodApiError
from .flood_client import FloodClient
from .models import EventRecord, SearchSuggestion, Station
from .selection import ActiveTab, SelectionState
from .station_search import StationSearch, load_station_snapshot, station_display_name

logger = logging.getLogger(__name__)

STATIONS_FILE = os.environ.get("FLASHFLOOD_STATIONS_FILE")

EMPTY_KEYWORD_HINT = "Please enter a basin / station name."
NOT_READY_HINT = "Station list is not ready yet. Please try again shortly."
NO_MATCH_HINT = "No results matched. Try a more complete name."
STATIONS_ERROR = "Failed to load stations."


class SearchOutcome(BaseModel):
    matched: bool
    type: str | None = None  # "Basin" or "Station"
    label: str | None = None
    hint: str = ""


class FloodExplorer:
    """Ties the station search, tab state and event aggregation together."""

    def __init__(
        self,
        client: FloodClient,
        stations_file: str | None = STATIONS_FILE,
        debounce: float = RANGE_DEBOUNCE_SECONDS,
    ):
        self.client = client
        self.stations_file = stations_file
        self.events = EventAggregator(client, debounce=debounce)
        self.selection = SelectionState(on_tab_closed=self.events.discard)
        self.search_index: StationSearch | None = None
        self.stations_error: str | None = None

    @property
    def ready(self) -> bool:
        return self.search_index is not None

    def use_stations(self, stations: list[Station]) -> None:
        """Replace the station set and rebuild the search indexes."""
        self.search_index = StationSearch(stations)
        self.stations_error = None

    async def ensure_stations(self) -> bool:
        """Load the station set once; returns whether it is available."""
        if self.search_index is not None:
            return True
        try:
            if self.stations_file:
                stations = load_station_snapshot(self.stations_file)
            else:
                stations = await self.client.fetch_all_stations()
        except (FloodApiError, OSError, ValueError) as e:
            logger.warning("Station loading failed: %s", e)
            self.stations_error = STATIONS_ERROR
            return False
        self.use_stations(stations)
        return True

    def suggest(self, keyword: str) -> list[SearchSuggestion]:
        if self.search_index is None:
            return []
        return self.search_index.suggest(keyword)

    def typing_hint(self, keyword: str) -> str:
        """Hint shown while typing: no-match when nothing is suggested."""
        if not keyword.strip():
            return ""
        return "" if self.suggest(keyword) else NO_MATCH_HINT

    def search(self, keyword: str) -> SearchOutcome:
        """Resolve a keyword and open the matching basin or station tab."""
        if not (keyword or "").strip():
            self.selection.clear_preview()
            return SearchOutcome(matched=False, hint=EMPTY_KEYWORD_HINT)
        if self.search_index is None:
            self.selection.clear_preview()
            return SearchOutcome(matched=False, hint=NOT_READY_HINT)

        match = self.search_index.resolve(keyword)
        if match.kind == "basin":
            self.open_basin(match.basin)
            return SearchOutcome(matched=True, type="Basin", label=match.basin)
        if match.kind == "station":
            station = match.station
            self.selection.commit_station(station)
            return SearchOutcome(
                matched=True,
                type="Station",
                label=station.station_name or station_display_name(station),
            )

        self.selection.clear_preview()
        return SearchOutcome(matched=False, hint=NO_MATCH_HINT)

    def find_station(self, station_id: str) -> Station | None:
        if self.search_index is None:
            return None
        return self.search_index.find_station(station_id)

    def select_station(self, station_id: str) -> Station | None:
        station = self.find_station(station_id)
        if station is not None:
            self.selection.commit_station(station)
        return station

    def preview_station(self, station_id: str | None) -> Station | None:
        station = self.find_station(station_id) if station_id else None
        self.selection.set_preview(station.station_id if station else None)
        return station

    def open_basin(self, basin_name: str) -> int:
        """Open a basin tab; returns its station count."""
        count = 0
        if self.search_index is not None:
            count = len(self.search_index.basin_stations(basin_name))
        self.selection.open_basin(basin_name, count)
        return count

    def current_name(self) -> str:
        if self.selection.active_tab == ActiveTab.STATION and self.selection.station_tab:
            return f"station {station_display_name(self.selection.station_tab)}"
        basin = self.selection.basin_tab.basin_name if self.selection.basin_tab else None
        return f"basin {basin or 'Unknown'}"

    def set_date_range(self, start: str | None = None, end: str | None = None) -> bool:
        current = self.selection.current
        if current is None:
            return False
        if start:
            self.events.set_start_date(current.key, start)
        if end:
            self.events.set_end_date(current.key, end)
        return True

    def set_chart(self, preset: str | None) -> bool:
        current = self.selection.current
        if current is None:
            return False
        self.events.set_chart_preset(current.key, preset)
        return True

    async def panel(self) -> EventPanel | None:
        current = self.selection.current
        if current is None:
            return None
        return await self.events.load(current)

    def panel_title(self, panel: EventPanel) -> str:
        return chart_title(
            self.current_name(), panel.chart_preset, panel.range_start, panel.range_end
        )

    async def matched_event_rows(self) -> list[EventRecord]:
        current = self.selection.current
        if current is None:
            return []
        return await self.events.matched_events(current)
