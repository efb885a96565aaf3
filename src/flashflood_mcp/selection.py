"""Which basin/station tabs are open and which one is in front."""

import logging
from enum import Enum
from typing import Callable

from .models import BasinTab, Selection, Station

logger = logging.getLogger(__name__)


class ActiveTab(str, Enum):
    NONE = "none"
    BASIN = "basin"
    STATION = "station"


class SelectionState:
    """Tab state for one user session.

    A basin tab and a station tab can be open together; active_tab says
    which one is shown. The preview (a hovered or popped-up station) never
    changes the active tab and is cleared by every tab change.

    on_tab_closed receives the selection key of each closed tab so per-tab
    caches and overrides can be dropped.
    """

    def __init__(self, on_tab_closed: Callable[[str], None] | None = None):
        self.on_tab_closed = on_tab_closed
        self.active_tab = ActiveTab.NONE
        self.basin_tab: BasinTab | None = None
        self.station_tab: Station | None = None
        self.selected_station_id: str | None = None
        self.preview_station_id: str | None = None

    @property
    def current(self) -> Selection | None:
        """The selection the event panel shows, if any."""
        if self.active_tab == ActiveTab.STATION and self.station_tab is not None:
            return Selection.for_station(self.station_tab)
        if self.active_tab == ActiveTab.BASIN and self.basin_tab is not None:
            return Selection.for_basin(self.basin_tab.basin_name)
        return None

    @property
    def is_open(self) -> bool:
        return self.current is not None

    def set_preview(self, station_id: str | None) -> None:
        self.preview_station_id = station_id

    def clear_preview(self) -> None:
        self.preview_station_id = None

    def commit_station(self, station: Station) -> None:
        """Open (or replace) the station tab and bring it to the front."""
        previous = self.station_tab
        self.selected_station_id = station.station_id
        self.station_tab = station
        self.preview_station_id = None
        self.active_tab = ActiveTab.STATION
        if previous is not None and previous.station_id != station.station_id:
            self._closed(Selection.for_station(previous))

    def open_basin(self, basin_name: str, station_count: int) -> None:
        """Open (or replace) the basin tab and bring it to the front."""
        previous = self.basin_tab
        self.basin_tab = BasinTab(basin_name=basin_name, station_count=station_count)
        self.preview_station_id = None
        self.active_tab = ActiveTab.BASIN
        if previous is not None and previous.basin_name != basin_name:
            self._closed(Selection.for_basin(previous.basin_name))

    def activate_station_tab(self) -> bool:
        if self.station_tab is None:
            return False
        self.active_tab = ActiveTab.STATION
        self.selected_station_id = self.station_tab.station_id
        self.preview_station_id = None
        return True

    def activate_basin_tab(self) -> bool:
        if self.basin_tab is None:
            return False
        self.active_tab = ActiveTab.BASIN
        self.preview_station_id = None
        return True

    def close_station_tab(self) -> None:
        closed = self.station_tab
        self.station_tab = None
        self.selected_station_id = None
        self.preview_station_id = None
        self.active_tab = ActiveTab.BASIN if self.basin_tab is not None else ActiveTab.NONE
        if closed is not None:
            self._closed(Selection.for_station(closed))

    def close_basin_tab(self) -> None:
        closed = self.basin_tab
        self.basin_tab = None
        self.preview_station_id = None
        if self.active_tab == ActiveTab.BASIN:
            if self.station_tab is not None:
                self.active_tab = ActiveTab.STATION
                self.selected_station_id = self.station_tab.station_id
            else:
                self.active_tab = ActiveTab.NONE
                self.selected_station_id = None
        if closed is not None:
            self._closed(Selection.for_basin(closed.basin_name))

    def _closed(self, selection: Selection) -> None:
        logger.debug("Closed tab %s", selection.key)
        if self.on_tab_closed is not None:
            self.on_tab_closed(selection.key)
