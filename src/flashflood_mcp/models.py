"""Data models for the flash-flood station/event store and derived views."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Station(BaseModel):
    """Represents a river-monitoring station."""

    model_config = ConfigDict(frozen=True)

    station_id: str
    latitude: float | None = None
    longitude: float | None = None
    basin_name: str | None = None
    river_name: str | None = None
    station_name: str | None = None
    station_name2: str | None = None
    station_name3: str | None = None
    description: str | None = None
    has_data: bool = False


class Pagination(BaseModel):
    page: int
    page_size: int = Field(alias="pageSize")
    total: int
    total_pages: int = Field(alias="totalPages")


class StationsPage(BaseModel):
    """One page of the station listing."""

    items: list[Station]
    pagination: Pagination


class EventSummary(BaseModel):
    """Aggregated event statistics for a station or basin.

    Every numeric/time field is None when no events matched.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_events: int | None = None
    matched_events: int = 0
    first_start_time: str | None = None
    last_end_time: str | None = None
    min_peak_time: str | None = None
    max_peak_time: str | None = None
    max_peak_value: float | None = None
    avg_peak_value: float | None = None
    avg_rise_time: float | None = None
    avg_fall_time: float | None = None


class MatchedPoint(BaseModel):
    """A flood event whose peak falls inside the requested range."""

    id: int
    peak_time: str | None = None
    peak_value: float | None = None
    peak_time_str: str | None = None


class EventRecord(BaseModel):
    """A full flood event row (recent events, matched-event detail)."""

    id: int
    station_id: str | None = None
    basin_name: str | None = None
    start_time: str | None = None
    peak_time: str | None = None
    end_time: str | None = None
    start_value: float | None = None
    peak_value: float | None = None
    end_value: float | None = None
    rise_time: float | None = None
    fall_time: float | None = None
    peak_time_str: str | None = None


class EventsResponse(BaseModel):
    """Response of the station/basin event query."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    station_id: str | None = None
    basin_name: str | None = None
    summary: EventSummary
    recent_events: list[EventRecord] = Field(default_factory=list)
    matched_series: list[MatchedPoint] | None = None
    matched_events_detail: list[EventRecord] | None = None


class Selection(BaseModel):
    """The station or basin currently inspected."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["station", "basin"]
    name: str  # station_id or basin name

    @classmethod
    def for_station(cls, station: Station) -> "Selection":
        return cls(kind="station", name=station.station_id)

    @classmethod
    def for_basin(cls, basin_name: str) -> "Selection":
        return cls(kind="basin", name=basin_name)

    @property
    def key(self) -> str:
        """Cache key: "s:<station_id>" or "b:<basin_name>"."""
        prefix = "s" if self.kind == "station" else "b"
        return f"{prefix}:{self.name}"


class DateRange(BaseModel):
    """Inclusive date-only range over the peak-time axis."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")
        return self


class MonthlyFrequencyPoint(BaseModel):
    month: int  # 1..12
    count: int = 0


class PeakDistributionPoint(BaseModel):
    rank: int  # 1-based
    peak_value: float


class BasinIndexEntry(BaseModel):
    name: str
    normalized_name: str


class StationIndexEntry(BaseModel):
    station: Station
    names: list[str]  # normalized, non-empty, first-seen order


class SearchSuggestion(BaseModel):
    value: str
    type: Literal["Basin", "Station"]


class SearchMatch(BaseModel):
    """Result of resolving a free-text keyword.

    kind is "none" with reason "empty" for blank input and
    "no_match" when nothing qualified.
    """

    kind: Literal["basin", "station", "none"]
    basin: str | None = None
    station: Station | None = None
    reason: Literal["empty", "no_match"] | None = None


class BasinTab(BaseModel):
    basin_name: str
    station_count: int
