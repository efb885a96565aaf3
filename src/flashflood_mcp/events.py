"""Event range aggregation for the selected station or basin.

Lifetime summaries are fetched once per selection key. Ranged queries run
only when a chart preset is active or the range differs from the lifetime
span, and a newer ranged query for the same key cancels the older one.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .exceptions import FloodApiError
from .flood_client import FloodClient
from .models import (
    DateRange,
    EventRecord,
    EventsResponse,
    EventSummary,
    MatchedPoint,
    MonthlyFrequencyPoint,
    PeakDistributionPoint,
    Selection,
)

logger = logging.getLogger(__name__)

RANGE_DEBOUNCE_SECONDS = 0.2
SUMMARY_ERROR = "Failed to load event summary."
RANGE_ERROR = "Failed to load data."

ChartPreset = Literal["timeline_all", "seasonal_frequency", "peak_distribution"]

CHART_PRESETS: dict[str, str] = {
    "timeline_all": "Timeline",
    "seasonal_frequency": "Season",
    "peak_distribution": "Peaks",
}

_CHART_TITLES = {
    "timeline_all": "Event Timeline",
    "seasonal_frequency": "Monthly Event Frequency",
    "peak_distribution": "Peak Exceedance Curve",
}


def to_date_only(value: str | None) -> str | None:
    """Return the YYYY-MM-DD part of a timestamp string."""
    if not value:
        return None
    return value[:10]


def check_date(value: str) -> str:
    """Validate a YYYY-MM-DD date string and return it zero-padded.

    Raises ValueError for any other shape, including ISO week and compact dates.
    """
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e
    return parsed.date().isoformat()


def parse_peak_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


def monthly_frequency(series: list[MatchedPoint]) -> list[MonthlyFrequencyPoint]:
    """Count events per calendar month, all years collapsed.

    Always returns 12 points; points with unparseable peak times are skipped.
    """
    counts = [0] * 12
    for point in series:
        peak = parse_peak_time(point.peak_time)
        if peak is None:
            continue
        counts[peak.month - 1] += 1
    return [
        MonthlyFrequencyPoint(month=month, count=count)
        for month, count in enumerate(counts, start=1)
    ]


def peak_distribution(series: list[MatchedPoint]) -> list[PeakDistributionPoint]:
    """Rank events by descending peak value; ties keep their input order."""
    finite = [
        point.peak_value
        for point in series
        if point.peak_value is not None and math.isfinite(point.peak_value)
    ]
    ordered = sorted(finite, reverse=True)
    return [
        PeakDistributionPoint(rank=rank, peak_value=value)
        for rank, value in enumerate(ordered, start=1)
    ]


def format_number(value: float | None) -> str:
    if value is None or math.isnan(value):
        return "-"
    return f"{value:.2f}"


def format_metrics(summary: EventSummary) -> str:
    """Plain-text peak metrics, one per line."""
    return "\n".join(
        [
            f"Max Peak: {format_number(summary.max_peak_value)}",
            f"Avg Peak: {format_number(summary.avg_peak_value)}",
            f"Avg Rise Time: {format_number(summary.avg_rise_time)}",
            f"Avg Fall Time: {format_number(summary.avg_fall_time)}",
        ]
    )


def chart_title(
    name: str,
    preset: ChartPreset | None,
    start: str | None,
    end: str | None,
) -> str:
    kind = _CHART_TITLES.get(preset or "timeline_all", "Event Timeline")
    return f"{name} · {kind} · {start or 'start'}–{end or 'end'}"


@dataclass
class TabSession:
    """Per-tab overrides. Empty strings mean "use the lifetime bound"."""

    start: str = ""
    end: str = ""
    chart_preset: ChartPreset | None = None


class EventPanel(BaseModel):
    """Everything the event panel shows for one selection."""

    selection_key: str
    summary: EventSummary | None = None
    range_summary: EventSummary | None = None
    min_peak_date: str | None = None
    max_peak_date: str | None = None
    range_start: str | None = None
    range_end: str | None = None
    total_events: int | None = None
    range_matched_events: int | None = None
    chart_preset: ChartPreset | None = None
    series: list[MatchedPoint] = Field(default_factory=list)
    monthly_frequency: list[MonthlyFrequencyPoint] = Field(
        default_factory=lambda: monthly_frequency([])
    )
    peak_distribution: list[PeakDistributionPoint] = Field(default_factory=list)
    error: str | None = None

    @property
    def date_range(self) -> DateRange | None:
        if not self.range_start or not self.range_end:
            return None
        return DateRange(start=self.range_start, end=self.range_end)


class EventAggregator:
    """Caches event queries per selection key and derives chart data.

    Store errors stop here: load() reports them on the returned panel.
    """

    def __init__(self, client: FloodClient, debounce: float = RANGE_DEBOUNCE_SECONDS):
        self.client = client
        self.debounce = debounce
        self._sessions: dict[str, TabSession] = {}
        self._summaries: dict[str, EventSummary] = {}
        self._ranged: dict[tuple[str, str, str, bool], EventsResponse] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._generations: dict[str, int] = {}

    def session(self, key: str) -> TabSession:
        return self._sessions.setdefault(key, TabSession())

    def discard(self, key: str) -> None:
        """Forget everything held for a closed tab."""
        self._sessions.pop(key, None)
        self._summaries.pop(key, None)
        for cache_key in [k for k in self._ranged if k[0] == key]:
            del self._ranged[cache_key]
        task = self._inflight.pop(key, None)
        if task is not None and not task.done():
            task.cancel()
        self._generations[key] = self._generations.get(key, 0) + 1

    def _lifetime_bounds(self, key: str) -> tuple[str | None, str | None]:
        summary = self._summaries.get(key)
        if summary is None:
            return None, None
        return to_date_only(summary.min_peak_time), to_date_only(summary.max_peak_time)

    def effective_range(self, key: str) -> DateRange | None:
        """The tab's range: overrides where set, lifetime bounds elsewhere."""
        min_date, max_date = self._lifetime_bounds(key)
        session = self._sessions.get(key) or TabSession()
        start = session.start or min_date
        end = session.end or max_date
        if not start or not end:
            return None
        if start > end:
            end = start
        return DateRange(start=start, end=end)

    def set_start_date(self, key: str, value: str) -> None:
        """Set the range start, pulling the end forward if it would invert."""
        value = check_date(value)
        _, max_date = self._lifetime_bounds(key)
        session = self.session(key)
        range_end = session.end or max_date
        if range_end and value > range_end:
            session.end = value
        session.start = value

    def set_end_date(self, key: str, value: str) -> None:
        """Set the range end, pulling the start back if it would invert."""
        value = check_date(value)
        min_date, _ = self._lifetime_bounds(key)
        session = self.session(key)
        range_start = session.start or min_date
        if range_start and value < range_start:
            session.start = value
        session.end = value

    def reset_range(self, key: str) -> None:
        session = self.session(key)
        session.start = ""
        session.end = ""

    def set_chart_preset(self, key: str, preset: str | None) -> ChartPreset | None:
        """Select a chart preset; choosing the active one again clears it."""
        if preset is not None and preset not in CHART_PRESETS:
            raise ValueError(
                f"Unknown chart preset '{preset}'. Use one of: {', '.join(CHART_PRESETS)}"
            )
        session = self.session(key)
        session.chart_preset = None if preset == session.chart_preset else preset
        return session.chart_preset

    async def get_summary(self, selection: Selection) -> EventSummary:
        """Lifetime summary for a selection, fetched once per key."""
        key = selection.key
        cached = self._summaries.get(key)
        if cached is not None:
            return cached
        generation = self._generations.get(key)
        response = await self.client.get_events(selection, include_recent=False)
        # A tab closed while the fetch was in flight must not be repopulated
        if self._generations.get(key) == generation:
            self._summaries[key] = response.summary
        return response.summary

    def _needs_range_fetch(self, key: str, date_range: DateRange) -> bool:
        session = self._sessions.get(key)
        if session is not None and session.chart_preset:
            return True
        min_date, max_date = self._lifetime_bounds(key)
        return bool(
            (min_date and date_range.start != min_date)
            or (max_date and date_range.end != max_date)
        )

    def _cached_range(
        self, key: str, date_range: DateRange, include_series: bool
    ) -> EventsResponse | None:
        cached = self._ranged.get((key, date_range.start, date_range.end, True))
        if cached is None and not include_series:
            cached = self._ranged.get((key, date_range.start, date_range.end, False))
        return cached

    async def _debounced_query(
        self, selection: Selection, date_range: DateRange, include_series: bool
    ) -> EventsResponse:
        if self.debounce > 0:
            await asyncio.sleep(self.debounce)
        return await self.client.get_events(
            selection,
            peak_start=date_range.start,
            peak_end=date_range.end,
            include_recent=False,
            include_matched_series=include_series,
        )

    async def get_ranged(
        self, selection: Selection, date_range: DateRange, include_series: bool
    ) -> EventsResponse | None:
        """Summary (and optionally series) scoped to a date range.

        Returns None when a newer request for the same key superseded this
        one. Store errors propagate.
        """
        key = selection.key
        cached = self._cached_range(key, date_range, include_series)
        if cached is not None:
            return cached

        previous = self._inflight.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()
        generation = self._generations[key] = self._generations.get(key, 0) + 1

        task = asyncio.ensure_future(
            self._debounced_query(selection, date_range, include_series)
        )
        self._inflight[key] = task
        try:
            await asyncio.wait([task])
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

        if task.cancelled():
            logger.debug("Discarding superseded range query for %s", key)
            return None
        if self._generations.get(key) != generation:
            # Mark a stale failure as retrieved
            task.exception()
            logger.debug("Discarding superseded range query for %s", key)
            return None

        response = task.result()
        self._ranged[(key, date_range.start, date_range.end, include_series)] = response
        return response

    async def load(self, selection: Selection) -> EventPanel | None:
        """Build the event panel for a selection.

        Returns None when the ranged query was superseded by a newer one.
        """
        key = selection.key
        session = self._sessions.get(key) or TabSession()

        try:
            summary = await self.get_summary(selection)
        except FloodApiError as e:
            logger.warning("Event summary for %s failed: %s", key, e)
            return EventPanel(
                selection_key=key, chart_preset=session.chart_preset, error=SUMMARY_ERROR
            )

        min_date, max_date = self._lifetime_bounds(key)
        date_range = self.effective_range(key)
        panel = EventPanel(
            selection_key=key,
            summary=summary,
            range_summary=summary,
            min_peak_date=min_date,
            max_peak_date=max_date,
            range_start=date_range.start if date_range else None,
            range_end=date_range.end if date_range else None,
            total_events=summary.matched_events,
            range_matched_events=summary.matched_events,
            chart_preset=session.chart_preset,
        )

        if date_range is None or not self._needs_range_fetch(key, date_range):
            return panel

        try:
            ranged = await self.get_ranged(
                selection, date_range, include_series=session.chart_preset is not None
            )
        except FloodApiError as e:
            logger.warning("Ranged events for %s failed: %s", key, e)
            panel.error = RANGE_ERROR
            return panel
        if ranged is None:
            return None

        series = ranged.matched_series or []
        panel.range_summary = ranged.summary
        panel.range_matched_events = ranged.summary.matched_events
        panel.series = series
        panel.monthly_frequency = monthly_frequency(series)
        panel.peak_distribution = peak_distribution(series)
        return panel

    async def matched_events(self, selection: Selection) -> list[EventRecord]:
        """Full event rows for the tab's current range.

        Falls back to rows built from the matched series when the store
        returns no detail rows.
        """
        await self.get_summary(selection)
        date_range = self.effective_range(selection.key)
        if date_range is None:
            return []

        response = await self.client.get_events(
            selection,
            peak_start=date_range.start,
            peak_end=date_range.end,
            include_recent=False,
            include_matched_series=True,
            include_matched_events=True,
        )
        if response.matched_events_detail:
            return response.matched_events_detail

        station_id = selection.name if selection.kind == "station" else None
        basin_name = selection.name if selection.kind == "basin" else None
        return [
            EventRecord(
                id=point.id,
                station_id=station_id,
                basin_name=basin_name,
                peak_time=point.peak_time,
                peak_value=point.peak_value,
                peak_time_str=point.peak_time_str,
            )
            for point in response.matched_series or []
        ]
