"""Station and basin name search.

Names are compared after accent-folded, width-folded, case-insensitive
normalization. Basins are virtual: they exist only as the distinct basin
names found on the loaded stations.
"""

import json
import unicodedata
from pathlib import Path

from .models import (
    BasinIndexEntry,
    SearchMatch,
    SearchSuggestion,
    Station,
    StationIndexEntry,
)

SUGGESTION_LIMIT = 8

# Kana voicing marks change the word, so they survive accent stripping.
_KEPT_MARKS = {"\u3099", "\u309a"}


def _strip_accents(text: str) -> str:
    """Remove accents/diacritics from text via NFKD decomposition."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(
        c for c in nfkd if not unicodedata.combining(c) or c in _KEPT_MARKS
    )


def normalize(text: str | None) -> str:
    """Normalize text for comparison: fold width, accents, case and spaces."""
    if not text:
        return ""
    folded = _strip_accents(unicodedata.normalize("NFKC", text)).casefold()
    # casefold can reintroduce combining marks (e.g. "İ" -> "i̇")
    folded = _strip_accents(folded)
    return " ".join(folded.split())


def station_display_name(station: Station) -> str:
    """Return the first non-blank station name, else the station id."""
    for name in (station.station_name, station.station_name2, station.station_name3):
        if name and name.strip():
            return name.strip()
    return station.station_id


def load_station_snapshot(path: str | Path) -> list[Station]:
    """Load a station list written by scripts/snapshot_stations.py."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return [Station.model_validate(item) for item in raw]


def build_basin_groups(stations: list[Station]) -> dict[str, list[Station]]:
    """Group stations by trimmed basin name, skipping stations without one."""
    groups: dict[str, list[Station]] = {}
    for station in stations:
        name = (station.basin_name or "").strip()
        if not name:
            continue
        groups.setdefault(name, []).append(station)
    return groups


def build_basin_index(stations: list[Station]) -> list[BasinIndexEntry]:
    """One entry per distinct basin name."""
    return [
        BasinIndexEntry(name=name, normalized_name=normalize(name))
        for name in build_basin_groups(stations)
    ]


def build_station_index(stations: list[Station]) -> list[StationIndexEntry]:
    """Map every station to the normalized forms of its name fields."""
    index = []
    for station in stations:
        names: list[str] = []
        for raw in (station.station_name, station.station_name2, station.station_name3):
            name = normalize(raw)
            if name and name not in names:
                names.append(name)
        index.append(StationIndexEntry(station=station, names=names))
    return index


class StationSearch:
    """Resolves and suggests basin/station names over one station set.

    The indexes are built once; load a new station set by creating a new
    instance.
    """

    def __init__(self, stations: list[Station]):
        self.stations = list(stations)
        self.basin_groups = build_basin_groups(self.stations)
        self.basin_index = build_basin_index(self.stations)
        self.station_index = build_station_index(self.stations)

    def basin_stations(self, basin_name: str) -> list[Station]:
        return self.basin_groups.get(basin_name, [])

    def find_station(self, station_id: str) -> Station | None:
        for station in self.stations:
            if station.station_id == station_id:
                return station
        return None

    def resolve(self, raw_keyword: str) -> SearchMatch:
        """Resolve a keyword to one basin or, failing that, one station.

        Basins are tried by exact, then prefix, then substring match. Stations
        are scanned once in load order and the first station with any name
        equal to or containing the keyword wins, even when a later station
        matches it exactly.
        """
        keyword = (raw_keyword or "").strip()
        if not keyword:
            return SearchMatch(kind="none", reason="empty")

        normalized_keyword = normalize(keyword)

        basin = self._find_basin(lambda n: n == normalized_keyword)
        if basin is None:
            basin = self._find_basin(lambda n: n.startswith(normalized_keyword))
        if basin is None:
            basin = self._find_basin(lambda n: normalized_keyword in n)
        if basin is not None:
            return SearchMatch(kind="basin", basin=basin)

        for entry in self.station_index:
            if any(
                name == normalized_keyword or normalized_keyword in name
                for name in entry.names
            ):
                return SearchMatch(kind="station", station=entry.station)

        return SearchMatch(kind="none", reason="no_match")

    def _find_basin(self, predicate) -> str | None:
        for entry in self.basin_index:
            if predicate(entry.normalized_name):
                return entry.name
        return None

    def suggest(self, raw_keyword: str) -> list[SearchSuggestion]:
        """Autocomplete: up to 8 basin names, then up to 8 station names.

        Both lists hold prefix matches only and are sorted ascending. Station
        suggestions look at the primary station name alone.
        """
        keyword = normalize(raw_keyword)
        if not keyword:
            return []

        basins = sorted(
            entry.name
            for entry in self.basin_index
            if entry.normalized_name.startswith(keyword)
        )[:SUGGESTION_LIMIT]

        station_names: set[str] = set()
        for station in self.stations:
            name = (station.station_name or "").strip()
            if name and normalize(name).startswith(keyword):
                station_names.add(name)
        stations = sorted(station_names)[:SUGGESTION_LIMIT]

        return [SearchSuggestion(value=name, type="Basin") for name in basins] + [
            SearchSuggestion(value=name, type="Station") for name in stations
        ]
