#!/usr/bin/env python3
"""Fetch the full station list from the flood event API and save it as JSON.

Pages through the station listing and writes a snapshot that the server can
load instead of calling the API (set FLASHFLOOD_STATIONS_FILE to its path).

Usage:
    python scripts/snapshot_stations.py [output.json]
"""

import asyncio
import json
import sys
from pathlib import Path

from flashflood_mcp.flood_client import BASE_URL, FloodClient

OUTPUT_PATH = Path(__file__).resolve().parent.parent / "data" / "stations.json"


async def fetch_stations() -> list[dict]:
    """Download every station with recorded data."""
    async with FloodClient() as client:
        stations = await client.fetch_all_stations()
    return [station.model_dump() for station in stations]


def main() -> None:
    output_path = Path(sys.argv[1]) if len(sys.argv) > 1 else OUTPUT_PATH

    print(f"Fetching stations from {BASE_URL} ...")
    stations = asyncio.run(fetch_stations())
    print(f"Fetched {len(stations)} stations")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(stations, f, ensure_ascii=False, indent=2)

    size_kb = output_path.stat().st_size / 1024
    print(f"Wrote {output_path} ({size_kb:.1f} KB)")


if __name__ == "__main__":
    main()
