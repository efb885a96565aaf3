"""Flash-flood MCP Server for station/basin search and flood event history."""

import logging

from mcp.server import Server
from mcp.types import TextContent, Tool

from .events import CHART_PRESETS, EventPanel, format_metrics, format_number
from .exceptions import FloodApiError
from .explorer import FloodExplorer
from .flood_client import FloodClient
from .selection import ActiveTab
from .station_search import station_display_name

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Create MCP server
app = Server("flashflood-mcp")

# Set by main() for the lifetime of the stdio session
_explorer: FloodExplorer | None = None

_TAB_SCHEMA = {
    "type": "string",
    "enum": ["basin", "station"],
    "description": "Which tab: 'basin' or 'station'",
}


def format_panel(explorer: FloodExplorer, panel: EventPanel) -> str:
    """Format the event panel for display."""
    if panel.summary is None:
        return panel.error or "No event summary available."

    lines = [explorer.panel_title(panel)]
    if panel.error:
        lines.append(f"⚠️ {panel.error}")

    lines.append(
        f"Lifetime: {panel.total_events} event(s), peaks "
        f"{panel.min_peak_date or '-'} to {panel.max_peak_date or '-'}"
    )
    if panel.range_start and panel.range_end:
        lines.append(
            f"Range {panel.range_start} to {panel.range_end}: "
            f"{panel.range_matched_events} matched event(s)"
        )

    if panel.range_summary is not None:
        lines.append("")
        lines.append(format_metrics(panel.range_summary))

    if panel.chart_preset == "seasonal_frequency":
        lines.append("\nMonthly event frequency:")
        for point in panel.monthly_frequency:
            lines.append(f"  {MONTH_NAMES[point.month - 1]}: {point.count}")
    elif panel.chart_preset == "peak_distribution":
        lines.append("\nPeak exceedance ranking:")
        for point in panel.peak_distribution[:20]:  # Limit to 20
            lines.append(f"  #{point.rank}: {format_number(point.peak_value)}")
        if len(panel.peak_distribution) > 20:
            lines.append(f"  ... and {len(panel.peak_distribution) - 20} more")
    elif panel.chart_preset == "timeline_all":
        lines.append("\nEvent timeline:")
        for point in panel.series[:20]:  # Limit to 20
            when = point.peak_time_str or point.peak_time or "?"
            lines.append(f"  {when}: {format_number(point.peak_value)}")
        if len(panel.series) > 20:
            lines.append(f"  ... and {len(panel.series) - 20} more")

    return "\n".join(lines)


def format_tabs(explorer: FloodExplorer) -> str:
    """One line describing the open tabs."""
    state = explorer.selection
    parts = []
    if state.basin_tab is not None:
        marker = "*" if state.active_tab == ActiveTab.BASIN else ""
        parts.append(
            f"{marker}basin {state.basin_tab.basin_name} "
            f"({state.basin_tab.station_count} stations)"
        )
    if state.station_tab is not None:
        marker = "*" if state.active_tab == ActiveTab.STATION else ""
        parts.append(f"{marker}station {station_display_name(state.station_tab)}")
    if not parts:
        return "Open tabs: none"
    return "Open tabs: " + ", ".join(parts)


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="suggest_names",
            description="Autocomplete basin and station names starting with the given text",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Beginning of a basin or station name (e.g., 'Ara', 'Shin')",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="search",
            description="Find a basin or station by name and open it",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Basin or station name, full or partial",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="select_station",
            description="Open a station tab by station id",
            inputSchema={
                "type": "object",
                "properties": {
                    "station_id": {"type": "string", "description": "Station identifier"},
                },
                "required": ["station_id"],
            },
        ),
        Tool(
            name="preview_station",
            description="Show a station's details without opening it",
            inputSchema={
                "type": "object",
                "properties": {
                    "station_id": {"type": "string", "description": "Station identifier"},
                },
                "required": ["station_id"],
            },
        ),
        Tool(
            name="open_basin",
            description="Open a basin tab by exact basin name",
            inputSchema={
                "type": "object",
                "properties": {
                    "basin_name": {"type": "string", "description": "Basin name"},
                },
                "required": ["basin_name"],
            },
        ),
        Tool(
            name="activate_tab",
            description="Bring the open basin or station tab to the front",
            inputSchema={
                "type": "object",
                "properties": {"tab": _TAB_SCHEMA},
                "required": ["tab"],
            },
        ),
        Tool(
            name="close_tab",
            description="Close the basin or station tab and forget its date range and chart",
            inputSchema={
                "type": "object",
                "properties": {"tab": _TAB_SCHEMA},
                "required": ["tab"],
            },
        ),
        Tool(
            name="set_date_range",
            description="Restrict the active tab's events to peaks between two dates (inclusive)",
            inputSchema={
                "type": "object",
                "properties": {
                    "start": {"type": "string", "description": "Start date YYYY-MM-DD"},
                    "end": {"type": "string", "description": "End date YYYY-MM-DD"},
                    "reset": {
                        "type": "boolean",
                        "description": "If true, go back to the full event history",
                        "default": False,
                    },
                },
            },
        ),
        Tool(
            name="set_chart",
            description=(
                "Choose a chart for the active tab: timeline_all, seasonal_frequency "
                "or peak_distribution. Choosing the current chart again turns it off."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "preset": {
                        "type": "string",
                        "enum": list(CHART_PRESETS),
                        "description": "Chart preset; omit to turn the chart off",
                    },
                },
            },
        ),
        Tool(
            name="get_event_panel",
            description="Get flood event statistics and chart data for the active tab",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="list_matched_events",
            description="List the flood events in the active tab's date range",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of events to list",
                        "default": 50,
                    },
                },
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if _explorer is None:
            raise RuntimeError("Server not started. Run via main().")

        handler = _HANDLERS.get(name)
        if handler is None:
            result = f"Unknown tool: {name}"
        else:
            result = await handler(_explorer, arguments or {})

        return [TextContent(type="text", text=result)]
    except Exception as e:
        error_msg = f"Error: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return [TextContent(type="text", text=error_msg)]


async def _suggest_names(explorer: FloodExplorer, arguments: dict) -> str:
    """Autocomplete basin and station names."""
    query = arguments.get("query", "")

    if not await explorer.ensure_stations():
        return explorer.stations_error

    suggestions = explorer.suggest(query)
    if not suggestions:
        return explorer.typing_hint(query) or "Type part of a basin or station name."

    lines = [f"Suggestions for '{query}':"]
    for item in suggestions:
        lines.append(f"• {item.value} ({item.type})")
    return "\n".join(lines)


async def _search(explorer: FloodExplorer, arguments: dict) -> str:
    """Resolve a name and open its tab."""
    query = arguments.get("query", "")

    if query.strip():
        await explorer.ensure_stations()

    outcome = explorer.search(query)
    if not outcome.matched:
        if explorer.stations_error and not explorer.ready:
            return f"{explorer.stations_error} {outcome.hint}"
        return outcome.hint

    return f"Opened {outcome.type.lower()} {outcome.label}.\n{format_tabs(explorer)}"


async def _select_station(explorer: FloodExplorer, arguments: dict) -> str:
    """Open a station tab by id."""
    station_id = arguments.get("station_id", "")

    if not station_id:
        return "Error: 'station_id' parameter is required"
    if not await explorer.ensure_stations():
        return explorer.stations_error

    station = explorer.select_station(station_id)
    if station is None:
        return f"No station with id '{station_id}'"
    return f"Opened station {station_display_name(explorer.selection.station_tab)}.\n{format_tabs(explorer)}"


async def _preview_station(explorer: FloodExplorer, arguments: dict) -> str:
    """Describe a station without opening a tab."""
    station_id = arguments.get("station_id", "")

    if not station_id:
        return "Error: 'station_id' parameter is required"
    if not await explorer.ensure_stations():
        return explorer.stations_error

    station = explorer.preview_station(station_id)
    if station is None:
        return f"No station with id '{station_id}'"

    alt_names = [n for n in (station.station_name2, station.station_name3) if n]
    display_alt = f" ({', '.join(alt_names)})" if alt_names else ""
    lat = station.latitude if station.latitude is not None else "?"
    lon = station.longitude if station.longitude is not None else "?"
    lines = [
        f"{station.station_name or station.station_id}{display_alt} [{station.station_id}]",
        f"Basin: {station.basin_name or '-'}  River: {station.river_name or '-'}",
        f"Coordinates: {lat}, {lon}",
        f"Recorded data: {'yes' if station.has_data else 'no'}",
    ]
    return "\n".join(lines)


async def _open_basin(explorer: FloodExplorer, arguments: dict) -> str:
    """Open a basin tab by name."""
    basin_name = arguments.get("basin_name", "").strip()

    if not basin_name:
        return "Error: 'basin_name' parameter is required"
    await explorer.ensure_stations()

    count = explorer.open_basin(basin_name)
    return f"Opened basin {basin_name} ({count} stations).\n{format_tabs(explorer)}"


async def _activate_tab(explorer: FloodExplorer, arguments: dict) -> str:
    """Bring a tab to the front."""
    tab = arguments.get("tab", "")

    if tab == "station":
        activated = explorer.selection.activate_station_tab()
    elif tab == "basin":
        activated = explorer.selection.activate_basin_tab()
    else:
        return "Error: 'tab' must be 'basin' or 'station'"

    if not activated:
        return f"No {tab} tab is open."
    return format_tabs(explorer)


async def _close_tab(explorer: FloodExplorer, arguments: dict) -> str:
    """Close a tab."""
    tab = arguments.get("tab", "")

    if tab == "station":
        explorer.selection.close_station_tab()
    elif tab == "basin":
        explorer.selection.close_basin_tab()
    else:
        return "Error: 'tab' must be 'basin' or 'station'"

    return format_tabs(explorer)


async def _set_date_range(explorer: FloodExplorer, arguments: dict) -> str:
    """Change the active tab's date range."""
    current = explorer.selection.current
    if current is None:
        return "No tab is open. Search for a basin or station first."

    if arguments.get("reset"):
        explorer.events.reset_range(current.key)
    else:
        start = arguments.get("start")
        end = arguments.get("end")
        if not start and not end:
            return "Error: give 'start', 'end' or 'reset'"
        # Bounds default to the lifetime span, so make sure it is known
        try:
            await explorer.events.get_summary(current)
        except FloodApiError as e:
            logger.warning("Summary for %s unavailable: %s", current.key, e)
        explorer.set_date_range(start, end)

    date_range = explorer.events.effective_range(current.key)
    if date_range is None:
        return "Date range cleared."
    return f"Date range: {date_range.start} to {date_range.end}"


async def _set_chart(explorer: FloodExplorer, arguments: dict) -> str:
    """Choose the active tab's chart."""
    current = explorer.selection.current
    if current is None:
        return "No tab is open. Search for a basin or station first."

    preset = explorer.events.set_chart_preset(current.key, arguments.get("preset"))
    if preset is None:
        return "Chart turned off."
    return f"Chart: {CHART_PRESETS[preset]}"


async def _get_event_panel(explorer: FloodExplorer, arguments: dict) -> str:
    """Get the event panel for the active tab."""
    if explorer.selection.current is None:
        return "No tab is open. Search for a basin or station first."

    panel = await explorer.panel()
    if panel is None:
        return "Superseded by a newer request."
    return format_panel(explorer, panel)


async def _list_matched_events(explorer: FloodExplorer, arguments: dict) -> str:
    """List events in the active range."""
    limit = int(arguments.get("limit", 50))

    if explorer.selection.current is None:
        return "No tab is open. Search for a basin or station first."

    try:
        rows = await explorer.matched_event_rows()
    except FloodApiError as e:
        return f"Failed to load matched events: {str(e)}"

    if not rows:
        return "No events in the selected range."

    lines = [f"{len(rows)} event(s):"]
    for index, row in enumerate(rows[:limit], start=1):
        where = row.station_id or row.basin_name or "-"
        lines.append(
            f"  {index}. {row.peak_time or '?'} peak {format_number(row.peak_value)} "
            f"(start {row.start_time or '-'}, end {row.end_time or '-'}, {where})"
        )
    if len(rows) > limit:
        lines.append(f"\n  ... and {len(rows) - limit} more")
    return "\n".join(lines)


_HANDLERS = {
    "suggest_names": _suggest_names,
    "search": _search,
    "select_station": _select_station,
    "preview_station": _preview_station,
    "open_basin": _open_basin,
    "activate_tab": _activate_tab,
    "close_tab": _close_tab,
    "set_date_range": _set_date_range,
    "set_chart": _set_chart,
    "get_event_panel": _get_event_panel,
    "list_matched_events": _list_matched_events,
}


async def main():
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    global _explorer

    logging.basicConfig(level=logging.INFO)

    async with FloodClient() as client:
        _explorer = FloodExplorer(client)
        async with stdio_server() as (read_stream, write_stream):
            init_options = app.create_initialization_options()
            await app.run(read_stream, write_stream, init_options)


def cli():
    """Entry point for console script."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    cli()
