"""Contact maps: locator to coordinates, distance, and PNG rendering.

Grid locators are resolved to the centre of their square with the `maidenhead`
package, distances use geopy's great-circle formula, and the map itself is a
plain lat/lon plot drawn with matplotlib (no tiles): both stations as markers
and the path between them.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import maidenhead
from geopy.distance import great_circle
from matplotlib.figure import Figure

from .errors import MapError

logger = logging.getLogger(__name__)

MY_COLOR = "#ff0000"
THEIR_COLOR = "#0000ff"
PATH_COLOR = "#00c000"
DPI = 100

# field, square, subsquare, extended square
_LOCATOR_RE = re.compile(r"[A-R]{2}(?:\d{2}(?:[A-X]{2}(?:\d{2})?)?)?", re.IGNORECASE)


@dataclass
class MapConfig:
    width: int = 600
    height: int = 400
    zoom: int = 0  # 0 picks a zoom that fits both stations


def grid_to_latlon(grid: str) -> Tuple[float, float]:
    """Return (lat, lon) of the centre of a Maidenhead locator.

    Raises MapError for an empty or malformed locator.
    """
    g = (grid or "").strip()
    if not _LOCATOR_RE.fullmatch(g):
        raise MapError(f"failed to parse grid locator {grid!r}")
    try:
        lat, lon = maidenhead.to_location(g, center=True)
    except (ValueError, TypeError, IndexError) as e:
        raise MapError(f"failed to parse grid locator {grid!r}: {e}") from e
    return float(lat), float(lon)


def distance_km(my_grid: str, their_grid: str) -> float:
    """Great-circle distance in km between two locators."""
    return great_circle(grid_to_latlon(my_grid), grid_to_latlon(their_grid)).km


def calculate_zoom_level(
    min_lat: float, max_lat: float, min_lon: float, max_lon: float, width: int, height: int
) -> int:
    """Pick a web-map style zoom level (1-18) that fits the bounding box."""
    lat_zoom = math.log2(180.0 / (max_lat - min_lat))
    lon_zoom = math.log2(360.0 / (max_lon - min_lon))
    zoom = min(lat_zoom, lon_zoom) + math.log2(min(width / 256.0, height / 256.0))
    return int(math.floor(min(18.0, max(1.0, zoom))))


def _extent(
    a: Tuple[float, float], b: Tuple[float, float], config: MapConfig
) -> Tuple[float, float, float, float]:
    """Return (west, east, south, north) for the plot."""
    min_lat, max_lat = min(a[0], b[0]), max(a[0], b[0])
    min_lon, max_lon = min(a[1], b[1]), max(a[1], b[1])

    # At least one degree either way, plus 10% padding
    lat_range = max(max_lat - min_lat, 1.0)
    lon_range = max(max_lon - min_lon, 1.0)
    padding = 0.1
    zoom = config.zoom or calculate_zoom_level(
        min_lat - lat_range * padding,
        max_lat + lat_range * padding,
        min_lon - lon_range * padding,
        max_lon + lon_range * padding,
        config.width,
        config.height,
    )

    lon_span = min(360.0, 360.0 * (config.width / 256.0) / 2 ** zoom)
    lat_span = min(180.0, 180.0 * (config.height / 256.0) / 2 ** zoom)
    center_lat = (a[0] + b[0]) / 2
    center_lon = (a[1] + b[1]) / 2
    return (
        center_lon - lon_span / 2,
        center_lon + lon_span / 2,
        center_lat - lat_span / 2,
        center_lat + lat_span / 2,
    )


def render_map(
    my_grid: str,
    their_grid: str,
    output_path: Union[str, Path],
    config: MapConfig = MapConfig(),
) -> Path:
    """Draw both stations and the path between them into a PNG file.

    Raises MapError if a locator is invalid or the image cannot be written.
    """
    mine = grid_to_latlon(my_grid)
    theirs = grid_to_latlon(their_grid)
    west, east, south, north = _extent(mine, theirs, config)

    fig = Figure(figsize=(config.width / DPI, config.height / DPI), dpi=DPI)
    ax = fig.add_axes((0, 0, 1, 1))
    ax.set_facecolor("#dde8f0")
    ax.set_xlim(west, east)
    ax.set_ylim(south, north)
    # Maidenhead field boundaries
    ax.set_xticks(range(-180, 181, 20))
    ax.set_yticks(range(-90, 91, 10))
    ax.grid(True, color="#ffffff", linewidth=0.8)
    ax.tick_params(labelbottom=False, labelleft=False, length=0)

    ax.plot([mine[1], theirs[1]], [mine[0], theirs[0]], color=PATH_COLOR, linewidth=2)
    ax.plot(mine[1], mine[0], "o", color=MY_COLOR, markersize=8)
    ax.plot(theirs[1], theirs[0], "o", color=THEIR_COLOR, markersize=8)
    ax.text(
        0.01,
        0.01,
        f"QSL Map: {my_grid} <-> {their_grid}",
        transform=ax.transAxes,
        fontsize=8,
        color="#333333",
    )

    out = Path(output_path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out, format="png", dpi=DPI)
    except OSError as e:
        raise MapError(f"failed to write map {out}: {e}") from e
    logger.debug("Rendered map %s (%s <-> %s)", out, my_grid, their_grid)
    return out


def render_map_with_distance(
    my_grid: str,
    their_grid: str,
    output_path: Union[str, Path],
    config: MapConfig = MapConfig(),
) -> float:
    """Render the map and return the distance in km between the stations."""
    distance = distance_km(my_grid, their_grid)
    render_map(my_grid, their_grid, output_path, config)
    return distance


def map_file_name(call: str, unix_time: int) -> str:
    """Cache file name for a QSO map; '/' in portable calls becomes '_'."""
    return f"{call.upper().replace('/', '_')}-{unix_time}.png"
