"""
Geohash grid helpers for spatial bucket aggregations.
"""

import copy
import math
from typing import Any, Dict, Optional, Tuple

# (minx, miny, maxx, maxy) in longitude/latitude
Envelope = Tuple[float, float, float, float]

WORLD: Envelope = (-180.0, -90.0, 180.0, 90.0)

MIN_PRECISION = 1
MAX_PRECISION = 12

GEOHASH_GRID = "geohash_grid"

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def cell_size(precision: int) -> Tuple[float, float]:
    """Width and height in degrees of a geohash cell."""
    bits = 5 * precision
    lon_bits = (bits + 1) // 2
    lat_bits = bits // 2
    return 360.0 / (1 << lon_bits), 180.0 / (1 << lat_bits)


def count_cells(envelope: Envelope, precision: int) -> int:
    """Number of cells of the given precision needed to cover an envelope."""
    minx, miny, maxx, maxy = envelope
    width, height = cell_size(precision)
    columns = max(1, math.ceil((maxx - minx) / width))
    rows = max(1, math.ceil((maxy - miny) / height))
    return columns * rows


def compute_precision(
    envelope: Optional[Envelope], grid_size: int, threshold: float
) -> int:
    """
    Pick the finest geohash precision suitable for an envelope.

    The chosen precision is the largest one whose cell count over the
    envelope stays within ``grid_size * (1 + threshold)``. A missing
    envelope means the whole world.

    Args:
        envelope: Query envelope in longitude/latitude
        grid_size: Target number of cells
        threshold: Tolerated excess over the target, as a fraction

    Returns:
        Precision in [1, 12]
    """
    if envelope is None:
        envelope = WORLD
    limit = grid_size * (1 + threshold)

    precision = MIN_PRECISION
    for candidate in range(MIN_PRECISION, MAX_PRECISION + 1):
        if count_cells(envelope, candidate) > limit:
            break
        precision = candidate
    return precision


def update_grid_aggregation_precision(
    aggregations: Dict[str, Any], precision: int
) -> Dict[str, Any]:
    """Return a copy of an aggregation tree with every geohash grid precision set."""
    updated = copy.deepcopy(aggregations)
    _set_precision(updated, precision)
    return updated


def _set_precision(node: Any, precision: int) -> None:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == GEOHASH_GRID and isinstance(value, dict):
                value["precision"] = precision
            _set_precision(value, precision)
    elif isinstance(node, list):
        for item in node:
            _set_precision(item, precision)


def decode_geohash(geohash: str) -> Tuple[float, float]:
    """
    Decode a geohash to the center of its cell.

    Returns:
        (lat, lon)

    Raises:
        ValueError: If the string is not a geohash
    """
    if not geohash:
        raise ValueError("Empty geohash")
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    even = True
    for char in geohash.lower():
        index = _BASE32.find(char)
        if index < 0:
            raise ValueError(f"Invalid geohash '{geohash}'")
        for shift in range(4, -1, -1):
            bit = (index >> shift) & 1
            target = lon_range if even else lat_range
            middle = (target[0] + target[1]) / 2
            if bit:
                target[0] = middle
            else:
                target[1] = middle
            even = not even
    return (lat_range[0] + lat_range[1]) / 2, (lon_range[0] + lon_range[1]) / 2
