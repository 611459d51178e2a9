"""Geohash keys and radius range queries.

Keys are base32 geohash strings from ``pygeohash``, so lexicographic order
follows the Z-order curve and a prefix names a rectangular cell. A radius
query is answered with a handful of ``[low, high]`` key ranges whose union
covers every point of the circle. The ranges over-cover: callers must
re-check the true distance of every hit.

Antimeridian and pole wraparound are not handled; the bounding box is
clamped to [-90, 90] x [-180, 180].
"""

from __future__ import annotations

import math
from typing import List, Tuple

import pygeohash as pgh

from touchin.core.match_config import GEOHASH_PRECISION

# Sorts after every base32 character, so "<cell>~" bounds all keys under a cell
RANGE_END = "~"

# Lower bound of a degree of latitude in meters; dividing by it over-sizes the box
METERS_PER_DEGREE_MIN = 110_574.0

MAX_PRECISION = 12

KeyRange = Tuple[str, str]


def encode(latitude: float, longitude: float, precision: int = GEOHASH_PRECISION) -> str:
    """Encode latitude/longitude to a geohash of ``precision`` characters (1 to 12)."""
    if precision < 1 or precision > MAX_PRECISION:
        raise ValueError(f"precision must be between 1 and {MAX_PRECISION}")
    return pgh.encode(latitude, longitude, precision=precision)


def bounds(geohash: str) -> Tuple[float, float, float, float]:
    """Return the ``(lat_min, lon_min, lat_max, lon_max)`` box of a geohash cell."""

    lat, lon, lat_err, lon_err = pgh.decode_exactly(geohash)
    return lat - lat_err, lon - lon_err, lat + lat_err, lon + lon_err


def decode(geohash: str) -> Tuple[float, float]:
    """Decode a geohash to the ``(lat, lon)`` center of its cell."""

    lat, lon, _, _ = pgh.decode_exactly(geohash)
    return lat, lon


def cell_size(precision: int) -> Tuple[float, float]:
    """Cell ``(height, width)`` in degrees for a geohash length."""

    total_bits = 5 * precision
    lon_bits = (total_bits + 1) // 2
    lat_bits = total_bits // 2
    return 180.0 / (2 ** lat_bits), 360.0 / (2 ** lon_bits)


def bounding_box(latitude: float, longitude: float, radius_m: float) -> Tuple[float, float, float, float]:
    """Degree box that contains every point within ``radius_m`` of the center."""

    d_lat = radius_m / METERS_PER_DEGREE_MIN
    lat_min = max(-90.0, latitude - d_lat)
    lat_max = min(90.0, latitude + d_lat)

    # widest longitude span happens at the box edge closest to a pole
    cos_edge = math.cos(math.radians(max(abs(lat_min), abs(lat_max))))
    if cos_edge < 1e-9:
        return lat_min, -180.0, lat_max, 180.0
    d_lon = d_lat / cos_edge
    return lat_min, max(-180.0, longitude - d_lon), lat_max, min(180.0, longitude + d_lon)


def _precision_for_box(lat_span: float, lon_span: float, max_precision: int) -> int:
    # finest precision whose cell is at least as large as the box, so at most 2x2 cells
    for precision in range(max_precision, 0, -1):
        height, width = cell_size(precision)
        if height >= lat_span and width >= lon_span:
            return precision
    return 1


def _samples(lo: float, hi: float, step: float) -> List[float]:
    values = []
    v = lo
    while v < hi:
        values.append(v)
        v += step
    values.append(hi)
    return values


def ranges_for(
    latitude: float,
    longitude: float,
    radius_m: float,
    max_precision: int = GEOHASH_PRECISION,
) -> List[KeyRange]:
    """Key ranges covering every point within ``radius_m`` of the center.

    The box around the circle is sampled on a grid no coarser than one cell,
    so every cell touching the box contributes a range. Ranges are sorted and
    disjoint.
    """
    if radius_m < 0:
        raise ValueError("radius_m must be >= 0")

    lat_min, lon_min, lat_max, lon_max = bounding_box(latitude, longitude, radius_m)
    precision = _precision_for_box(lat_max - lat_min, lon_max - lon_min, max_precision)
    height, width = cell_size(precision)

    cells = {
        encode(lat, lon, precision)
        for lat in _samples(lat_min, lat_max, height)
        for lon in _samples(lon_min, lon_max, width)
    }
    return [(cell, cell + RANGE_END) for cell in sorted(cells)]


def in_ranges(key: str, ranges: List[KeyRange]) -> bool:
    return any(low <= key <= high for low, high in ranges)
