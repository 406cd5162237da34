# parcelsim/wkt.py
"""
WKT (Well-Known Text) conversion for route and point geometries.

The routing backend exchanges geometries as ``POINT(lng lat)`` and
``LINESTRING(lng1 lat1, lng2 lat2, ...)``: longitude first. Inside the
simulation positions are (lat, lng). This module is the only place the
two orders meet.

Malformed input never raises to the caller: line parsing returns an empty
list and point parsing returns None, and the bad text is logged.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import Position

logger = logging.getLogger(__name__)

_LINESTRING_RE = re.compile(r"^\s*LINESTRING\s*\((?P<body>.*)\)\s*$", re.IGNORECASE | re.DOTALL)
_POINT_RE = re.compile(r"^\s*POINT\s*\((?P<body>.*)\)\s*$", re.IGNORECASE | re.DOTALL)


def _parse_coordinate_pair(token: str) -> Position:
    """
    Parse a ``"<lng> <lat>"`` token.

    Raises:
        ValueError: If the token is not exactly two finite numbers
    """
    fields = token.split()
    if len(fields) != 2:
        raise ValueError(f"expected 2 coordinates, got {len(fields)}: {token!r}")
    lng, lat = float(fields[0]), float(fields[1])
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValueError(f"non-finite coordinate: {token!r}")
    return Position(lat=lat, lng=lng)


def parse_linestring(wkt: str) -> List[Position]:
    """
    Parse a WKT LINESTRING into positions.

    Args:
        wkt: Text like ``"LINESTRING(11.502 3.848, 11.510 3.850)"``

    Returns:
        Positions in (lat, lng) order, or an empty list if any part of the
        text is malformed. Partial results are never returned.

    Example:
        >>> parse_linestring("LINESTRING(11.5 3.8, 11.6 3.9)")
        [Position(3.800000, 11.500000), Position(3.900000, 11.600000)]
    """
    if not isinstance(wkt, str):
        logger.warning(f"Cannot parse LINESTRING from {type(wkt).__name__}")
        return []

    match = _LINESTRING_RE.match(wkt)
    if match is None:
        logger.warning(f"Not a LINESTRING: {wkt[:80]!r}")
        return []

    body = match.group("body").strip()
    if not body:
        return []

    try:
        return [_parse_coordinate_pair(token) for token in body.split(",")]
    except ValueError as e:
        logger.warning(f"Malformed LINESTRING {wkt[:80]!r}: {e}")
        return []


def parse_point(wkt: str) -> Optional[Position]:
    """
    Parse a WKT POINT.

    Returns:
        The position, or None if the text is malformed. Never a (0, 0)
        placeholder, so callers can tell "no data" from the origin.
    """
    if not isinstance(wkt, str):
        logger.warning(f"Cannot parse POINT from {type(wkt).__name__}")
        return None

    match = _POINT_RE.match(wkt)
    if match is None:
        logger.warning(f"Not a POINT: {wkt[:80]!r}")
        return None

    try:
        return _parse_coordinate_pair(match.group("body"))
    except ValueError as e:
        logger.warning(f"Malformed POINT {wkt[:80]!r}: {e}")
        return None


def to_linestring(positions: Iterable[Position]) -> str:
    """
    Serialize positions as a WKT LINESTRING (longitude first).

    ``repr`` of a float is the shortest text that reads back to the same
    value, so parse_linestring(to_linestring(p)) == p for finite input.
    """
    coords = ", ".join(f"{p.lng!r} {p.lat!r}" for p in positions)
    return f"LINESTRING({coords})"


def point_to_wkt(position: Position) -> str:
    """Serialize a single position as a WKT POINT."""
    return f"POINT({position.lng!r} {position.lat!r})"


def path_to_wkt(points: Sequence[Dict[str, Any]]) -> str:
    """
    Convert a backend point list into a WKT LINESTRING.

    Args:
        points: Dicts with ``latitude`` and ``longitude`` keys

    Returns:
        LINESTRING text, or an empty string if an entry is malformed
    """
    try:
        positions = [Position(float(p["latitude"]), float(p["longitude"])) for p in points]
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed route path from backend: {e}")
        return ""
    return to_linestring(positions)
