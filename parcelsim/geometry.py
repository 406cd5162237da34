# parcelsim/geometry.py
"""
Geometric primitives for the parcel routing simulation.

Distances are great-circle (haversine) distances in kilometres. Projection
onto a segment and interpolation along a path work on raw latitude/longitude
degrees as if they were planar coordinates; that approximation is fine at
city scale but drifts for segments spanning many kilometres.

All functions here are pure.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

from . import config
from .models import Position


class PathPoint(NamedTuple):
    """Result of interpolating along a path."""
    position: Position
    segment_index: int


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> round(haversine_distance(0.0, 0.0, 0.0, 0.01), 3)
        1.112
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return config.EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(a: Position, b: Position) -> float:
    """Haversine distance between two positions, in kilometers."""
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def path_length(path: Sequence[Position]) -> float:
    """
    Total length of a polyline in kilometers.

    Returns 0 for paths with fewer than two points.
    """
    if len(path) < 2:
        return 0.0
    return sum(distance(path[i], path[i + 1]) for i in range(len(path) - 1))


def is_within_radius(point: Position, center: Position, radius_km: float) -> bool:
    """Check if a position lies inside a circle around ``center``."""
    return distance(point, center) <= radius_km


def point_to_segment_distance(point: Position, seg_start: Position, seg_end: Position) -> float:
    """
    Minimum distance from a point to the segment [seg_start, seg_end].

    The point is projected onto the segment in degree space, the projection
    parameter is clamped to [0, 1], and the haversine distance to the
    clamped point is returned. A degenerate segment (start == end) gives
    the plain distance to its start.

    Args:
        point: The point to measure from
        seg_start: First end of the segment
        seg_end: Second end of the segment

    Returns:
        Distance in kilometers
    """
    seg_lat = seg_end.lat - seg_start.lat
    seg_lng = seg_end.lng - seg_start.lng
    length_sq = seg_lat * seg_lat + seg_lng * seg_lng

    if length_sq == 0:
        return distance(point, seg_start)

    t = ((point.lat - seg_start.lat) * seg_lat + (point.lng - seg_start.lng) * seg_lng) / length_sq
    t = max(0.0, min(1.0, t))

    closest = Position(seg_start.lat + t * seg_lat, seg_start.lng + t * seg_lng)
    return distance(point, closest)


def is_within_line_buffer(
    point: Position,
    seg_start: Position,
    seg_end: Position,
    buffer_km: float
) -> bool:
    """Check if a point lies inside the buffer zone around a segment."""
    return point_to_segment_distance(point, seg_start, seg_end) <= buffer_km


def interpolate_along_path(path: Sequence[Position], progress: float) -> PathPoint:
    """
    Map a fraction of the total path length to a point on the path.

    Cumulative segment distances are computed once; the first segment whose
    cumulative interval contains the target distance wins, and latitude and
    longitude are interpolated linearly inside it.

    Args:
        path: Ordered polyline
        progress: Fraction of the total length, clamped to [0, 1]

    Returns:
        PathPoint(position, segment_index)

    Edge cases:
        - Empty path: Position(0, 0) with index 0. Callers must not rely on it.
        - Single point, or progress <= 0: the first point, index 0.
        - progress >= 1: the last point, index len(path) - 2.
    """
    if not path:
        return PathPoint(Position(0.0, 0.0), 0)

    if len(path) == 1 or progress <= 0:
        return PathPoint(path[0], 0)

    if progress >= 1:
        return PathPoint(path[-1], len(path) - 2)

    cumulative = [0.0]
    for i in range(len(path) - 1):
        cumulative.append(cumulative[i] + distance(path[i], path[i + 1]))

    target = cumulative[-1] * progress

    segment_index = 0
    for i in range(len(cumulative) - 1):
        if cumulative[i] <= target <= cumulative[i + 1]:
            segment_index = i
            break

    seg_start_km = cumulative[segment_index]
    seg_length = cumulative[segment_index + 1] - seg_start_km
    fraction = (target - seg_start_km) / seg_length if seg_length > 0 else 0.0

    p1 = path[segment_index]
    p2 = path[segment_index + 1]
    position = Position(
        p1.lat + (p2.lat - p1.lat) * fraction,
        p1.lng + (p2.lng - p1.lng) * fraction,
    )
    return PathPoint(position, segment_index)
