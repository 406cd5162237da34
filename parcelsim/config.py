# parcelsim/config.py
"""
Configuration parameters for the parcel routing simulation.

This module centralizes all tunable parameters, making it easy to:
- Adjust how fast parcels move along their routes
- Point the dashboard and CLI at a different routing backend
- Change the map defaults used by the dashboard

The dashboard overrides some of these values at runtime from its sidebar.
"""

from typing import Final, Tuple

# =============================================================================
# SIMULATION PARAMETERS
# =============================================================================

BASE_SPEED_KMH: float = 40.0
"""Constant parcel speed in km/h (average city driving speed)."""

UPDATE_INTERVAL_MS: int = 100
"""Nominal tick cadence of the dashboard animation (10 ticks per second)."""

DELIVERY_THRESHOLD: Final[float] = 0.99
"""
Progress at which a parcel counts as delivered.
Slightly below 1.0 so floating-point drift cannot leave a parcel stuck
a few centimetres before its destination.
"""

SPEED_OPTIONS: Final[Tuple[int, ...]] = (1, 2, 5, 10)
"""Allowed simulation speed multipliers."""

DEFAULT_SPEED_MULTIPLIER: int = 1
"""Speed multiplier a fresh simulation starts with."""

# =============================================================================
# GEOMETRY
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the haversine formula."""

DEFAULT_INCIDENT_WIDTH_M: float = 50.0
"""Default buffer (metres, each side of the line) for a new incident."""

# =============================================================================
# ROUTING BACKEND
# =============================================================================

API_BASE_URL: str = "http://localhost:8080/api/v1"
"""Base URL of the routing backend REST API."""

API_TIMEOUT_SECONDS: float = 30.0
"""Timeout for routing backend requests. Route calculation can be slow."""

PETRI_API_BASE_URL: str = "http://localhost:8081/api/nets"
"""Base URL of the Petri-net lifecycle service (read only)."""

DEFAULT_ALGORITHM: str = "BASIC"
"""Routing algorithm requested when the caller does not choose one."""

DEFAULT_DRIVER_ID: str = "00000000-0000-0000-0000-000000000001"
"""Driver id sent with route calculations when none is supplied."""

# =============================================================================
# MAP DEFAULTS
# =============================================================================

MAP_CENTER: Tuple[float, float] = (4.05, 9.70)
"""Initial map center (Douala, where most demo hubs are)."""

MAP_ZOOM: int = 13
"""Initial map zoom level."""
