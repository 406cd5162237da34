# parcelsim/__init__.py

from .models import (
    Position,
    Hub,
    Route,
    SimulatedParcel,
    Incident,
    SimulationState,
    ParcelState,
    IncidentType,
    RoutingAlgorithm,
)
from .config import (
    BASE_SPEED_KMH,
    DELIVERY_THRESHOLD,
    SPEED_OPTIONS,
    UPDATE_INTERVAL_MS,
)
from .geometry import (
    distance,
    path_length,
    point_to_segment_distance,
    is_within_line_buffer,
    interpolate_along_path,
)
from .wkt import parse_linestring, parse_point, to_linestring
from .engine import advance, get_simulation_stats, SimulationStats, TickResult
from .client import LogisticsClient
from .scenario import Scenario, ScenarioRunner, load_scenario

__version__ = "1.0.0"

__all__ = [
    # Models
    "Position",
    "Hub",
    "Route",
    "SimulatedParcel",
    "Incident",
    "SimulationState",
    "ParcelState",
    "IncidentType",
    "RoutingAlgorithm",
    # Geometry
    "distance",
    "path_length",
    "point_to_segment_distance",
    "is_within_line_buffer",
    "interpolate_along_path",
    # WKT
    "parse_linestring",
    "parse_point",
    "to_linestring",
    # Core
    "advance",
    "get_simulation_stats",
    "SimulationStats",
    "TickResult",
    "LogisticsClient",
    "Scenario",
    "ScenarioRunner",
    "load_scenario",
    # Config
    "BASE_SPEED_KMH",
    "DELIVERY_THRESHOLD",
    "SPEED_OPTIONS",
    "UPDATE_INTERVAL_MS",
]
