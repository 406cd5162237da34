# parcelsim/models.py
"""
Core domain models for the parcel routing simulation.

This module defines the data structures the simulation engine works on:
- Position: An immutable latitude/longitude pair
- Hub: A static reference point used as route origin or destination
- Route: A routing backend result for one parcel leg
- SimulatedParcel: A parcel moving (or waiting) along its route
- Incident: An operator-declared obstruction with a buffer zone
- SimulationState: The aggregate root holding parcels, incidents and controls

All records are frozen. Transitions build new records with
dataclasses.replace instead of mutating shared objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from . import config


class ParcelState(Enum):
    """Lifecycle states for a simulated parcel."""
    PLANNED = "PLANNED"      # Created, not yet moving
    TRANSIT = "TRANSIT"      # Moving along its route
    INCIDENT = "INCIDENT"    # Stopped by an incident, recalculation pending
    DELIVERED = "DELIVERED"  # Reached its destination (terminal)
    FAILED = "FAILED"        # Gave up, e.g. no alternative route (terminal)

    @property
    def is_terminal(self) -> bool:
        return self in (ParcelState.DELIVERED, ParcelState.FAILED)


class IncidentType(Enum):
    """Closed set of incident kinds an operator can place on the map."""
    ROAD_CLOSURE = "ROAD_CLOSURE"
    TRAFFIC = "TRAFFIC"
    VEHICLE_BREAKDOWN = "VEHICLE_BREAKDOWN"
    WEATHER = "WEATHER"

    @property
    def label(self) -> str:
        return INCIDENT_LABELS[self]


INCIDENT_LABELS: Dict[IncidentType, str] = {
    IncidentType.ROAD_CLOSURE: "Road closure",
    IncidentType.TRAFFIC: "Heavy traffic",
    IncidentType.VEHICLE_BREAKDOWN: "Vehicle breakdown",
    IncidentType.WEATHER: "Bad weather",
}


class RoutingAlgorithm(Enum):
    """Algorithms the routing backend can be asked to use."""
    BASIC = "BASIC"
    DIJKSTRA = "DIJKSTRA"
    ASTAR = "ASTAR"
    OSRM = "OSRM"


@dataclass(frozen=True)
class Position:
    """Immutable geographic coordinate in decimal degrees."""
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        """Returns the position as a (lat, lng) tuple, the order map widgets expect."""
        return (self.lat, self.lng)

    def __repr__(self) -> str:
        return f"Position({self.lat:.6f}, {self.lng:.6f})"


@dataclass(frozen=True)
class Hub:
    """
    A static hub (pickup/delivery point) known to the routing backend.

    Attributes:
        hub_id: Backend identifier
        address: Human-readable address
        latitude/longitude: Location in decimal degrees
        hub_type: Backend hub category (WAREHOUSE, RELAY_POINT, ...)
    """
    hub_id: str
    address: str
    latitude: float
    longitude: float
    hub_type: str = "WAREHOUSE"

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Hub":
        return Hub(
            hub_id=str(d["id"]),
            address=d.get("address", ""),
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            hub_type=d.get("type") or "WAREHOUSE",
        )


@dataclass(frozen=True)
class Route:
    """
    A route computed by the routing backend.

    Replaced wholesale on recalculation, never edited in place.

    Attributes:
        route_id: Backend identifier
        geometry: Serialized LINESTRING (longitude first)
        total_distance_km: Total path length reported by the backend
        estimated_duration_min: Estimated travel time
        routing_service: Algorithm that produced the route
        traffic_factor: 1.0 means free-flowing traffic
        is_active: Whether the backend still considers the route current
    """
    route_id: str
    geometry: str
    total_distance_km: float
    estimated_duration_min: float
    routing_service: Optional[str] = None
    traffic_factor: float = 1.0
    is_active: bool = True

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Route":
        """
        Build a Route from a backend JSON payload.

        The backend sends either a WKT ``routeGeometry`` or a ``path`` list of
        points; the latter is converted to a LINESTRING here. Both duration
        field spellings used by the backend are accepted.

        Raises:
            KeyError: If the payload has no id
            ValueError: If numeric fields cannot be converted
        """
        # Import here to avoid circular dependency
        from .wkt import path_to_wkt

        geometry = d.get("routeGeometry") or ""
        if not geometry and isinstance(d.get("path"), list):
            geometry = path_to_wkt(d["path"])

        duration = d.get("estimatedDurationMin")
        if duration is None:
            duration = d.get("estimatedDurationMinutes", 0)

        traffic_factor = d.get("trafficFactor")
        is_active = d.get("isActive")
        return Route(
            route_id=str(d["id"]),
            geometry=geometry,
            total_distance_km=float(d.get("totalDistanceKm") or 0.0),
            estimated_duration_min=float(duration or 0.0),
            routing_service=d.get("routingService"),
            traffic_factor=float(traffic_factor) if traffic_factor is not None else 1.0,
            is_active=bool(is_active) if is_active is not None else True,
        )

    def __repr__(self) -> str:
        return f"Route({self.route_id}, {self.total_distance_km:.2f}km, {self.routing_service})"


@dataclass(frozen=True)
class SimulatedParcel:
    """
    A parcel moving along its route on the simulation map.

    Attributes:
        parcel_id: Backend identifier
        tracking_code: Human-readable code shown to operators
        parcel_data: Read-only backend payload
        route: Current route, None for a parcel without a computed route
        route_path: Decoded route geometry, cached for interpolation
        current_position: Point on route_path (None only for routeless parcels)
        state: Lifecycle state
        progress: Fraction of the route travelled, in [0, 1]
        path_index: Segment of route_path the parcel is currently on

    Timing:
        start_time: Set when the parcel starts moving
        estimated_arrival: Derived from the route duration
        actual_arrival: Set exactly once, on delivery

    Incidents:
        affected_by_incidents: Incident ids already attributed to this parcel
        status_id: Lifecycle identifier in the Petri-net service (read only)
    """
    parcel_id: str
    tracking_code: str
    parcel_data: Dict[str, Any] = field(default_factory=dict, compare=False)
    route: Optional[Route] = None
    route_path: Tuple[Position, ...] = ()
    current_position: Optional[Position] = None
    state: ParcelState = ParcelState.PLANNED
    progress: float = 0.0
    path_index: int = 0
    start_time: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    speed: float = config.BASE_SPEED_KMH
    affected_by_incidents: FrozenSet[str] = frozenset()
    status_id: Optional[str] = None

    @property
    def has_route(self) -> bool:
        """True when the parcel can move: it has a route and a decoded path."""
        return self.route is not None and len(self.route_path) > 0

    def __repr__(self) -> str:
        return f"Parcel({self.tracking_code}, {self.state.value}, {self.progress:.0%})"


@dataclass(frozen=True)
class Incident:
    """
    A linear obstruction drawn by the operator.

    The zone of effect is every point within width_m metres of the
    segment [start_position, end_position]. Only ``resolved`` ever changes
    after creation.
    """
    incident_id: str
    incident_type: IncidentType
    start_position: Position
    end_position: Position
    width_m: float
    affected_route_ids: Tuple[str, ...] = ()
    timestamp: Optional[datetime] = None
    description: str = ""
    resolved: bool = False

    @property
    def buffer_km(self) -> float:
        return self.width_m / 1000.0

    def to_request(self) -> Dict[str, Any]:
        """Body the routing backend expects for a recalculation request."""
        return {
            "type": self.incident_type.value,
            "lineStart": {
                "latitude": self.start_position.lat,
                "longitude": self.start_position.lng,
            },
            "lineEnd": {
                "latitude": self.end_position.lat,
                "longitude": self.end_position.lng,
            },
            "bufferDistance": self.width_m,
            "description": self.description,
        }

    def __repr__(self) -> str:
        status = "resolved" if self.resolved else "active"
        return f"Incident({self.incident_id}, {self.incident_type.value}, {status})"


@dataclass(frozen=True)
class SimulationState:
    """
    Aggregate root of the simulation.

    Operations in parcelsim.engine never mutate the dictionaries held here;
    they build new ones and return a new SimulationState.

    Attributes:
        parcels: Parcel id -> parcel
        incidents: Incident id -> incident (resolved ones are kept)
        hubs: Known hubs, read only
        is_playing: Play/pause flag
        speed: Current speed multiplier (one of config.SPEED_OPTIONS)

    UI selection (no effect on the simulation):
        incident_placement_mode, selected_incident_type, selected_parcel_id
    """
    parcels: Dict[str, SimulatedParcel] = field(default_factory=dict)
    incidents: Dict[str, Incident] = field(default_factory=dict)
    hubs: Tuple[Hub, ...] = ()
    is_playing: bool = False
    speed: int = config.DEFAULT_SPEED_MULTIPLIER
    incident_placement_mode: bool = False
    selected_incident_type: Optional[IncidentType] = None
    selected_parcel_id: Optional[str] = None

    @property
    def active_incidents(self) -> List[Incident]:
        return [i for i in self.incidents.values() if not i.resolved]

    def __repr__(self) -> str:
        return (
            f"SimulationState(parcels={len(self.parcels)}, "
            f"incidents={len(self.incidents)}, playing={self.is_playing}, speed={self.speed}x)"
        )
