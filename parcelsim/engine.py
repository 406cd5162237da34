# parcelsim/engine.py
"""
Simulation engine for the parcel routing simulation.

This module holds every state transition of the simulation:
- Parcel lifecycle (create, start, move, incident, reroute, fail)
- Incident creation, route affectation and resolution
- Aggregate statistics for the dashboard
- The ``advance`` tick driver called once per animation frame

Parcel state machine:
- PLANNED -> TRANSIT: start_parcel
- TRANSIT -> TRANSIT: update_parcel_position
- TRANSIT -> DELIVERED: automatic once progress reaches DELIVERY_THRESHOLD
- TRANSIT -> INCIDENT: mark_parcel_incident, after a collision check hit
- INCIDENT -> TRANSIT: update_parcel_route, once a new route is available
- any non-terminal -> FAILED: fail_parcel (the decision belongs to the caller)

Every function takes snapshots and returns new snapshots. Nothing here
mutates a parcel, an incident or a state passed in. Collision detection
only looks at the parcel's end-of-tick position, so a fast parcel can jump
over a thin incident buffer between two ticks.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

from . import config
from .geometry import interpolate_along_path, is_within_line_buffer
from .models import (
    Hub,
    Incident,
    IncidentType,
    ParcelState,
    Position,
    Route,
    SimulatedParcel,
    SimulationState,
)

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now()


# =============================================================================
# PARCEL LIFECYCLE
# =============================================================================

def create_parcel(
    parcel_data: Dict[str, Any],
    route: Optional[Route],
    route_path: Sequence[Position],
    now: Optional[datetime] = None
) -> SimulatedParcel:
    """
    Create a PLANNED parcel from backend data and its (optional) route.

    Args:
        parcel_data: Backend parcel payload; needs ``id`` and ``trackingCode``
        route: Route from the backend, or None if routing failed
        route_path: Decoded route geometry (may be empty for a routeless parcel)
        now: Creation time used for the estimated arrival

    Returns:
        A parcel at the first point of its path with progress 0
    """
    path = tuple(route_path)
    estimated_arrival = None
    if route is not None:
        estimated_arrival = _now(now) + timedelta(minutes=route.estimated_duration_min)

    return SimulatedParcel(
        parcel_id=str(parcel_data["id"]),
        tracking_code=parcel_data.get("trackingCode", str(parcel_data["id"])),
        parcel_data=dict(parcel_data),
        route=route,
        route_path=path,
        current_position=path[0] if path else None,
        state=ParcelState.PLANNED,
        progress=0.0,
        path_index=0,
        estimated_arrival=estimated_arrival,
        speed=config.BASE_SPEED_KMH,
        status_id=parcel_data.get("currentState"),
    )


def start_parcel(parcel: SimulatedParcel, now: Optional[datetime] = None) -> SimulatedParcel:
    """
    Start a PLANNED parcel's journey.

    Parcels in any other state, and parcels without a route, are returned
    unchanged.
    """
    if parcel.state is not ParcelState.PLANNED or not parcel.has_route:
        return parcel
    logger.debug(f"{parcel.tracking_code}: PLANNED -> TRANSIT")
    return replace(parcel, state=ParcelState.TRANSIT, start_time=_now(now))


def update_parcel_position(
    parcel: SimulatedParcel,
    elapsed_ms: float,
    speed_multiplier: float,
    now: Optional[datetime] = None
) -> SimulatedParcel:
    """
    Move a TRANSIT parcel along its path for one tick.

    distance this tick = speed * multiplier * elapsed hours; the progress
    increment is that distance over the route's total distance. Once
    progress reaches DELIVERY_THRESHOLD the parcel snaps to the end of
    its path and becomes DELIVERED.

    A route with zero total distance is delivered on its first tick.

    Args:
        parcel: Parcel snapshot
        elapsed_ms: Wall-clock (or simulated) time since the last tick
        speed_multiplier: Simulation speed (1, 2, 5, 10)
        now: Time stamped as actual arrival on delivery

    Returns:
        The moved parcel, or ``parcel`` itself when it cannot move
    """
    if parcel.state is not ParcelState.TRANSIT or not parcel.has_route:
        return parcel
    if not math.isfinite(elapsed_ms) or elapsed_ms <= 0:
        return parcel

    total_km = parcel.route.total_distance_km
    if total_km <= 0:
        new_progress = 1.0
    else:
        travelled_km = parcel.speed * speed_multiplier * (elapsed_ms / MS_PER_HOUR)
        if not math.isfinite(travelled_km) or travelled_km <= 0:
            return parcel
        new_progress = min(parcel.progress + travelled_km / total_km, 1.0)

    path = parcel.route_path
    if new_progress >= config.DELIVERY_THRESHOLD:
        logger.info(f"{parcel.tracking_code}: delivered")
        return replace(
            parcel,
            current_position=path[-1],
            progress=1.0,
            path_index=max(len(path) - 2, 0),
            state=ParcelState.DELIVERED,
            actual_arrival=_now(now),
        )

    point = interpolate_along_path(path, new_progress)
    return replace(
        parcel,
        current_position=point.position,
        progress=new_progress,
        path_index=point.segment_index,
    )


def check_incident_collision(
    parcel: SimulatedParcel,
    incidents: Iterable[Incident]
) -> Optional[Incident]:
    """
    Find an unresolved incident whose buffer contains the parcel.

    Incidents already attributed to the parcel are skipped. When several
    incidents qualify, the first one in iteration order is returned.
    """
    if parcel.current_position is None:
        return None

    for incident in incidents:
        if incident.resolved or incident.incident_id in parcel.affected_by_incidents:
            continue
        if is_within_line_buffer(
            parcel.current_position,
            incident.start_position,
            incident.end_position,
            incident.buffer_km,
        ):
            return incident
    return None


def mark_parcel_incident(parcel: SimulatedParcel, incident_id: str) -> SimulatedParcel:
    """
    Stop a parcel because of an incident.

    Position and progress are kept; position updates are skipped while the
    parcel is not in TRANSIT. Terminal parcels are returned unchanged.
    """
    if parcel.state.is_terminal:
        return parcel
    logger.info(f"{parcel.tracking_code}: {parcel.state.value} -> INCIDENT ({incident_id})")
    return replace(
        parcel,
        state=ParcelState.INCIDENT,
        affected_by_incidents=parcel.affected_by_incidents | {incident_id},
    )


def update_parcel_route(
    parcel: SimulatedParcel,
    new_route: Route,
    new_path: Sequence[Position],
    now: Optional[datetime] = None
) -> SimulatedParcel:
    """
    Apply a recalculated route and resume motion.

    The backend computes the new route from the parcel's current location,
    so progress restarts at 0 on the new path. Spatial continuity with the
    old path is not checked.

    Terminal parcels, and an empty ``new_path``, leave the parcel unchanged.
    """
    if parcel.state.is_terminal:
        return parcel
    path = tuple(new_path)
    if not path:
        logger.warning(f"{parcel.tracking_code}: route {new_route.route_id} has no path, not applied")
        return parcel
    logger.info(f"{parcel.tracking_code}: rerouted on {new_route.route_id} ({new_route.total_distance_km:.2f} km)")
    return replace(
        parcel,
        route=new_route,
        route_path=path,
        current_position=path[0],
        progress=0.0,
        path_index=0,
        state=ParcelState.TRANSIT,
        estimated_arrival=_now(now) + timedelta(minutes=new_route.estimated_duration_min),
    )


def fail_parcel(parcel: SimulatedParcel) -> SimulatedParcel:
    """Move a parcel to FAILED. Terminal parcels are returned unchanged."""
    if parcel.state.is_terminal:
        return parcel
    logger.warning(f"{parcel.tracking_code}: {parcel.state.value} -> FAILED")
    return replace(parcel, state=ParcelState.FAILED)


def calculate_eta(parcel: SimulatedParcel, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Estimated arrival time based on remaining distance and current speed.

    Only TRANSIT parcels with a route get a live estimate; other parcels
    return their stored estimated arrival.
    """
    if parcel.route is None or parcel.state is not ParcelState.TRANSIT or parcel.speed <= 0:
        return parcel.estimated_arrival

    remaining_km = parcel.route.total_distance_km * (1 - parcel.progress)
    hours_remaining = remaining_km / parcel.speed
    return _now(now) + timedelta(hours=hours_remaining)


# =============================================================================
# INCIDENTS
# =============================================================================

def does_incident_affect_route(incident: Incident, route_path: Sequence[Position]) -> bool:
    """Check whether any vertex of a route path lies inside the incident buffer."""
    return any(
        is_within_line_buffer(p, incident.start_position, incident.end_position, incident.buffer_km)
        for p in route_path
    )


def create_incident(
    incident_type: Union[IncidentType, str],
    start: Position,
    end: Position,
    width_m: float = config.DEFAULT_INCIDENT_WIDTH_M,
    description: str = "",
    incident_id: Optional[str] = None,
    now: Optional[datetime] = None,
    parcels: Iterable[SimulatedParcel] = ()
) -> Incident:
    """
    Create an incident from an operator's placement.

    Args:
        incident_type: IncidentType or its string value
        start, end: Ends of the affected stretch of road
        width_m: Buffer width in metres (must be positive)
        description: Free text; defaults to the type label
        incident_id: Identifier; a random UUID when omitted
        now: Creation timestamp
        parcels: Parcels whose routes are checked to fill affected_route_ids

    Raises:
        ValueError: If the type is unknown or the width is not positive
    """
    if not isinstance(incident_type, IncidentType):
        incident_type = IncidentType(incident_type)
    if width_m <= 0:
        raise ValueError(f"Incident width must be positive, got {width_m}")

    incident = Incident(
        incident_id=incident_id or str(uuid.uuid4()),
        incident_type=incident_type,
        start_position=start,
        end_position=end,
        width_m=float(width_m),
        timestamp=_now(now),
        description=description or incident_type.label,
    )

    affected: List[str] = []
    for parcel in parcels:
        if parcel.route is None or parcel.route.route_id in affected:
            continue
        if does_incident_affect_route(incident, parcel.route_path):
            affected.append(parcel.route.route_id)

    if affected:
        logger.info(f"Incident {incident.incident_id} affects routes: {', '.join(affected)}")
    return replace(incident, affected_route_ids=tuple(affected))


def resolve_incident(incident: Incident) -> Incident:
    """Mark an incident resolved. Parcels already stopped by it are left alone."""
    return replace(incident, resolved=True)


# =============================================================================
# STATISTICS
# =============================================================================

@dataclass(frozen=True)
class SimulationStats:
    """Aggregate numbers shown on the dashboard."""
    total: int = 0
    in_transit: int = 0
    delivered: int = 0
    with_incidents: int = 0
    total_distance_km: float = 0.0
    average_speed_kmh: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "Total Parcels": self.total,
            "In Transit": self.in_transit,
            "Delivered": self.delivered,
            "With Incidents": self.with_incidents,
            "Total Distance": f"{self.total_distance_km:.2f} km",
            "Average Speed": f"{self.average_speed_kmh:.1f} km/h",
        }


def get_simulation_stats(parcels: Iterable[SimulatedParcel]) -> SimulationStats:
    """
    Fold a parcel collection into aggregate statistics.

    Routeless parcels contribute 0 km; the average speed of an empty
    collection is 0.
    """
    parcel_list = list(parcels)
    if not parcel_list:
        return SimulationStats()

    return SimulationStats(
        total=len(parcel_list),
        in_transit=sum(1 for p in parcel_list if p.state is ParcelState.TRANSIT),
        delivered=sum(1 for p in parcel_list if p.state is ParcelState.DELIVERED),
        with_incidents=sum(1 for p in parcel_list if p.state is ParcelState.INCIDENT),
        total_distance_km=sum(p.route.total_distance_km for p in parcel_list if p.route is not None),
        average_speed_kmh=sum(p.speed for p in parcel_list) / len(parcel_list),
    )


# =============================================================================
# SIMULATION STATE OPERATIONS
# =============================================================================

def add_parcel(state: SimulationState, parcel: SimulatedParcel) -> SimulationState:
    """Add a new parcel. Raises ValueError if the id is already used."""
    if parcel.parcel_id in state.parcels:
        raise ValueError(f"Parcel {parcel.parcel_id} already exists")
    return replace(state, parcels={**state.parcels, parcel.parcel_id: parcel})


def replace_parcel(state: SimulationState, parcel: SimulatedParcel) -> SimulationState:
    """Swap in a new snapshot of an existing parcel. Raises KeyError if unknown."""
    if parcel.parcel_id not in state.parcels:
        raise KeyError(parcel.parcel_id)
    return replace(state, parcels={**state.parcels, parcel.parcel_id: parcel})


def add_incident(state: SimulationState, incident: Incident) -> SimulationState:
    if incident.incident_id in state.incidents:
        raise ValueError(f"Incident {incident.incident_id} already exists")
    return replace(state, incidents={**state.incidents, incident.incident_id: incident})


def resolve_incident_in_state(state: SimulationState, incident_id: str) -> SimulationState:
    """Resolve an incident by id. Raises KeyError if unknown."""
    incident = resolve_incident(state.incidents[incident_id])
    logger.info(f"Incident {incident_id} resolved")
    return replace(state, incidents={**state.incidents, incident_id: incident})


def set_hubs(state: SimulationState, hubs: Iterable[Hub]) -> SimulationState:
    return replace(state, hubs=tuple(hubs))


def play(state: SimulationState) -> SimulationState:
    return replace(state, is_playing=True)


def pause(state: SimulationState) -> SimulationState:
    return replace(state, is_playing=False)


def set_speed(state: SimulationState, speed: int) -> SimulationState:
    """
    Change the speed multiplier.

    Raises:
        ValueError: If speed is not one of config.SPEED_OPTIONS
    """
    if speed not in config.SPEED_OPTIONS:
        raise ValueError(f"Speed must be one of {config.SPEED_OPTIONS}, got {speed}")
    return replace(state, speed=speed)


def toggle_incident_mode(
    state: SimulationState,
    incident_type: Optional[IncidentType]
) -> SimulationState:
    """Enter placement mode for ``incident_type``, or leave it when None."""
    return replace(
        state,
        incident_placement_mode=incident_type is not None,
        selected_incident_type=incident_type,
    )


def select_parcel(state: SimulationState, parcel_id: Optional[str]) -> SimulationState:
    return replace(state, selected_parcel_id=parcel_id)


# =============================================================================
# TICK DRIVER
# =============================================================================

class IncidentAttribution(NamedTuple):
    """A parcel newly stopped by an incident during a tick."""
    parcel_id: str
    incident_id: str


class TickResult(NamedTuple):
    state: SimulationState
    attributions: List[IncidentAttribution]


def advance(
    state: SimulationState,
    elapsed_ms: float,
    speed_multiplier: Optional[float] = None,
    now: Optional[datetime] = None
) -> TickResult:
    """
    Execute a single simulation tick.

    Every TRANSIT parcel is moved, then checked against the incident
    snapshot taken at the start of the tick. Parcels hitting a new incident
    are moved to INCIDENT in the returned state and reported in
    ``attributions`` so the caller can request a recalculation.

    Args:
        state: Current simulation state
        elapsed_ms: Time since the previous tick
        speed_multiplier: Overrides ``state.speed`` when given
        now: Timestamp for deliveries during this tick

    Returns:
        TickResult(new_state, attributions)
    """
    multiplier = state.speed if speed_multiplier is None else speed_multiplier
    tick_time = _now(now)
    incidents = list(state.incidents.values())

    parcels: Dict[str, SimulatedParcel] = {}
    attributions: List[IncidentAttribution] = []

    for parcel_id, parcel in state.parcels.items():
        if parcel.state is not ParcelState.TRANSIT:
            parcels[parcel_id] = parcel
            continue

        moved = update_parcel_position(parcel, elapsed_ms, multiplier, tick_time)
        if moved.state is ParcelState.TRANSIT:
            incident = check_incident_collision(moved, incidents)
            if incident is not None:
                moved = mark_parcel_incident(moved, incident.incident_id)
                attributions.append(IncidentAttribution(parcel_id, incident.incident_id))
        parcels[parcel_id] = moved

    return TickResult(replace(state, parcels=parcels), attributions)
