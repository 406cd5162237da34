# parcelsim/scenario.py
"""
Headless scenario runs for the parcel routing simulation.

A scenario is a JSON file listing hubs, parcels to ship between them and
incidents to drop on the map at given ticks. ScenarioRunner plays the
role the dashboard plays interactively: it creates and starts parcels,
drives ``engine.advance`` with a simulated clock, and reacts to incident
attributions by asking the backend for a new route (or failing the parcel
when no route can be produced).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from . import config, engine
from .client import LogisticsClient
from .models import Hub, IncidentType, ParcelState, Position, Route, SimulationState
from .wkt import parse_linestring

logger = logging.getLogger(__name__)


@dataclass
class ParcelSpec:
    """A parcel to create: shipped from one hub to another."""
    tracking_code: str
    pickup_hub: str
    delivery_hub: str
    algorithm: str = config.DEFAULT_ALGORITHM


@dataclass
class IncidentSpec:
    """An incident to place when the run reaches ``at_tick``."""
    incident_type: IncidentType
    start: Position
    end: Position
    width_m: float = config.DEFAULT_INCIDENT_WIDTH_M
    description: str = ""
    at_tick: int = 0


@dataclass
class Scenario:
    name: str
    hubs: List[Hub]
    parcels: List[ParcelSpec]
    incidents: List[IncidentSpec] = field(default_factory=list)

    @property
    def hubs_by_id(self) -> Dict[str, Hub]:
        return {h.hub_id: h for h in self.hubs}


def _position(value: Any) -> Position:
    lat, lng = value
    return Position(float(lat), float(lng))


def load_scenario(path: str) -> Scenario:
    """
    Load a scenario from a JSON file.

    Args:
        path: Path to the scenario file

    Returns:
        The parsed Scenario

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid JSON or misses required fields
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Scenario file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}")

    try:
        hubs = [Hub.from_dict(h) for h in data["hubs"]]
        parcels = [
            ParcelSpec(
                tracking_code=p["tracking_code"],
                pickup_hub=str(p["pickup_hub"]),
                delivery_hub=str(p["delivery_hub"]),
                algorithm=p.get("algorithm", config.DEFAULT_ALGORITHM),
            )
            for p in data["parcels"]
        ]
        incidents = [
            IncidentSpec(
                incident_type=IncidentType(i["type"]),
                start=_position(i["start"]),
                end=_position(i["end"]),
                width_m=float(i.get("width_m", config.DEFAULT_INCIDENT_WIDTH_M)),
                description=i.get("description", ""),
                at_tick=int(i.get("at_tick", 0)),
            )
            for i in data.get("incidents", [])
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid scenario data in {path}: {e}")

    known = {h.hub_id for h in hubs}
    for spec in parcels:
        for hub_id in (spec.pickup_hub, spec.delivery_hub):
            if hub_id not in known:
                raise ValueError(f"Invalid scenario data in {path}: unknown hub '{hub_id}' for {spec.tracking_code}")

    return Scenario(
        name=data.get("name", os.path.splitext(os.path.basename(path))[0]),
        hubs=hubs,
        parcels=parcels,
        incidents=incidents,
    )


@dataclass
class RunReport:
    """Outcome of a headless run."""
    ticks: int
    stats: engine.SimulationStats
    recalculations: int
    failures: int
    parcels: List[Dict[str, Any]]


class ScenarioRunner:
    """
    Drives a scenario tick by tick.

    Attributes:
        scenario: The scenario being played
        client: Routing backend client; None runs fully offline with
            straight-line routes and no recalculation
        tick_ms: Simulated time per tick
        clock: Simulated current time
        state: Current simulation state
    """

    def __init__(
        self,
        scenario: Scenario,
        client: Optional[LogisticsClient] = None,
        tick_ms: int = 1000,
        speed: int = config.DEFAULT_SPEED_MULTIPLIER,
        start_time: Optional[datetime] = None
    ) -> None:
        self.scenario = scenario
        self.client = client
        self.tick_ms = tick_ms
        self.clock: datetime = start_time or datetime.now()
        self.state: SimulationState = engine.set_speed(
            engine.set_hubs(SimulationState(), scenario.hubs), speed
        )
        self.recalculations = 0
        self.failures = 0
        self._pending_incidents = sorted(scenario.incidents, key=lambda i: i.at_tick)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _route_for(self, parcel_id: str, spec: ParcelSpec) -> Optional[Route]:
        hubs = self.scenario.hubs_by_id
        if self.client is None:
            return LogisticsClient.fallback_route(
                hubs[spec.pickup_hub].position, hubs[spec.delivery_hub].position, spec.algorithm
            )
        return self.client.calculate_route(parcel_id, spec.pickup_hub, spec.delivery_hub, spec.algorithm)

    def setup(self) -> None:
        """Create every parcel, route it and start the ones that have a route."""
        for n, spec in enumerate(self.scenario.parcels, start=1):
            parcel_data: Optional[Dict[str, Any]] = None
            if self.client is not None:
                parcel_data = self.client.create_parcel({
                    "senderName": "Scenario",
                    "recipientName": spec.tracking_code,
                    "pickupLocation": spec.pickup_hub,
                    "deliveryLocation": spec.delivery_hub,
                    "weightKg": 1.0,
                })
            if parcel_data is None:
                parcel_data = {"id": f"local-{n}", "trackingCode": spec.tracking_code}

            route = self._route_for(str(parcel_data["id"]), spec)
            path = parse_linestring(route.geometry) if route is not None else []
            if route is not None and not path:
                logger.warning(f"{spec.tracking_code}: route geometry unusable, parcel stays routeless")
                route = None
            elif route is None:
                logger.warning(f"{spec.tracking_code}: no route, parcel stays routeless")

            parcel = engine.create_parcel(parcel_data, route, path, now=self.clock)
            parcel = engine.start_parcel(parcel, now=self.clock)
            self.state = engine.add_parcel(self.state, parcel)

        self.state = engine.play(self.state)

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    def _inject_incidents(self, tick: int) -> None:
        while self._pending_incidents and self._pending_incidents[0].at_tick <= tick:
            spec = self._pending_incidents.pop(0)
            incident = engine.create_incident(
                spec.incident_type,
                spec.start,
                spec.end,
                width_m=spec.width_m,
                description=spec.description,
                now=self.clock,
                parcels=self.state.parcels.values(),
            )
            self.state = engine.add_incident(self.state, incident)
            logger.info(f"[tick {tick}] {incident.incident_type.label} placed ({incident.incident_id})")

    def _handle_attribution(self, attribution: engine.IncidentAttribution) -> None:
        """Recalculate the parcel's route around the incident, or fail it."""
        parcel = self.state.parcels[attribution.parcel_id]
        incident = self.state.incidents[attribution.incident_id]

        new_route: Optional[Route] = None
        if self.client is not None and parcel.route is not None:
            new_route = self.client.recalculate_route(parcel.route.route_id, incident)

        new_path = parse_linestring(new_route.geometry) if new_route is not None else []
        if new_route is not None and new_path:
            parcel = engine.update_parcel_route(parcel, new_route, new_path, now=self.clock)
            self.recalculations += 1
        else:
            parcel = engine.fail_parcel(parcel)
            self.failures += 1
        self.state = engine.replace_parcel(self.state, parcel)

    def _has_active_parcels(self) -> bool:
        return any(
            p.state in (ParcelState.TRANSIT, ParcelState.INCIDENT)
            for p in self.state.parcels.values()
        )

    def tick(self, tick: int) -> None:
        """Execute a single tick: incidents, movement, then recalculations."""
        self._inject_incidents(tick)
        self.clock += timedelta(milliseconds=self.tick_ms)
        result = engine.advance(self.state, self.tick_ms, now=self.clock)
        self.state = result.state
        for attribution in result.attributions:
            self._handle_attribution(attribution)

    def run(self, max_ticks: int = 10_000) -> RunReport:
        """
        Run until no parcel is moving or waiting for a new route.

        Args:
            max_ticks: Hard stop for runs that would never finish

        Returns:
            RunReport with final statistics and one summary per parcel
        """
        if not self.state.parcels:
            self.setup()

        ticks = 0
        while ticks < max_ticks and self._has_active_parcels():
            self.tick(ticks)
            ticks += 1

        if self._has_active_parcels():
            logger.warning(f"Stopped after {max_ticks} ticks with parcels still active")

        return RunReport(
            ticks=ticks,
            stats=engine.get_simulation_stats(self.state.parcels.values()),
            recalculations=self.recalculations,
            failures=self.failures,
            parcels=[self._summary(p) for p in self.state.parcels.values()],
        )

    @staticmethod
    def _summary(parcel) -> Dict[str, Any]:
        return {
            "tracking_code": parcel.tracking_code,
            "state": parcel.state.value,
            "progress_pct": round(parcel.progress * 100, 1),
            "distance_km": round(parcel.route.total_distance_km, 2) if parcel.route else 0.0,
            "incidents": len(parcel.affected_by_incidents),
            "arrival": parcel.actual_arrival.strftime("%H:%M:%S") if parcel.actual_arrival else "",
        }
