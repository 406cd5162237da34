# parcelsim/client.py
"""
HTTP client for the routing backend and the Petri-net lifecycle service.

The simulation never computes routes itself: it asks the backend for a
route between two hubs and, after an incident, for a recalculated route
that avoids it. Every failure (timeout, HTTP error, "no path found",
unusable payload) is logged and turned into None or an empty result, so
one bad request never stops the simulation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

import requests

from . import config
from .geometry import distance
from .models import Hub, Incident, Position, Route, RoutingAlgorithm
from .wkt import to_linestring

logger = logging.getLogger(__name__)

NO_PATH_STATUSES = (404, 422)
"""HTTP statuses the backend uses when no path exists between two hubs."""


class LogisticsClient:
    """
    Thin wrapper around the routing backend REST API.

    Args:
        base_url: Backend root, e.g. http://localhost:8080/api/v1
        timeout: Request timeout in seconds
        petri_url: Root of the Petri-net service
        session: Optional pre-configured requests.Session
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        petri_url: Optional[str] = None,
        session: Optional[requests.Session] = None
    ) -> None:
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.API_TIMEOUT_SECONDS
        self.petri_url = (petri_url or config.PETRI_API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    # ------------------------------------------------------------------
    # Low-level request helper
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> Optional[requests.Response]:
        """
        Send a request and return the response, or None on transport errors.

        HTTP error statuses are returned to the caller, which decides what
        they mean.
        """
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.warning(f"{method} {url} timed out")
            return None
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            return None

        logger.debug(f"{method} {url} - {response.status_code}")
        return response

    @staticmethod
    def _json(response: requests.Response) -> Optional[Any]:
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON from {response.url}: {e}")
            return None

    # ------------------------------------------------------------------
    # Hubs and parcels
    # ------------------------------------------------------------------

    def get_hubs(self) -> List[Hub]:
        """Fetch all hubs. Returns an empty list if the backend is unavailable."""
        response = self._request("GET", f"{self.base_url}/hubs")
        if response is None or not response.ok:
            logger.warning("Could not fetch hubs")
            return []

        data = self._json(response)
        if not isinstance(data, list):
            return []

        hubs: List[Hub] = []
        for item in data:
            try:
                hubs.append(Hub.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed hub {item!r}: {e}")
        return hubs

    def create_parcel(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Register a parcel with the backend.

        Returns:
            The backend parcel payload (with ``id`` and ``trackingCode``), or None
        """
        response = self._request("POST", f"{self.base_url}/parcels", json=payload)
        if response is None:
            return None
        if not response.ok:
            logger.warning(f"Parcel creation rejected: {response.status_code} {response.text[:200]}")
            return None

        data = self._json(response)
        if not isinstance(data, dict) or "id" not in data:
            logger.warning("Parcel creation returned no id")
            return None
        logger.info(f"Parcel created: {data.get('trackingCode', data['id'])}")
        return data

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _parse_route(self, response: Optional[requests.Response], context: str) -> Optional[Route]:
        """Turn a route response into a Route, or None with a logged reason."""
        if response is None:
            return None

        if response.status_code in NO_PATH_STATUSES:
            logger.warning(f"{context}: no path found ({response.status_code})")
            return None
        if not response.ok:
            logger.warning(f"{context}: backend error {response.status_code} {response.text[:200]}")
            return None

        data = self._json(response)
        if not isinstance(data, dict):
            return None

        try:
            route = Route.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"{context}: unusable route payload: {e}")
            return None

        if not route.geometry.upper().startswith("LINESTRING"):
            logger.warning(f"{context}: route {route.route_id} has no LINESTRING geometry")
            return None
        return route

    def calculate_route(
        self,
        parcel_id: str,
        start_hub_id: str,
        end_hub_id: str,
        algorithm: Union[RoutingAlgorithm, str] = config.DEFAULT_ALGORITHM,
        driver_id: Optional[str] = None
    ) -> Optional[Route]:
        """
        Ask the backend for a route between two hubs.

        Args:
            parcel_id: Parcel the route is for
            start_hub_id: Pickup hub
            end_hub_id: Delivery hub
            algorithm: BASIC, DIJKSTRA, ASTAR or OSRM
            driver_id: Assigned driver (a default demo driver when omitted)

        Returns:
            The route, or None if no path exists or the request failed

        Raises:
            ValueError: If an id is missing or the algorithm is unknown
        """
        if not parcel_id:
            raise ValueError("parcel_id is required for route calculation")
        if not start_hub_id:
            raise ValueError("start_hub_id is required for route calculation")
        if not end_hub_id:
            raise ValueError("end_hub_id is required for route calculation")
        algorithm = RoutingAlgorithm(algorithm) if isinstance(algorithm, str) else algorithm

        body = {
            "parcelId": parcel_id,
            "startHubId": start_hub_id,
            "endHubId": end_hub_id,
            "driverId": driver_id or config.DEFAULT_DRIVER_ID,
            "constraints": {"algorithm": algorithm.value},
        }
        response = self._request("POST", f"{self.base_url}/routes/calculate", json=body)
        return self._parse_route(response, f"Route calculation for {parcel_id}")

    def recalculate_route(self, route_id: str, incident: Incident) -> Optional[Route]:
        """
        Ask the backend for a new route avoiding ``incident``.

        The backend starts the new route at the parcel's current location.
        """
        response = self._request(
            "POST",
            f"{self.base_url}/routes/{route_id}/recalculate",
            json=incident.to_request(),
        )
        return self._parse_route(response, f"Recalculation of {route_id}")

    @staticmethod
    def fallback_route(
        start: Position,
        end: Position,
        algorithm: Union[RoutingAlgorithm, str] = RoutingAlgorithm.BASIC
    ) -> Route:
        """
        Straight-line route used when the backend cannot be reached.

        Distance is the haversine distance; duration assumes BASE_SPEED_KMH.
        """
        algorithm = RoutingAlgorithm(algorithm) if isinstance(algorithm, str) else algorithm
        length_km = distance(start, end)
        duration = (length_km / config.BASE_SPEED_KMH) * 60 if config.BASE_SPEED_KMH > 0 else 0.0
        return Route(
            route_id=f"local-{uuid.uuid4()}",
            geometry=to_linestring([start, end]),
            total_distance_km=length_km,
            estimated_duration_min=duration,
            routing_service=f"{algorithm.value}_FALLBACK",
        )

    # ------------------------------------------------------------------
    # Petri-net lifecycle service (read only)
    # ------------------------------------------------------------------

    def get_petri_state(self, net_id: str) -> Optional[Dict[str, Any]]:
        """Fetch the marking of a parcel's Petri net, or None if unavailable."""
        response = self._request("GET", f"{self.petri_url}/{net_id}")
        if response is None or not response.ok:
            return None
        data = self._json(response)
        return data if isinstance(data, dict) else None

    def is_available(self) -> bool:
        """Check whether the routing backend answers at all."""
        response = self._request("GET", f"{self.base_url}/hubs")
        return response is not None and response.ok
