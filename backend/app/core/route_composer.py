"""
Turns one itinerary day into a travel plan.

Given the day's items (already resolved to points and in day order) and a
travel mode, the composer keeps the stops with usable coordinates and either
asks the directions provider for a single optimized multi-stop route or, for
transit over more than two stops, for one point-to-point leg per consecutive
pair. Results are returned to the caller and never stored.
"""

import asyncio
import logging
import math
from collections import namedtuple
from enum import Enum
from typing import Any, Dict, List, Protocol, Sequence, Tuple
from urllib.parse import urlencode

from app.core.directions import LatLng, format_latlng
from app.core.exceptions import (
    InsufficientPointsError,
    RouteNotFoundError,
    UpstreamFailureError,
)

logger = logging.getLogger(__name__)

MAPS_DIR_URL = "https://www.google.com/maps/dir/"

Stop = namedtuple("Stop", ["item_id", "point_id", "name", "latitude", "longitude"])


class TravelMode(str, Enum):
    DRIVING = "DRIVING"
    WALKING = "WALKING"
    BICYCLING = "BICYCLING"
    TRANSIT = "TRANSIT"


class RouteProvider(Protocol):
    async def route(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng] = (),
        optimize_waypoints: bool = False,
        mode: str = "DRIVING",
    ) -> Tuple[str, Dict[str, Any]]:
        ...


def _is_coordinate(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def valid_stops(items: Sequence[Dict[str, Any]]) -> List[Stop]:
    """Drop items with no resolved point or non-numeric coordinates.

    ``items`` are dicts carrying ``id``, ``pointId`` and ``point`` (a Point or a
    dict of its fields, or ``None`` for a dangling reference). Input order is kept.
    """
    stops = []
    for item in items:
        point = item.get("point")
        if point is None:
            continue
        lat, lng = _get(point, "latitude"), _get(point, "longitude")
        if not (_is_coordinate(lat) and _is_coordinate(lng)):
            continue
        stops.append(Stop(
            item_id=item.get("id"),
            point_id=str(_get(point, "id") or item.get("pointId")),
            name=_get(point, "name"),
            latitude=float(lat),
            longitude=float(lng),
        ))
    return stops


def build_maps_url(stops: Sequence[Stop], mode: TravelMode) -> str:
    """Google Maps directions deep link for the same stops."""
    params = {
        "api": "1",
        "origin": format_latlng(stops[0]),
        "destination": format_latlng(stops[-1]),
        "travelmode": mode.value.lower(),
    }
    middle = stops[1:-1]
    if middle:
        params["waypoints"] = "|".join(format_latlng(s) for s in middle)
    return f"{MAPS_DIR_URL}?{urlencode(params, safe='|,')}"


class RouteComposer:

    def __init__(self, provider: RouteProvider):
        self.provider = provider

    async def compose(
        self,
        items: Sequence[Dict[str, Any]],
        mode: TravelMode = TravelMode.DRIVING,
    ) -> Dict[str, Any]:
        """
        Compute the route for one day.

        Args:
            items: the day's items in day order, each resolved to its point
            mode: travel mode

        Returns:
            ``{mode, kind, routes, waypointOrder, stops, mapsUrl}`` where ``kind``
            is ``"single"`` or ``"legs"``

        Raises:
            InsufficientPointsError: fewer than two usable stops (no provider call)
            RouteNotFoundError: the provider found no route (``ZERO_RESULTS``)
            UpstreamFailureError: any other provider failure
        """
        mode = TravelMode(mode)
        stops = valid_stops(items)
        if len(stops) < 2:
            raise InsufficientPointsError(
                "At least two points with coordinates are needed to compute a route",
                context={"valid_points": len(stops)},
            )

        if mode is TravelMode.TRANSIT and len(stops) > 2:
            routes = await self._compose_legs(stops)
            kind = "legs"
            waypoint_order: List[int] = []
        else:
            routes, waypoint_order = await self._compose_single(stops, mode)
            kind = "single"

        logger.info(f"Route composed: mode={mode.value} kind={kind} stops={len(stops)}")
        return {
            "mode": mode.value,
            "kind": kind,
            "routes": routes,
            "waypointOrder": waypoint_order,
            "stops": [
                {
                    "itemId": s.item_id,
                    "pointId": s.point_id,
                    "name": s.name,
                    "latitude": s.latitude,
                    "longitude": s.longitude,
                }
                for s in stops
            ],
            "mapsUrl": build_maps_url(stops, mode),
        }

    async def _compose_single(
        self, stops: List[Stop], mode: TravelMode
    ) -> Tuple[List[Dict[str, Any]], List[int]]:
        transit = mode is TravelMode.TRANSIT
        # transit never carries waypoints here: more than two stops go through legs
        waypoints = [] if transit else [LatLng(s.latitude, s.longitude) for s in stops[1:-1]]
        status, payload = await self.provider.route(
            LatLng(stops[0].latitude, stops[0].longitude),
            LatLng(stops[-1].latitude, stops[-1].longitude),
            waypoints,
            not transit,
            mode.value,
        )
        routes = self._check(status, payload, mode)
        return routes, list(routes[0].get("waypoint_order", []))

    async def _compose_legs(self, stops: List[Stop]) -> List[Dict[str, Any]]:
        async def leg(index: int, a: Stop, b: Stop) -> Dict[str, Any]:
            try:
                status, payload = await self.provider.route(
                    LatLng(a.latitude, a.longitude),
                    LatLng(b.latitude, b.longitude),
                    [],
                    False,
                    TravelMode.TRANSIT.value,
                )
                return self._check(status, payload, TravelMode.TRANSIT)[0]
            except UpstreamFailureError as exc:
                exc.context.setdefault("leg", index)
                logger.warning(f"Route leg {index} failed: {exc.context.get('provider_status')}")
                raise

        # first failure wins; sibling legs are left to finish and ignored
        return list(await asyncio.gather(
            *(leg(i, a, b) for i, (a, b) in enumerate(zip(stops, stops[1:])))
        ))

    @staticmethod
    def _check(status: str, payload: Dict[str, Any], mode: TravelMode) -> List[Dict[str, Any]]:
        routes = payload.get("routes") or []
        if status == "OK" and routes:
            return routes
        if status in ("OK", "ZERO_RESULTS"):
            if mode is TravelMode.TRANSIT:
                message = "No public transport route found between these points"
            else:
                message = "No route found between these points"
            raise RouteNotFoundError(message, provider_status="ZERO_RESULTS")
        raise UpstreamFailureError(
            f"Route provider failed with status {status}",
            provider_status=status,
        )
