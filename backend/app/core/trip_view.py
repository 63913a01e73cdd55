"""
Assembles the full view of a trip: metadata, every point, and the itineraries
in date order with each item resolved to its point.

Two entry points share the assembly: the owner path (ownership enforced) and
the public path through a share token (token checked before anything else is
loaded, owner reduced to name and image).
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import item_ordering
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.sharing import check_link
from app.db import crud
from app.db.models import Itinerary, Point, Trip, User

logger = logging.getLogger(__name__)


def require_owner(trip: Trip, user: User) -> Trip:
    if trip.user_id != user.id:
        raise ForbiddenError("You do not have access to this trip")
    return trip


async def get_owned_trip(session: AsyncSession, trip_id: UUID, user: User) -> Trip:
    """Load a trip and check the caller owns it (404 before 403)."""
    trip = await crud.get_trip(session, trip_id)
    if trip is None:
        raise NotFoundError("Trip not found")
    return require_owner(trip, user)


def resolve_items(itinerary: Itinerary, points_by_id: Dict[str, Point]) -> List[Dict[str, Any]]:
    """Attach the point to each item; unresolvable references get ``None``."""
    return [
        {
            "id": item.get("id"),
            "pointId": item.get("pointId"),
            "order": item.get("order"),
            "point": points_by_id.get(str(item.get("pointId"))),
        }
        for item in (itinerary.items or [])
    ]


def assemble(trip: Trip, points: Sequence[Point], itineraries: Sequence[Itinerary]) -> Dict[str, Any]:
    points_by_id = {str(p.id): p for p in points}
    view = trip.model_dump()
    view["points"] = list(points)
    view["itineraries"] = [
        {
            "id": it.id,
            "trip_id": it.trip_id,
            "date": it.date,
            "items": resolve_items(it, points_by_id),
        }
        for it in itineraries
    ]
    return view


async def _load(session: AsyncSession, trip: Trip) -> Dict[str, Any]:
    points = await crud.list_points(session, trip.id)
    itineraries = await crud.list_itineraries(session, trip.id)
    return assemble(trip, points, itineraries)


async def load_owner_view(session: AsyncSession, trip_id: UUID, user: User) -> Dict[str, Any]:
    trip = await get_owned_trip(session, trip_id, user)
    return await _load(session, trip)


async def resolve_shared_trip(session: AsyncSession, token: str) -> Trip:
    """Validate the token, then load its trip."""
    link = check_link(await crud.get_share_link_by_token(session, token))
    trip = await crud.get_trip(session, link.trip_id)
    if trip is None:
        raise NotFoundError("Shared trip not found")
    return trip


async def load_shared_view(session: AsyncSession, token: str) -> Dict[str, Any]:
    trip = await resolve_shared_trip(session, token)
    view = await _load(session, trip)
    owner = await crud.get_user_by_id(session, trip.user_id)
    view["owner"] = {"name": owner.name, "image": owner.image} if owner else None
    logger.info(f"Shared trip {trip.id} viewed")
    return view


async def load_day_items(
    session: AsyncSession,
    trip: Trip,
    itinerary_id: UUID,
    item_ids: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """One day's resolved items in ``order`` (stable), optionally restricted to ``item_ids``."""
    itinerary = await crud.get_itinerary(session, trip.id, itinerary_id)
    if itinerary is None:
        raise NotFoundError("Itinerary not found")
    points = await crud.list_points(session, trip.id)
    items = resolve_items(itinerary, {str(p.id): p for p in points})
    items = item_ordering.sorted_by_order(items)
    if item_ids is not None:
        wanted = set(item_ids)
        items = [it for it in items if it["id"] in wanted]
    return items
