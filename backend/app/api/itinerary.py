import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_route_composer, limiter
from app.api.schemas import (
    ItineraryCreate, ItineraryRead, ItemAppend, ResolvedItemRead,
    ReorderRequest, RouteRequest, RouteResponse,
)
from app.core import item_ordering
from app.core.exceptions import NotFoundError
from app.core.route_composer import RouteComposer
from app.core.security import get_current_user
from app.core.settings import settings
from app.core.trip_view import get_owned_trip, load_day_items
from app.db import crud
from app.db.models import Itinerary, User
from app.db.session import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips/{trip_id}/itineraries", tags=["itineraries"])


async def _get_itinerary(session: AsyncSession, trip_id: UUID, itinerary_id: UUID) -> Itinerary:
    itinerary = await crud.get_itinerary(session, trip_id, itinerary_id)
    if itinerary is None:
        raise NotFoundError("Itinerary not found")
    return itinerary


@router.post("", response_model=ItineraryRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def create_itinerary(
    request: Request,
    trip_id: UUID,
    payload: ItineraryCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_trip(session, trip_id, current_user)
    return await crud.create_itinerary(session, trip_id, payload.date)


@router.get("", response_model=List[ItineraryRead])
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_itineraries(
    request: Request,
    trip_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_trip(session, trip_id, current_user)
    return await crud.list_itineraries(session, trip_id)


@router.delete("/{itinerary_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def delete_itinerary(
    request: Request,
    trip_id: UUID,
    itinerary_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_trip(session, trip_id, current_user)
    itinerary = await _get_itinerary(session, trip_id, itinerary_id)
    await crud.delete_itinerary(session, itinerary)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{itinerary_id}/items", response_model=ResolvedItemRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def append_item(
    request: Request,
    trip_id: UUID,
    itinerary_id: UUID,
    payload: ItemAppend,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Append a point to the day with the next order value.

    The point is not required to exist; an unknown point comes back as
    ``point: null``. Concurrent appends are not serialized unless
    TRANSACTIONAL_ITEM_APPEND is enabled.
    """
    await get_owned_trip(session, trip_id, current_user)
    itinerary = await _get_itinerary(session, trip_id, itinerary_id)
    _, item = await crud.append_item(
        session, itinerary, payload.point_id, lock=settings.TRANSACTIONAL_ITEM_APPEND
    )
    point = await crud.get_point(session, trip_id, payload.point_id)
    return {**item, "point": point}


@router.put("/{itinerary_id}/items", response_model=ItineraryRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def reorder_items(
    request: Request,
    trip_id: UUID,
    itinerary_id: UUID,
    payload: ReorderRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace the day's whole item list with the one supplied (last writer wins)."""
    await get_owned_trip(session, trip_id, current_user)
    itinerary = await _get_itinerary(session, trip_id, itinerary_id)
    items = item_ordering.normalize_reorder(
        entry.model_dump(by_alias=True) for entry in payload.items
    )
    return await crud.replace_items(session, itinerary, items)


@router.delete("/{itinerary_id}/items/{item_id}", response_model=ItineraryRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def remove_item(
    request: Request,
    trip_id: UUID,
    itinerary_id: UUID,
    item_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_trip(session, trip_id, current_user)
    itinerary = await _get_itinerary(session, trip_id, itinerary_id)
    items = item_ordering.remove_item(list(itinerary.items or []), item_id)
    if items is None:
        raise NotFoundError("Itinerary item not found")
    return await crud.replace_items(session, itinerary, items)


@router.post("/{itinerary_id}/route", response_model=RouteResponse)
@limiter.limit(settings.RATE_LIMIT_ROUTE)
async def compute_route(
    request: Request,
    trip_id: UUID,
    itinerary_id: UUID,
    payload: RouteRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    composer: RouteComposer = Depends(get_route_composer),
):
    """Compute the day's route; nothing is stored."""
    trip = await get_owned_trip(session, trip_id, current_user)
    items = await load_day_items(session, trip, itinerary_id, payload.item_ids)
    return await composer.compose(items, payload.mode)
