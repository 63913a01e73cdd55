import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_geocoder, limiter
from app.api.schemas import PointCreate, PointUpdate, PointRead, VisitedUpdate
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.geocoding import Geocoder
from app.core.security import get_current_user
from app.core.settings import settings
from app.core.trip_view import get_owned_trip
from app.db import crud
from app.db.models import Point, User
from app.db.session import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips/{trip_id}/points", tags=["points"])

NON_NULLABLE_FIELDS = ("name", "latitude", "longitude", "visited")


def point_changes(payload: PointUpdate) -> Dict[str, Any]:
    """Supplied fields only; explicit null is accepted for the text fields alone."""
    changes = payload.model_dump(exclude_unset=True)
    for field in NON_NULLABLE_FIELDS:
        if field in changes and changes[field] is None:
            raise InvalidInputError(f"{field} cannot be null", context={"field": field})
    if "name" in changes:
        if not changes["name"].strip():
            raise InvalidInputError("Point name cannot be empty", context={"field": "name"})
        changes["name"] = changes["name"].strip()
    return changes


async def _get_point(session: AsyncSession, trip_id: UUID, point_id: UUID) -> Point:
    point = await crud.get_point(session, trip_id, point_id)
    if point is None:
        raise NotFoundError("Point not found")
    return point


@router.post("", response_model=PointRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def create_point(
    request: Request,
    trip_id: UUID,
    payload: PointCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    geocoder: Geocoder = Depends(get_geocoder),
):
    await get_owned_trip(session, trip_id, current_user)
    if not payload.name.strip():
        raise InvalidInputError("Point name is required", context={"field": "name"})

    fields = payload.model_dump()
    if fields["latitude"] is None and fields["longitude"] is None:
        coords = await geocoder.locate(payload.address, payload.city)
        if coords:
            fields["latitude"], fields["longitude"] = coords

    return await crud.create_point(session, trip_id, fields)


@router.patch("/{point_id}", response_model=PointRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def patch_point(
    request: Request,
    trip_id: UUID,
    point_id: UUID,
    payload: PointUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """Partial update; ``updatedAt`` is refreshed even when nothing else changes."""
    await get_owned_trip(session, trip_id, current_user)
    point = await _get_point(session, trip_id, point_id)
    changes = point_changes(payload)

    if changes.get("address") and "latitude" not in changes and "longitude" not in changes:
        coords = await geocoder.locate(changes["address"], changes.get("city", point.city))
        if coords:
            changes["latitude"], changes["longitude"] = coords

    return await crud.patch_point(session, point, changes)


@router.put("/{point_id}/visited", response_model=PointRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def set_visited(
    request: Request,
    trip_id: UUID,
    point_id: UUID,
    payload: VisitedUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await get_owned_trip(session, trip_id, current_user)
    point = await _get_point(session, trip_id, point_id)
    return await crud.set_point_visited(session, point, payload.visited)


@router.delete("/{point_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def delete_point(
    request: Request,
    trip_id: UUID,
    point_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete the point and remove every itinerary item that references it."""
    await get_owned_trip(session, trip_id, current_user)
    point = await _get_point(session, trip_id, point_id)
    await crud.delete_point_cascade(session, point)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
