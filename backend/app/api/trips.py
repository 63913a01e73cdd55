import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import limiter
from app.api.schemas import TripCreate, TripUpdate, TripRead, TripSummary, TripView
from app.core.exceptions import InvalidInputError
from app.core.security import get_current_user
from app.core.settings import settings
from app.core.trip_view import get_owned_trip, load_owner_view
from app.db import crud
from app.db.models import User, as_utc
from app.db.session import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


def _check_dates(start_date, end_date) -> None:
    if start_date and end_date and as_utc(start_date) > as_utc(end_date):
        raise InvalidInputError("startDate must not be after endDate")


@router.post("", response_model=TripRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def create_trip(
    request: Request,
    payload: TripCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a trip, optionally seeded with candidate points from an import."""
    if not payload.name.strip():
        raise InvalidInputError("Trip name is required")
    _check_dates(payload.start_date, payload.end_date)

    trip, points = await crud.create_trip(
        session,
        user_id=current_user.id,
        name=payload.name,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        candidate_points=[p.model_dump() for p in payload.points],
    )
    logger.info(f"Trip {trip.id} created by {current_user.id} with {len(points)} points")
    return trip


@router.get("", response_model=List[TripSummary])
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_trips(
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    rows = await crud.list_trips_with_point_counts(session, current_user.id)
    return [
        TripSummary.model_validate({**trip.model_dump(), "point_count": count})
        for trip, count in rows
    ]


@router.get("/{trip_id}", response_model=TripView)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_trip(
    request: Request,
    trip_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Full trip view: points plus itineraries by date with items resolved to points."""
    return await load_owner_view(session, trip_id, current_user)


@router.patch("/{trip_id}", response_model=TripRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def update_trip(
    request: Request,
    trip_id: UUID,
    payload: TripUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    trip = await get_owned_trip(session, trip_id, current_user)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise InvalidInputError("Trip name cannot be empty")
    if changes.get("name"):
        changes["name"] = changes["name"].strip()
    _check_dates(
        changes.get("start_date", trip.start_date),
        changes.get("end_date", trip.end_date),
    )
    return await crud.update_trip(session, trip, changes)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def delete_trip(
    request: Request,
    trip_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    trip = await get_owned_trip(session, trip_id, current_user)
    await crud.delete_trip(session, trip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
