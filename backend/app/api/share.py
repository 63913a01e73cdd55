import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_route_composer, limiter
from app.api.schemas import (
    RouteRequest, RouteResponse, ShareLinkCreate, ShareLinkRead, SharedTripView,
)
from app.core import sharing
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.route_composer import RouteComposer
from app.core.security import get_current_principal
from app.core.settings import settings
from app.core.trip_view import load_day_items, load_shared_view, resolve_shared_trip
from app.db import crud
from app.db.models import ShareLink, Trip
from app.db.session import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips/{trip_id}/share", tags=["share"])
public_router = APIRouter(prefix="/shared", tags=["shared"])


async def _get_trip_for_principal(session: AsyncSession, trip_id: UUID, email: str) -> Trip:
    """Owner check by the owner's stored email against the caller's principal."""
    trip = await crud.get_trip(session, trip_id)
    if trip is None:
        raise NotFoundError("Trip not found")
    owner = await crud.get_user_by_id(session, trip.user_id)
    if owner is None or owner.email != email:
        raise ForbiddenError("Only the trip owner can manage share links")
    return trip


def _read(link: ShareLink, request: Request) -> ShareLinkRead:
    read = ShareLinkRead.model_validate(link)
    read.url = sharing.share_url(link.token, str(request.base_url).rstrip("/") + settings.API_PREFIX)
    return read


@router.post("", response_model=ShareLinkRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_SHARE)
async def issue_share_link(
    request: Request,
    trip_id: UUID,
    payload: Optional[ShareLinkCreate] = None,
    principal: str = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db_session),
):
    """Mint a new public read-only link; earlier links stay valid."""
    trip = await _get_trip_for_principal(session, trip_id, principal)
    link = await crud.create_share_link(
        session,
        trip.id,
        sharing.mint_token(),
        expires_at=sharing.expiry_from_days(payload.expires_in_days if payload else None),
    )
    logger.info(f"Share link {link.id} issued for trip {trip.id}")
    return _read(link, request)


@router.get("", response_model=List[ShareLinkRead])
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_share_links(
    request: Request,
    trip_id: UUID,
    principal: str = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db_session),
):
    trip = await _get_trip_for_principal(session, trip_id, principal)
    return [_read(link, request) for link in await crud.list_share_links(session, trip.id)]


@router.delete("/{link_id}", response_model=ShareLinkRead)
@limiter.limit(settings.RATE_LIMIT_SHARE)
async def revoke_share_link(
    request: Request,
    trip_id: UUID,
    link_id: UUID,
    principal: str = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db_session),
):
    """Deactivate a link; revoking twice is harmless."""
    trip = await _get_trip_for_principal(session, trip_id, principal)
    link = await crud.get_share_link(session, trip.id, link_id)
    if link is None:
        raise NotFoundError("Share link not found")
    if link.is_active:
        link = await crud.deactivate_share_link(session, link)
        logger.info(f"Share link {link.id} revoked")
    return _read(link, request)


@public_router.get("/{token}", response_model=SharedTripView)
@limiter.limit(settings.RATE_LIMIT_PUBLIC)
async def read_shared_trip(
    request: Request,
    token: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Public, unauthenticated read-only trip view."""
    return await load_shared_view(session, token)


@public_router.post("/{token}/itineraries/{itinerary_id}/route", response_model=RouteResponse)
@limiter.limit(settings.RATE_LIMIT_ROUTE)
async def compute_shared_route(
    request: Request,
    token: str,
    itinerary_id: UUID,
    payload: RouteRequest,
    session: AsyncSession = Depends(get_db_session),
    composer: RouteComposer = Depends(get_route_composer),
):
    trip = await resolve_shared_trip(session, token)
    items = await load_day_items(session, trip, itinerary_id, payload.item_ids)
    return await composer.compose(items, payload.mode)
