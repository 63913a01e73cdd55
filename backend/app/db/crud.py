"""
CRUD operations for users, trips, points, itineraries and share links.

Write helpers commit their own unit of work and roll the session back before
re-raising on failure, so a caller never observes a half-applied mutation.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, delete, func, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import item_ordering
from app.db.models import User, Trip, Point, Itinerary, ShareLink, utcnow

logger = logging.getLogger(__name__)

POINT_FIELDS = ("name", "description", "category", "address", "city", "latitude", "longitude", "visited")
TRIP_FIELDS = ("name", "description", "start_date", "end_date")

# ===== USER CRUD OPERATIONS =====

async def get_user_by_id(session: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(
        select(User).where(User.email == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def get_or_create_user(
    session: AsyncSession,
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
) -> User:
    """Resolve the user for a principal email, creating it on first access"""
    user = await get_user_by_email(session, email)
    if user:
        changed = False
        if name and not user.name:
            user.name, changed = name, True
        if image and not user.image:
            user.image, changed = image, True
        if changed:
            user.updated_at = utcnow()
            await session.commit()
        return user

    try:
        user = User(email=email.strip().lower(), name=name, image=image)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        logger.info(f"Created user on first access: {user.id}")
        return user
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating user: {e}")
        raise

# ===== TRIP CRUD OPERATIONS =====

def _point_from_fields(trip_id: UUID, fields: Dict[str, Any]) -> Point:
    values = {k: v for k, v in fields.items() if k in POINT_FIELDS and v is not None}
    values["name"] = values["name"].strip()
    return Point(trip_id=trip_id, **values)


async def create_trip(
    session: AsyncSession,
    user_id: UUID,
    name: str,
    description: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    candidate_points: Iterable[Dict[str, Any]] = (),
) -> Tuple[Trip, List[Point]]:
    """Create a trip and, in the same commit, a point per named candidate"""
    try:
        trip = Trip(
            name=name.strip(),
            description=description,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
        )
        session.add(trip)
        await session.flush()

        points = []
        for candidate in candidate_points:
            if not (candidate.get("name") or "").strip():
                continue
            point = _point_from_fields(trip.id, candidate)
            session.add(point)
            points.append(point)

        await session.commit()
        await session.refresh(trip)
        logger.info(f"Created trip {trip.id} with {len(points)} points")
        return trip, points
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating trip: {e}")
        raise


async def get_trip(session: AsyncSession, trip_id: UUID) -> Optional[Trip]:
    result = await session.execute(select(Trip).where(Trip.id == trip_id))
    return result.scalar_one_or_none()


async def list_trips_with_point_counts(session: AsyncSession, user_id: UUID) -> List[Tuple[Trip, int]]:
    """User's trips, most recently updated first, each with its point count"""
    result = await session.execute(
        select(Trip, func.count(Point.id))
        .outerjoin(Point, Point.trip_id == Trip.id)
        .where(Trip.user_id == user_id)
        .group_by(Trip.id)
        .order_by(desc(Trip.updated_at))
    )
    return [(trip, count) for trip, count in result.all()]


async def update_trip(session: AsyncSession, trip: Trip, fields: Dict[str, Any]) -> Trip:
    """Write only the supplied fields and bump ``updated_at``"""
    trip_id = trip.id
    try:
        for key, value in fields.items():
            if key in TRIP_FIELDS:
                setattr(trip, key, value)
        trip.updated_at = utcnow()
        await session.commit()
        await session.refresh(trip)
        return trip
    except Exception as e:
        await session.rollback()
        logger.error(f"Error updating trip {trip_id}: {e}")
        raise


async def delete_trip(session: AsyncSession, trip: Trip) -> None:
    """Delete a trip with its points and itineraries in one transaction.

    Share links are left in place; with the trip gone they no longer resolve.
    """
    trip_id = trip.id
    try:
        await session.execute(delete(Itinerary).where(Itinerary.trip_id == trip_id))
        await session.execute(delete(Point).where(Point.trip_id == trip_id))
        await session.delete(trip)
        await session.commit()
        logger.info(f"Deleted trip {trip_id}")
    except Exception as e:
        await session.rollback()
        logger.error(f"Error deleting trip {trip_id}: {e}")
        raise

# ===== POINT CRUD OPERATIONS =====

async def create_point(session: AsyncSession, trip_id: UUID, fields: Dict[str, Any]) -> Point:
    try:
        point = _point_from_fields(trip_id, fields)
        session.add(point)
        await session.commit()
        await session.refresh(point)
        logger.info(f"Created point {point.id} in trip {trip_id}")
        return point
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating point: {e}")
        raise


async def get_point(session: AsyncSession, trip_id: UUID, point_id: UUID) -> Optional[Point]:
    result = await session.execute(
        select(Point).where(Point.id == point_id, Point.trip_id == trip_id)
    )
    return result.scalar_one_or_none()


async def list_points(session: AsyncSession, trip_id: UUID) -> List[Point]:
    result = await session.execute(select(Point).where(Point.trip_id == trip_id))
    return list(result.scalars().all())


async def patch_point(session: AsyncSession, point: Point, fields: Dict[str, Any]) -> Point:
    """Write only the supplied keys; ``updated_at`` always refreshes"""
    point_id = point.id
    try:
        for key, value in fields.items():
            if key in POINT_FIELDS:
                setattr(point, key, value)
        point.updated_at = utcnow()
        await session.commit()
        await session.refresh(point)
        return point
    except Exception as e:
        await session.rollback()
        logger.error(f"Error patching point {point_id}: {e}")
        raise


async def set_point_visited(session: AsyncSession, point: Point, visited: bool) -> Point:
    """Flip the visited flag and nothing else"""
    point_id = point.id
    try:
        point.visited = visited
        await session.commit()
        await session.refresh(point)
        return point
    except Exception as e:
        await session.rollback()
        logger.error(f"Error updating visited flag on point {point_id}: {e}")
        raise


async def delete_point_cascade(session: AsyncSession, point: Point) -> List[UUID]:
    """Delete a point and strip its items from the trip's itineraries.

    Only itineraries whose item list actually changed are written. The point
    delete and every itinerary rewrite commit together or not at all.

    Returns:
        ids of the itineraries that were rewritten
    """
    point_id = point.id
    try:
        result = await session.execute(
            select(Itinerary).where(Itinerary.trip_id == point.trip_id)
        )
        changed = []
        for itinerary in result.scalars().all():
            kept, did_change = item_ordering.strip_point(itinerary.items or [], point_id)
            if did_change:
                itinerary.items = kept
                changed.append(itinerary.id)

        await session.delete(point)
        await session.commit()
        logger.info(f"Deleted point {point_id}, rewrote {len(changed)} itineraries")
        return changed
    except Exception as e:
        await session.rollback()
        logger.error(f"Error deleting point {point_id}: {e}")
        raise

# ===== ITINERARY CRUD OPERATIONS =====

async def create_itinerary(session: AsyncSession, trip_id: UUID, day: date) -> Itinerary:
    try:
        itinerary = Itinerary(trip_id=trip_id, date=day, items=[])
        session.add(itinerary)
        await session.commit()
        await session.refresh(itinerary)
        logger.info(f"Created itinerary {itinerary.id} for {day.isoformat()}")
        return itinerary
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating itinerary: {e}")
        raise


async def list_itineraries(session: AsyncSession, trip_id: UUID) -> List[Itinerary]:
    """Trip's itineraries ordered by date ascending"""
    result = await session.execute(
        select(Itinerary)
        .where(Itinerary.trip_id == trip_id)
        .order_by(asc(Itinerary.date), asc(Itinerary.created_at))
    )
    return list(result.scalars().all())


async def get_itinerary(session: AsyncSession, trip_id: UUID, itinerary_id: UUID) -> Optional[Itinerary]:
    result = await session.execute(
        select(Itinerary).where(Itinerary.id == itinerary_id, Itinerary.trip_id == trip_id)
    )
    return result.scalar_one_or_none()


async def delete_itinerary(session: AsyncSession, itinerary: Itinerary) -> None:
    itinerary_id = itinerary.id
    try:
        await session.delete(itinerary)
        await session.commit()
        logger.info(f"Deleted itinerary {itinerary_id}")
    except Exception as e:
        await session.rollback()
        logger.error(f"Error deleting itinerary {itinerary_id}: {e}")
        raise


async def append_item(
    session: AsyncSession,
    itinerary: Itinerary,
    point_id: UUID,
    lock: bool = False,
) -> Tuple[Itinerary, Dict[str, Any]]:
    """Append an item with ``order = max(order) + 1``.

    Without ``lock`` this is a plain read-modify-write: two concurrent appends
    can compute the same order, and a concurrent reorder can drop the new item.
    With ``lock`` the row is re-read ``FOR UPDATE`` inside the write transaction.
    """
    itinerary_id = itinerary.id
    try:
        if lock:
            result = await session.execute(
                select(Itinerary)
                .where(Itinerary.id == itinerary_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            itinerary = result.scalar_one()

        items, item = item_ordering.append_item(list(itinerary.items or []), point_id)
        itinerary.items = items
        await session.commit()
        await session.refresh(itinerary)
        return itinerary, item
    except Exception as e:
        await session.rollback()
        logger.error(f"Error appending item to itinerary {itinerary_id}: {e}")
        raise


async def replace_items(session: AsyncSession, itinerary: Itinerary, items: List[Dict[str, Any]]) -> Itinerary:
    """Overwrite the whole item list (last writer wins)"""
    itinerary_id = itinerary.id
    try:
        itinerary.items = items
        await session.commit()
        await session.refresh(itinerary)
        return itinerary
    except Exception as e:
        await session.rollback()
        logger.error(f"Error writing items of itinerary {itinerary_id}: {e}")
        raise

# ===== SHARE LINK CRUD OPERATIONS =====

async def create_share_link(
    session: AsyncSession,
    trip_id: UUID,
    token: str,
    expires_at: Optional[datetime] = None,
) -> ShareLink:
    try:
        link = ShareLink(trip_id=trip_id, token=token, is_active=True, expires_at=expires_at)
        session.add(link)
        await session.commit()
        await session.refresh(link)
        return link
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating share link for trip {trip_id}: {e}")
        raise


async def list_share_links(session: AsyncSession, trip_id: UUID) -> List[ShareLink]:
    """All links issued for a trip, newest first"""
    result = await session.execute(
        select(ShareLink)
        .where(ShareLink.trip_id == trip_id)
        .order_by(desc(ShareLink.created_at))
    )
    return list(result.scalars().all())


async def get_share_link_by_token(session: AsyncSession, token: str) -> Optional[ShareLink]:
    result = await session.execute(select(ShareLink).where(ShareLink.token == token))
    return result.scalar_one_or_none()


async def get_share_link(session: AsyncSession, trip_id: UUID, link_id: UUID) -> Optional[ShareLink]:
    result = await session.execute(
        select(ShareLink).where(ShareLink.id == link_id, ShareLink.trip_id == trip_id)
    )
    return result.scalar_one_or_none()


async def deactivate_share_link(session: AsyncSession, link: ShareLink) -> ShareLink:
    link_id = link.id
    try:
        link.is_active = False
        await session.commit()
        await session.refresh(link)
        return link
    except Exception as e:
        await session.rollback()
        logger.error(f"Error deactivating share link {link_id}: {e}")
        raise
