import uuid
from datetime import date as CalendarDate
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Date, DateTime, Index, CheckConstraint, JSON
from pydantic import field_validator
from uuid import UUID as PyUUID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to UTC; naive datetimes (as read back from SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampedModel(SQLModel):
    """Audit timestamps shared by every table.

    ``updated_at`` is bumped explicitly by the write paths that are defined to
    refresh it (point patch, trip update); there is no ``onupdate`` hook, so a
    visited-flag toggle leaves it untouched.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )


class User(TimestampedModel, table=True):
    __tablename__ = "users"

    __table_args__ = (
        Index('idx_users_email', 'email', unique=True),
        CheckConstraint('length(email) > 0', name='check_email_not_empty'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(
        nullable=False,
        max_length=255,
        description="Principal email supplied by the identity provider"
    )
    name: Optional[str] = Field(default=None, max_length=200)
    image: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not v or '@' not in v:
            raise ValueError('Invalid email format')
        return v.strip().lower()


class Trip(TimestampedModel, table=True):
    __tablename__ = "trips"

    __table_args__ = (
        Index('idx_trips_user_id', 'user_id'),
        Index('idx_trips_updated_at', 'updated_at'),
        CheckConstraint('length(name) > 0', name='check_trip_name_not_empty'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=200, description="Trip name")
    description: Optional[str] = Field(default=None, max_length=2000)
    user_id: PyUUID = Field(
        foreign_key="users.id",
        nullable=False,
        description="Owner (creator) of this trip"
    )
    start_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    end_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class Point(TimestampedModel, table=True):
    __tablename__ = "points"

    __table_args__ = (
        Index('idx_points_trip_id', 'trip_id'),
        CheckConstraint('length(name) > 0', name='check_point_name_not_empty'),
        CheckConstraint('latitude BETWEEN -90 AND 90', name='check_valid_latitude'),
        CheckConstraint('longitude BETWEEN -180 AND 180', name='check_valid_longitude'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    trip_id: PyUUID = Field(foreign_key="trips.id", nullable=False)
    name: str = Field(max_length=200, description="Point of interest name")
    description: Optional[str] = Field(default=None, max_length=2000)
    category: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=200)
    # 0,0 means "location unknown / pending geocoding", not an error
    latitude: float = Field(default=0.0, description="Latitude coordinate")
    longitude: float = Field(default=0.0, description="Longitude coordinate")
    visited: bool = Field(default=False, nullable=False)


class Itinerary(SQLModel, table=True):
    """One calendar day of a trip.

    ``items`` is stored as a JSON array of ``{"id", "pointId", "order"}``
    objects, kept in list order exactly as last written. ``order`` values are
    not required to be contiguous or unique at rest.
    """

    __tablename__ = "itineraries"

    __table_args__ = (
        Index('idx_itineraries_trip_id_date', 'trip_id', 'date'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    trip_id: PyUUID = Field(foreign_key="trips.id", nullable=False)
    date: CalendarDate = Field(sa_column=Column(Date, nullable=False))
    items: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )


class ShareLink(SQLModel, table=True):
    """Read-only public access token for one trip.

    ``trip_id`` has no foreign key: deleting a trip leaves its
    links behind, and they resolve as not-found from then on.
    """

    __tablename__ = "share_links"

    __table_args__ = (
        Index('idx_share_links_token', 'token', unique=True),
        Index('idx_share_links_trip_created', 'trip_id', 'created_at'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    trip_id: PyUUID = Field(nullable=False)
    token: str = Field(max_length=64, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utcnow())
