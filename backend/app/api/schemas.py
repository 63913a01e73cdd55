from typing import Annotated, List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, AfterValidator, model_validator
from pydantic.alias_generators import to_camel
from uuid import UUID
from datetime import date as CalendarDate
from datetime import datetime

from app.core.route_composer import TravelMode
from app.db.models import as_utc

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# ===== USERS =====

class UserRead(CamelModel):
    id: UUID
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    created_at: UtcDatetime

class OwnerProjection(CamelModel):
    name: Optional[str] = None
    image: Optional[str] = None

# ===== POINTS =====

class PointCreate(CamelModel):
    name: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    visited: bool = False

class CandidatePoint(CamelModel):
    """Untrusted point guess (document or AI extraction); blank names are skipped"""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

class PointUpdate(CamelModel):
    """Partial update: omitted fields are untouched, explicit null clears text fields"""
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    visited: Optional[bool] = None

class VisitedUpdate(CamelModel):
    visited: bool

class PointRead(CamelModel):
    id: UUID
    trip_id: UUID
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    latitude: float
    longitude: float
    visited: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime

# ===== ITINERARIES =====

class ItineraryCreate(CamelModel):
    date: CalendarDate

class ItineraryItemRead(CamelModel):
    id: str
    point_id: Optional[str] = None
    order: int

class ResolvedItemRead(ItineraryItemRead):
    point: Optional[PointRead] = None

class ItineraryRead(CamelModel):
    id: UUID
    trip_id: UUID
    date: CalendarDate
    items: List[ItineraryItemRead] = []
    created_at: UtcDatetime

class ItineraryView(CamelModel):
    id: UUID
    trip_id: UUID
    date: CalendarDate
    items: List[ResolvedItemRead] = []

class ItemAppend(CamelModel):
    point_id: UUID

class ReorderEntry(CamelModel):
    id: Optional[str] = None
    point_id: Optional[str] = None
    point: Optional[Dict[str, Any]] = None
    order: int = Field(..., ge=1)

    @model_validator(mode="after")
    def require_point_reference(self):
        if not self.point_id and not (self.point and self.point.get("id")):
            raise ValueError("each item needs pointId (or point.id)")
        return self

class ReorderRequest(CamelModel):
    items: List[ReorderEntry]

# ===== ROUTES =====

class RouteRequest(CamelModel):
    mode: TravelMode = TravelMode.DRIVING
    item_ids: Optional[List[str]] = Field(
        None, description="Restrict the route to these items (day order is kept)"
    )

class RouteStop(CamelModel):
    item_id: Optional[str] = None
    point_id: str
    name: Optional[str] = None
    latitude: float
    longitude: float

class RouteResponse(CamelModel):
    mode: TravelMode
    kind: str = Field(..., description="'single' or 'legs'")
    routes: List[Dict[str, Any]]
    waypoint_order: List[int] = []
    stops: List[RouteStop]
    maps_url: str

# ===== TRIPS =====

class TripCreate(CamelModel):
    name: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    points: List[CandidatePoint] = []

class TripUpdate(CamelModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None

class TripRead(CamelModel):
    id: UUID
    user_id: UUID
    name: str
    description: Optional[str] = None
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

class TripSummary(TripRead):
    point_count: int = 0

class TripView(TripRead):
    points: List[PointRead] = []
    itineraries: List[ItineraryView] = []

class SharedTripView(CamelModel):
    id: UUID
    name: str
    description: Optional[str] = None
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
    points: List[PointRead] = []
    itineraries: List[ItineraryView] = []
    owner: Optional[OwnerProjection] = None

# ===== SHARE LINKS =====

class ShareLinkCreate(CamelModel):
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)

class ShareLinkRead(CamelModel):
    id: UUID
    trip_id: UUID
    token: str
    is_active: bool
    created_at: UtcDatetime
    expires_at: Optional[UtcDatetime] = None
    url: Optional[str] = None
