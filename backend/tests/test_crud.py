"""
Storage-level tests for the transactional helpers in app.db.crud.
"""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db import crud
from app.db.models import Itinerary, Point, ShareLink


@pytest_asyncio.fixture
async def trip(session):
    user = await crud.get_or_create_user(session, "Owner@Example.com", name="Olive")
    trip, _ = await crud.create_trip(session, user.id, "Porto")
    return trip


class TestUsers:

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent_and_normalizes_email(self, session):
        first = await crud.get_or_create_user(session, "Someone@Example.com")
        second = await crud.get_or_create_user(session, "someone@example.com", name="Later Name")

        assert first.id == second.id
        assert second.email == "someone@example.com"
        assert second.name == "Later Name"


class TestTrips:

    @pytest.mark.asyncio
    async def test_candidate_points_with_blank_names_are_skipped(self, session):
        user = await crud.get_or_create_user(session, "a@example.com")
        trip, points = await crud.create_trip(
            session, user.id, "  Imported  ",
            candidate_points=[
                {"name": "Tower", "city": "Lisbon", "latitude": 38.69, "longitude": -9.21},
                {"name": "   "},
                {"name": None, "address": "Somewhere"},
                {"name": "Market", "latitude": None},
            ],
        )

        assert trip.name == "Imported"
        assert [p.name for p in points] == ["Tower", "Market"]
        market = points[1]
        assert (market.latitude, market.longitude) == (0.0, 0.0)
        assert market.visited is False

    @pytest.mark.asyncio
    async def test_delete_trip_removes_children_but_not_share_links(self, session, trip):
        await crud.create_point(session, trip.id, {"name": "Bridge"})
        await crud.create_itinerary(session, trip.id, date(2024, 5, 1))
        await crud.create_share_link(session, trip.id, "tok-delete-me")

        await crud.delete_trip(session, trip)

        assert await crud.get_trip(session, trip.id) is None
        assert (await session.execute(select(Point).where(Point.trip_id == trip.id))).first() is None
        assert (await session.execute(select(Itinerary).where(Itinerary.trip_id == trip.id))).first() is None
        link = (await session.execute(select(ShareLink).where(ShareLink.trip_id == trip.id))).scalar_one()
        assert link.token == "tok-delete-me"


class TestPointCascade:

    @pytest.mark.asyncio
    async def test_only_changed_itineraries_are_rewritten(self, session, trip):
        doomed = await crud.create_point(session, trip.id, {"name": "Doomed"})
        keeper = await crud.create_point(session, trip.id, {"name": "Keeper"})
        day1 = await crud.create_itinerary(session, trip.id, date(2024, 5, 1))
        day2 = await crud.create_itinerary(session, trip.id, date(2024, 5, 2))
        await crud.append_item(session, day1, doomed.id)
        await crud.append_item(session, day1, keeper.id)
        await crud.append_item(session, day2, keeper.id)

        changed = await crud.delete_point_cascade(session, doomed)

        assert changed == [day1.id]
        for itinerary in await crud.list_itineraries(session, trip.id):
            assert all(it["pointId"] != str(doomed.id) for it in itinerary.items)
        assert await crud.get_point(session, trip.id, doomed.id) is None

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back_point_and_itineraries(self, session, trip):
        trip_id = trip.id
        point = await crud.create_point(session, trip_id, {"name": "Sticky"})
        itinerary = await crud.create_itinerary(session, trip_id, date(2024, 5, 1))
        _, item = await crud.append_item(session, itinerary, point.id)
        point_id, itinerary_id = point.id, itinerary.id

        # rollback expires every loaded object; only the saved ids are safe to read
        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.delete_point_cascade(session, point)

        assert await crud.get_point(session, trip_id, point_id) is not None
        reloaded = await crud.get_itinerary(session, trip_id, itinerary_id)
        assert reloaded.items == [item]


class TestStorageErrors:

    @pytest.mark.asyncio
    async def test_patch_point_surfaces_the_storage_error(self, session, trip):
        trip_id = trip.id
        point = await crud.create_point(session, trip_id, {"name": "Before"})
        point_id = point.id

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.patch_point(session, point, {"name": "After"})

        reloaded = await crud.get_point(session, trip_id, point_id)
        assert reloaded.name == "Before"

    @pytest.mark.asyncio
    async def test_update_trip_surfaces_the_storage_error(self, session, trip):
        trip_id = trip.id

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.update_trip(session, trip, {"name": "Renamed"})

        assert (await crud.get_trip(session, trip_id)).name == "Porto"

    @pytest.mark.asyncio
    async def test_append_and_replace_surface_the_storage_error(self, session, trip):
        trip_id = trip.id
        itinerary = await crud.create_itinerary(session, trip_id, date(2024, 5, 1))
        itinerary_id = itinerary.id

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.append_item(session, itinerary, trip_id)

        itinerary = await crud.get_itinerary(session, trip_id, itinerary_id)
        assert itinerary.items == []

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.replace_items(session, itinerary, [{"id": "x", "pointId": "p", "order": 1}])

        reloaded = await crud.get_itinerary(session, trip_id, itinerary_id)
        assert reloaded.items == []

    @pytest.mark.asyncio
    async def test_deactivate_share_link_surfaces_the_storage_error(self, session, trip):
        link = await crud.create_share_link(session, trip.id, "tok-sticky")

        with patch.object(session, "commit", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            with pytest.raises(SQLAlchemyError, match="disk full"):
                await crud.deactivate_share_link(session, link)

        assert (await crud.get_share_link_by_token(session, "tok-sticky")).is_active is True


class TestItineraryItems:

    @pytest.mark.asyncio
    async def test_itineraries_listed_by_date(self, session, trip):
        await crud.create_itinerary(session, trip.id, date(2024, 5, 3))
        await crud.create_itinerary(session, trip.id, date(2024, 5, 1))
        await crud.create_itinerary(session, trip.id, date(2024, 5, 2))

        days = [it.date for it in await crud.list_itineraries(session, trip.id)]
        assert days == [date(2024, 5, 1), date(2024, 5, 2), date(2024, 5, 3)]

    @pytest.mark.asyncio
    async def test_locked_append_assigns_next_order(self, session, trip):
        point = await crud.create_point(session, trip.id, {"name": "Cafe"})
        itinerary = await crud.create_itinerary(session, trip.id, date(2024, 5, 1))

        for _ in range(3):
            itinerary, item = await crud.append_item(session, itinerary, point.id, lock=True)

        assert [it["order"] for it in itinerary.items] == [1, 2, 3]
        assert item["pointId"] == str(point.id)

    @pytest.mark.asyncio
    async def test_replace_items_round_trips_verbatim(self, session, trip):
        itinerary = await crud.create_itinerary(session, trip.id, date(2024, 5, 1))
        items = [
            {"id": "b", "pointId": "p2", "order": 3},
            {"id": "a", "pointId": "p1", "order": 3},
        ]
        await crud.replace_items(session, itinerary, items)

        reloaded = await crud.get_itinerary(session, trip.id, itinerary.id)
        assert reloaded.items == items


class TestShareLinks:

    @pytest.mark.asyncio
    async def test_list_newest_first(self, session, trip):
        first = await crud.create_share_link(session, trip.id, "tok-first")
        second = await crud.create_share_link(session, trip.id, "tok-second")

        links = await crud.list_share_links(session, trip.id)
        assert [link.id for link in links] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_deactivate(self, session, trip):
        link = await crud.create_share_link(session, trip.id, "tok-off")
        await crud.deactivate_share_link(session, link)

        reloaded = await crud.get_share_link_by_token(session, "tok-off")
        assert reloaded.is_active is False
