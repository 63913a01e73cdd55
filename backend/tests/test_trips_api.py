"""
Trip lifecycle through the HTTP API, plus the app-level endpoints.
"""

import uuid

import pytest

from conftest import API, append_item, create_itinerary, create_point, create_trip


class TestCreateTrip:

    @pytest.mark.asyncio
    async def test_create_with_candidate_points(self, client, owner_headers):
        trip = await create_trip(
            client, owner_headers, name="Rome",
            points=[
                {"name": "Colosseum", "latitude": 41.89, "longitude": 12.49, "confidence": 0.9},
                {"name": ""},
                {"address": "no name"},
            ],
        )

        resp = await client.get(f"{API}/trips/{trip['id']}", headers=owner_headers)
        view = resp.json()
        assert view["name"] == "Rome"
        assert [p["name"] for p in view["points"]] == ["Colosseum"]
        assert view["itineraries"] == []

    @pytest.mark.asyncio
    async def test_blank_name(self, client, owner_headers):
        resp = await client.post(f"{API}/trips", json={"name": "   "}, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_start_after_end(self, client, owner_headers):
        resp = await client.post(
            f"{API}/trips",
            json={"name": "Backwards", "startDate": "2024-06-10T00:00:00Z", "endDate": "2024-06-01T00:00:00Z"},
            headers=owner_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_name_is_a_shape_error(self, client, owner_headers):
        resp = await client.post(f"{API}/trips", json={}, headers=owner_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client):
        resp = await client.post(f"{API}/trips", json={"name": "Anon"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthenticated"


class TestListTrips:

    @pytest.mark.asyncio
    async def test_most_recently_updated_first_with_point_counts(self, client, owner_headers, other_headers):
        older = await create_trip(client, owner_headers, name="Older", points=[{"name": "A"}, {"name": "B"}])
        newer = await create_trip(client, owner_headers, name="Newer")
        await create_trip(client, other_headers, name="Not mine")

        resp = await client.get(f"{API}/trips", headers=owner_headers)
        listing = resp.json()
        assert [t["name"] for t in listing] == ["Newer", "Older"]
        assert [t["pointCount"] for t in listing] == [0, 2]

        await client.patch(f"{API}/trips/{older['id']}", json={"description": "touched"}, headers=owner_headers)
        listing = (await client.get(f"{API}/trips", headers=owner_headers)).json()
        assert [t["id"] for t in listing] == [older["id"], newer["id"]]


class TestUpdateTrip:

    @pytest.mark.asyncio
    async def test_partial_update(self, client, owner_headers):
        trip = await create_trip(client, owner_headers, name="Draft")

        resp = await client.patch(
            f"{API}/trips/{trip['id']}",
            json={"name": "  Final  ", "startDate": "2024-07-01T09:00:00+02:00"},
            headers=owner_headers,
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["name"] == "Final"
        assert body["startDate"].startswith("2024-07-01T07:00:00")
        assert body["endDate"] is None

    @pytest.mark.asyncio
    async def test_end_before_existing_start(self, client, owner_headers):
        trip = await create_trip(client, owner_headers)
        await client.patch(
            f"{API}/trips/{trip['id']}", json={"startDate": "2024-07-10T00:00:00Z"}, headers=owner_headers
        )
        resp = await client.patch(
            f"{API}/trips/{trip['id']}", json={"endDate": "2024-07-01T00:00:00Z"}, headers=owner_headers
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_null_name_rejected(self, client, owner_headers):
        trip = await create_trip(client, owner_headers)
        resp = await client.patch(f"{API}/trips/{trip['id']}", json={"name": None}, headers=owner_headers)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_non_owner(self, client, owner_headers, other_headers):
        trip = await create_trip(client, owner_headers)
        resp = await client.patch(f"{API}/trips/{trip['id']}", json={"name": "Mine now"}, headers=other_headers)
        assert resp.status_code == 403


class TestReadAndDeleteTrip:

    @pytest.mark.asyncio
    async def test_view_resolves_items(self, client, owner_headers):
        trip = await create_trip(client, owner_headers)
        point = await create_point(client, owner_headers, trip["id"], name="Pier")
        day = await create_itinerary(client, owner_headers, trip["id"])
        item = await append_item(client, owner_headers, trip["id"], day["id"], point["id"])

        view = (await client.get(f"{API}/trips/{trip['id']}", headers=owner_headers)).json()

        resolved = view["itineraries"][0]["items"][0]
        assert resolved["id"] == item["id"]
        assert resolved["point"]["id"] == point["id"]

    @pytest.mark.asyncio
    async def test_unknown_trip(self, client, owner_headers):
        resp = await client.get(f"{API}/trips/{uuid.uuid4()}", headers=owner_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_other_users_trip(self, client, owner_headers, other_headers):
        trip = await create_trip(client, owner_headers)
        resp = await client.get(f"{API}/trips/{trip['id']}", headers=other_headers)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_delete(self, client, owner_headers, other_headers):
        trip = await create_trip(client, owner_headers, points=[{"name": "A"}])
        await create_itinerary(client, owner_headers, trip["id"])

        forbidden = await client.delete(f"{API}/trips/{trip['id']}", headers=other_headers)
        assert forbidden.status_code == 403

        resp = await client.delete(f"{API}/trips/{trip['id']}", headers=owner_headers)
        assert resp.status_code == 204

        gone = await client.get(f"{API}/trips/{trip['id']}", headers=owner_headers)
        assert gone.status_code == 404


class TestAppEndpoints:

    @pytest.mark.asyncio
    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        resp = await client.get("/", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, client):
        resp = await client.get("/")
        assert resp.headers["X-Request-ID"]
