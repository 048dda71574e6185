"""
Tests for activities.
"""
import pytest
from httpx import AsyncClient


MEETING = {
    "title": "Kickoff",
    "type": "meeting",
    "start_at": "2026-03-02T10:00:00Z",
    "end_at": "2026-03-02T11:00:00Z",
}


class TestActivities:

    @pytest.mark.asyncio
    async def test_create(self, client: AsyncClient, auth_headers: dict, admin_user):
        response = await client.post("/api/v1/activities", json=MEETING, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "meeting"
        assert data["is_done"] is False
        assert data["user_id"] == admin_user.id

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/v1/activities", json={
            **MEETING, "end_at": "2026-03-02T09:00:00Z",
        }, headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_end_before_existing_start(self, client: AsyncClient, auth_headers: dict):
        created = await client.post("/api/v1/activities", json=MEETING, headers=auth_headers)
        response = await client.patch(
            f"/api/v1/activities/{created.json()['id']}",
            json={"end_at": "2026-03-01T09:00:00Z"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"] == "end_at must be after start_at"

    @pytest.mark.asyncio
    async def test_unknown_link(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/v1/activities", json={**MEETING, "lead_id": "missing"}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Lead not found"

    @pytest.mark.asyncio
    async def test_filters(self, client: AsyncClient, auth_headers: dict):
        await client.post("/api/v1/activities", json=MEETING, headers=auth_headers)
        created = await client.post("/api/v1/activities", json={
            "title": "Follow up call", "type": "call",
        }, headers=auth_headers)
        await client.patch(
            f"/api/v1/activities/{created.json()['id']}", json={"is_done": True}, headers=auth_headers
        )

        response = await client.get("/api/v1/activities?type=call", headers=auth_headers)
        assert [a["title"] for a in response.json()["items"]] == ["Follow up call"]

        response = await client.get("/api/v1/activities?is_done=false", headers=auth_headers)
        assert [a["title"] for a in response.json()["items"]] == ["Kickoff"]

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, auth_headers: dict):
        created = await client.post("/api/v1/activities", json=MEETING, headers=auth_headers)
        activity_id = created.json()["id"]
        response = await client.delete(f"/api/v1/activities/{activity_id}", headers=auth_headers)
        assert response.status_code == 204
        response = await client.get(f"/api/v1/activities/{activity_id}", headers=auth_headers)
        assert response.status_code == 404
