"""
Tests for tasks, assignment rules and the notifications they raise.
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.notification import Notification
from ispecia.models.task import TaskComment, TaskTimeLog
from tests.conftest import create_user, headers_for


class TestTaskAssignment:

    @pytest.mark.asyncio
    async def test_defaults_to_creator(self, client: AsyncClient, employee_user):
        response = await client.post(
            "/api/v1/tasks", json={"title": "Call back"}, headers=headers_for(employee_user)
        )
        assert response.status_code == 201
        data = response.json()
        assert data["assigned_to_id"] == employee_user.id
        assert data["assigned_by_id"] == employee_user.id
        assert data["status"] == "to_do"
        assert data["priority"] == "medium"

    @pytest.mark.asyncio
    async def test_lead_assigns_direct_report(
        self, client: AsyncClient, db_session: AsyncSession, lead_user, employee_user
    ):
        response = await client.post("/api/v1/tasks", json={
            "title": "Prepare demo",
            "assigned_to_id": employee_user.id,
            "priority": "high",
        }, headers=headers_for(lead_user))
        assert response.status_code == 201
        assert response.json()["assigned_to"]["name"] == "Emma Employee"

        result = await db_session.execute(select(Notification).where(Notification.user_id == employee_user.id))
        notifications = result.scalars().all()
        assert [n.message for n in notifications] == ["New task assigned: Prepare demo"]
        assert notifications[0].task_id == response.json()["id"]

    @pytest.mark.asyncio
    async def test_manager_assigns_two_levels_down(self, client: AsyncClient, manager_user, employee_user):
        response = await client.post("/api/v1/tasks", json={
            "title": "Quarterly review",
            "assigned_to_id": employee_user.id,
        }, headers=headers_for(manager_user))
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_manager_outside_hierarchy(
        self, client: AsyncClient, db_session: AsyncSession, roles, manager_user
    ):
        outsider = await create_user(db_session, roles["Employee"], "outsider@example.com")
        response = await client.post("/api/v1/tasks", json={
            "title": "Not yours",
            "assigned_to_id": outsider.id,
        }, headers=headers_for(manager_user))
        assert response.status_code == 403
        assert response.json() == {
            "status": "error",
            "message": "You can only assign tasks to users in your hierarchy",
        }

    @pytest.mark.asyncio
    async def test_lead_cannot_assign_upwards(self, client: AsyncClient, lead_user, manager_user):
        response = await client.post("/api/v1/tasks", json={
            "title": "Upwards",
            "assigned_to_id": manager_user.id,
        }, headers=headers_for(lead_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_employee_cannot_assign(self, client: AsyncClient, employee_user, lead_user):
        response = await client.post("/api/v1/tasks", json={
            "title": "Upwards",
            "assigned_to_id": lead_user.id,
        }, headers=headers_for(employee_user))
        assert response.status_code == 403
        assert response.json()["message"] == "You do not have permission to assign tasks"

    @pytest.mark.asyncio
    async def test_unknown_assignee(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/v1/tasks", json={
            "title": "Ghost", "assigned_to_id": "missing",
        }, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Assignee not found"

    @pytest.mark.asyncio
    async def test_inherits_lead_assignee(
        self, client: AsyncClient, auth_headers: dict, employee_user, lead_stages
    ):
        lead = await client.post("/api/v1/leads", json={
            "title": "Inbound", "assigned_to_id": employee_user.id,
        }, headers=auth_headers)
        response = await client.post("/api/v1/tasks", json={
            "title": "Qualify inbound", "lead_id": lead.json()["id"],
        }, headers=auth_headers)
        assert response.json()["assigned_to_id"] == employee_user.id


class TestTaskVisibility:

    @pytest.mark.asyncio
    async def test_employee_sees_only_own(self, client: AsyncClient, auth_headers: dict, admin_user, employee_user):
        await client.post("/api/v1/tasks", json={"title": "Admin only"}, headers=auth_headers)
        created = await client.post("/api/v1/tasks", json={
            "title": "For Emma", "assigned_to_id": employee_user.id,
        }, headers=auth_headers)

        response = await client.get("/api/v1/tasks", headers=headers_for(employee_user))
        assert [t["title"] for t in response.json()["items"]] == ["For Emma"]

        response = await client.get("/api/v1/tasks", headers=auth_headers)
        assert response.json()["totalItems"] == 2

        admin_task = (await client.get("/api/v1/tasks?search=Admin", headers=auth_headers)).json()["items"][0]
        response = await client.get(f"/api/v1/tasks/{admin_task['id']}", headers=headers_for(employee_user))
        assert response.status_code == 404

        response = await client.get(f"/api/v1/tasks/{created.json()['id']}", headers=headers_for(employee_user))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_lead_sees_reports_tasks(self, client: AsyncClient, lead_user, employee_user):
        await client.post("/api/v1/tasks", json={"title": "Own work"}, headers=headers_for(employee_user))
        response = await client.get("/api/v1/tasks", headers=headers_for(lead_user))
        assert [t["title"] for t in response.json()["items"]] == ["Own work"]

    @pytest.mark.asyncio
    async def test_my_tasks_excludes_completed(self, client: AsyncClient, employee_user):
        headers = headers_for(employee_user)
        await client.post("/api/v1/tasks", json={"title": "Open"}, headers=headers)
        done = await client.post("/api/v1/tasks", json={"title": "Done"}, headers=headers)
        response = await client.patch(
            f"/api/v1/tasks/{done.json()['id']}", json={"status": "completed"}, headers=headers
        )
        assert response.json()["completed_at"] is not None

        response = await client.get("/api/v1/tasks/my", headers=headers)
        assert [t["title"] for t in response.json()] == ["Open"]

    @pytest.mark.asyncio
    async def test_reassign_notifies(
        self, client: AsyncClient, db_session: AsyncSession, lead_user, employee_user
    ):
        headers = headers_for(lead_user)
        created = await client.post("/api/v1/tasks", json={"title": "Draft proposal"}, headers=headers)
        response = await client.patch(
            f"/api/v1/tasks/{created.json()['id']}", json={"assigned_to_id": employee_user.id}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["assigned_to_id"] == employee_user.id

        count = len((await db_session.execute(
            select(Notification).where(Notification.user_id == employee_user.id)
        )).scalars().all())
        assert count == 1

    @pytest.mark.asyncio
    async def test_delete_by_assigner(self, client: AsyncClient, lead_user, employee_user):
        created = await client.post("/api/v1/tasks", json={
            "title": "Short lived", "assigned_to_id": employee_user.id,
        }, headers=headers_for(lead_user))
        task_id = created.json()["id"]

        response = await client.delete(f"/api/v1/tasks/{task_id}", headers=headers_for(employee_user))
        assert response.status_code == 403

        response = await client.delete(f"/api/v1/tasks/{task_id}", headers=headers_for(lead_user))
        assert response.status_code == 204


class TestNotifications:

    @pytest.mark.asyncio
    async def test_read_flow(self, client: AsyncClient, lead_user, employee_user):
        for title in ("One", "Two"):
            await client.post("/api/v1/tasks", json={
                "title": title, "assigned_to_id": employee_user.id,
            }, headers=headers_for(lead_user))
        headers = headers_for(employee_user)

        response = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert response.json() == {"count": 2}

        notifications = (await client.get("/api/v1/notifications", headers=headers)).json()
        assert len(notifications) == 2
        response = await client.patch(f"/api/v1/notifications/{notifications[0]['id']}/read", headers=headers)
        assert response.json()["is_read"] is True
        response = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert response.json() == {"count": 1}

        response = await client.patch("/api/v1/notifications/read-all", headers=headers)
        assert response.json()["message"] == "All notifications marked as read"
        response = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert response.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_cannot_read_others(self, client: AsyncClient, lead_user, employee_user):
        await client.post("/api/v1/tasks", json={
            "title": "Private", "assigned_to_id": employee_user.id,
        }, headers=headers_for(lead_user))
        notification = (await client.get("/api/v1/notifications", headers=headers_for(employee_user))).json()[0]

        response = await client.patch(
            f"/api/v1/notifications/{notification['id']}/read", headers=headers_for(lead_user)
        )
        assert response.status_code == 404
        response = await client.get("/api/v1/notifications", headers=headers_for(lead_user))
        assert response.json() == []


def _due(days: int, hours: int = 12) -> str:
    start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return (start + timedelta(days=days, hours=hours)).isoformat()


class TestTaskAgenda:

    @pytest.mark.asyncio
    async def test_today_and_overdue(self, client: AsyncClient, employee_user, lead_user):
        headers = headers_for(employee_user)
        for title, days in (("Late", -2), ("Now", 0), ("Later", 3)):
            await client.post("/api/v1/tasks", json={"title": title, "due_date": _due(days)}, headers=headers)
        done = await client.post("/api/v1/tasks", json={
            "title": "Done today", "due_date": _due(0), "status": "completed",
        }, headers=headers)
        assert done.status_code == 201
        await client.post("/api/v1/tasks", json={"title": "Not mine", "due_date": _due(0)},
                          headers=headers_for(lead_user))

        today = await client.get("/api/v1/tasks/today", headers=headers)
        assert [t["title"] for t in today.json()] == ["Now"]

        overdue = await client.get("/api/v1/tasks/overdue", headers=headers)
        assert [t["title"] for t in overdue.json()] == ["Late"]

    @pytest.mark.asyncio
    async def test_analytics(self, client: AsyncClient, employee_user):
        headers = headers_for(employee_user)
        await client.post("/api/v1/tasks", json={
            "title": "Call back", "task_type": "call", "priority": "high", "due_date": _due(-1),
        }, headers=headers)
        await client.post("/api/v1/tasks", json={"title": "Standup", "task_type": "meeting", "due_date": _due(0)},
                          headers=headers)
        await client.post("/api/v1/tasks", json={"title": "Wrapped", "status": "completed"}, headers=headers)
        await client.post("/api/v1/tasks", json={"title": "Someday"}, headers=headers)

        response = await client.get("/api/v1/tasks/analytics", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["completed"], data["overdue"], data["today"]) == (4, 1, 1, 1)
        assert data["completion_rate"] == 25.0
        assert data["by_priority"] == {"high": 1, "medium": 3}
        assert data["by_type"] == {"call": 1, "meeting": 1, "custom": 2}

    @pytest.mark.asyncio
    async def test_analytics_without_tasks(self, client: AsyncClient, employee_user):
        data = (await client.get("/api/v1/tasks/analytics", headers=headers_for(employee_user))).json()
        assert data["total"] == 0
        assert data["completion_rate"] == 0.0


class TestTaskActivity:

    @pytest.mark.asyncio
    async def test_comments(
        self, client: AsyncClient, db_session: AsyncSession, lead_user, employee_user
    ):
        created = await client.post("/api/v1/tasks", json={
            "title": "Quote follow-up", "assigned_to_id": employee_user.id,
        }, headers=headers_for(lead_user))
        task_id = created.json()["id"]

        response = await client.post(f"/api/v1/tasks/{task_id}/comments",
                                     json={"comment": "Sent the revised numbers"},
                                     headers=headers_for(employee_user))
        assert response.status_code == 201
        assert response.json()["user"]["id"] == employee_user.id

        response = await client.post(f"/api/v1/tasks/{task_id}/comments", json={"comment": ""},
                                     headers=headers_for(employee_user))
        assert response.status_code == 422

        response = await client.get(f"/api/v1/tasks/{task_id}/comments", headers=headers_for(lead_user))
        assert [c["comment"] for c in response.json()] == ["Sent the revised numbers"]

        notes = (await db_session.execute(
            select(Notification.message).where(Notification.user_id == employee_user.id)
        )).scalars().all()
        assert notes == ["New task assigned: Quote follow-up"]

    @pytest.mark.asyncio
    async def test_hidden_task_comments(self, client: AsyncClient, lead_user, employee_user):
        created = await client.post("/api/v1/tasks", json={"title": "Private"}, headers=headers_for(lead_user))
        response = await client.post(f"/api/v1/tasks/{created.json()['id']}/comments",
                                     json={"comment": "peek"}, headers=headers_for(employee_user))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_time_log_totals(self, client: AsyncClient, employee_user):
        headers = headers_for(employee_user)
        created = await client.post("/api/v1/tasks", json={"title": "Build report"}, headers=headers)
        task_id = created.json()["id"]

        for minutes in (30, 45):
            response = await client.post(f"/api/v1/tasks/{task_id}/time-log",
                                         json={"duration": minutes, "note": "drafting"}, headers=headers)
            assert response.status_code == 201

        response = await client.post(f"/api/v1/tasks/{task_id}/time-log", json={"duration": 0}, headers=headers)
        assert response.status_code == 422

        task = (await client.get(f"/api/v1/tasks/{task_id}", headers=headers)).json()
        assert task["actual_duration"] == 75

        logs = (await client.get(f"/api/v1/tasks/{task_id}/time-logs", headers=headers)).json()
        assert [log["duration"] for log in logs] == [30, 45]

    @pytest.mark.asyncio
    async def test_delete_with_activity(self, client: AsyncClient, db_session: AsyncSession, employee_user):
        headers = headers_for(employee_user)
        created = await client.post("/api/v1/tasks", json={"title": "Throwaway"}, headers=headers)
        task_id = created.json()["id"]
        await client.post(f"/api/v1/tasks/{task_id}/comments", json={"comment": "hm"}, headers=headers)
        await client.post(f"/api/v1/tasks/{task_id}/time-log", json={"duration": 5}, headers=headers)

        response = await client.delete(f"/api/v1/tasks/{task_id}", headers=headers)
        assert response.status_code == 204
        assert (await db_session.execute(select(TaskComment))).scalars().all() == []
        assert (await db_session.execute(select(TaskTimeLog))).scalars().all() == []
