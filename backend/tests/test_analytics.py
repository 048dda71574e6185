"""
Tests for the dashboard analytics endpoints.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.lead import Lead
from ispecia.models.pipeline import LeadSource
from tests.conftest import headers_for


@pytest_asyncio.fixture
async def pipeline_leads(db_session: AsyncSession, admin_user, lead_stages) -> list[Lead]:
    sources = {s.name: s for s in (await db_session.execute(select(LeadSource))).scalars().all()}
    leads = [
        Lead(title="Won A", stage_id=lead_stages["Won"].id, lead_value=Decimal("1000"),
             lead_source_id=sources["Website"].id),
        Lead(title="Won B", stage_id=lead_stages["Won"].id, lead_value=Decimal("500"),
             lead_source_id=sources["Website"].id),
        Lead(title="Won C", stage_id=lead_stages["Won"].id, lead_value=Decimal("250")),
        Lead(title="Lost", stage_id=lead_stages["Lost"].id, lead_value=Decimal("300")),
        Lead(title="Fresh", stage_id=lead_stages["New"].id, lead_value=Decimal("50")),
        Lead(title="Floating"),
    ]
    db_session.add_all(leads)
    await db_session.flush()
    return leads


class TestDashboard:

    @pytest.mark.asyncio
    async def test_dashboard_totals(self, client: AsyncClient, auth_headers: dict, pipeline_leads):
        response = await client.get("/api/v1/analytics/dashboard", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["won_revenue"]) == Decimal("1750")
        assert Decimal(data["lost_revenue"]) == Decimal("300")
        assert data["total_leads"] == 6
        assert Decimal(data["avg_lead_value"]) == Decimal("291.67")
        assert data["avg_leads_per_day"] == 0.2
        assert data["email_stats"] == {"total": 0, "sent": 0, "received": 0}
        assert data["open_deals"] == 0

    @pytest.mark.asyncio
    async def test_stage_names_match_ignoring_padding(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, lead_stages, pipeline_leads
    ):
        for name in ("Won", "Lost"):
            lead_stages[name].name = f" {name.upper()} "
            lead_stages[name].code = None
        await db_session.flush()

        data = (await client.get("/api/v1/analytics/dashboard", headers=auth_headers)).json()
        assert Decimal(data["won_revenue"]) == Decimal("1750")
        assert Decimal(data["lost_revenue"]) == Decimal("300")

    @pytest.mark.asyncio
    async def test_empty_dashboard(self, client: AsyncClient, auth_headers: dict):
        data = (await client.get("/api/v1/analytics/dashboard", headers=auth_headers)).json()
        assert data["total_leads"] == 0
        assert Decimal(data["avg_lead_value"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_requires_dashboard_permission(self, client: AsyncClient, employee_user):
        response = await client.get("/api/v1/analytics/dashboard", headers=headers_for(employee_user))
        assert response.status_code == 403


class TestBreakdowns:

    @pytest.mark.asyncio
    async def test_leads_by_stage_excludes_won(self, client: AsyncClient, auth_headers: dict, pipeline_leads):
        response = await client.get("/api/v1/analytics/leads-by-stage", headers=auth_headers)
        counts = {row["stage"]: row["count"] for row in response.json()}
        assert counts == {"Lost": 1, "New": 1, "Unassigned": 1}

    @pytest.mark.asyncio
    async def test_revenue_by_source(self, client: AsyncClient, auth_headers: dict, pipeline_leads):
        response = await client.get("/api/v1/analytics/revenue-by-source", headers=auth_headers)
        revenue = {row["name"]: Decimal(row["revenue"]) for row in response.json()}
        assert revenue == {"Website": Decimal("1500"), "Unknown": Decimal("250")}

    @pytest.mark.asyncio
    async def test_revenue_by_type_without_types(self, client: AsyncClient, auth_headers: dict, pipeline_leads):
        response = await client.get("/api/v1/analytics/revenue-by-type", headers=auth_headers)
        assert [(row["name"], Decimal(row["revenue"])) for row in response.json()] == [
            ("Unknown", Decimal("1750")),
        ]

    @pytest.mark.asyncio
    async def test_leads_over_time(self, client: AsyncClient, auth_headers: dict, pipeline_leads):
        response = await client.get("/api/v1/analytics/leads-over-time", headers=auth_headers)
        periods = response.json()
        assert len(periods) == 12
        current = datetime.now(timezone.utc).strftime("%Y-%m")
        assert periods[-1] == {"period": current, "count": 6}
        assert sum(p["count"] for p in periods) == 6
