"""
Response schemas for the analytics dashboard.
"""
from decimal import Decimal
from pydantic import BaseModel


class EmailStats(BaseModel):
    total: int = 0
    sent: int = 0
    received: int = 0


class DashboardStats(BaseModel):
    won_revenue: Decimal
    lost_revenue: Decimal
    avg_lead_value: Decimal
    total_leads: int
    avg_leads_per_day: float
    total_quotes: int
    total_persons: int
    total_organizations: int
    email_stats: EmailStats
    open_deals: int
    won_deals: int


class StageCount(BaseModel):
    stage: str
    count: int


class RevenueBucket(BaseModel):
    name: str
    revenue: Decimal


class PeriodCount(BaseModel):
    period: str  # YYYY-MM
    count: int
