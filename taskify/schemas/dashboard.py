"""
Dashboard summary schema.
"""
from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, field_serializer

from taskify.schemas.invoice import to_cents


class DashboardSummary(BaseModel):
    total_revenue: Decimal
    expected_revenue: Decimal
    open_tasks: int
    all_tasks: int
    tasks_by_status: dict[str, int]

    @field_serializer("total_revenue", "expected_revenue")
    def serialize_money(self, value: Decimal) -> str:
        return str(to_cents(value))
