"""
Dashboard figures for the current user.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from taskify.crud.invoice import crud_invoice
from taskify.crud.task import crud_task
from taskify.models.invoice import INVOICE_STATUSES
from taskify.models.user import User
from taskify.schemas.dashboard import DashboardSummary

_EXPECTED_STATUSES = tuple(s for s in INVOICE_STATUSES if s != "cancelled")


class DashboardService:

    async def summary(self, db: AsyncSession, *, current_user: User) -> DashboardSummary:
        by_status = await crud_task.count_by_status(db, user_id=current_user.id)
        all_tasks = sum(by_status.values())

        return DashboardSummary(
            total_revenue=await crud_invoice.revenue_for_user(
                db, user_id=current_user.id, statuses=("paid",)
            ),
            expected_revenue=await crud_invoice.revenue_for_user(
                db, user_id=current_user.id, statuses=_EXPECTED_STATUSES
            ),
            open_tasks=all_tasks - by_status.get("completed", 0),
            all_tasks=all_tasks,
            tasks_by_status=by_status,
        )


dashboard_service = DashboardService()
