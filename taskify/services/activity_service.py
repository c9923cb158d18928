"""
Activity logging service.
Writes immutable audit records to the activity_logs table inside the
caller's transaction, so an entry exists only if the change it describes
was committed.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


class ActivityService:

    async def log(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        action: str,
        entity_type: str,
        entity_id: int,
        meta: dict[str, Any] | None = None,
    ) -> ActivityLog:
        """Create an activity log entry."""
        try:
            entry = ActivityLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                meta=meta,
            )
            db.add(entry)
            await db.flush()
            return entry
        except Exception as exc:
            logger.error(
                "Failed to write activity log: user_id=%s action=%s entity_type=%s: %s",
                user_id,
                action,
                entity_type,
                exc,
            )
            raise

    async def list_entries(
        self,
        db: AsyncSession,
        *,
        user_id: int | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
        skip: int = 0,
        limit: int = 15,
    ) -> tuple[list[ActivityLog], int]:
        conditions = []
        if user_id is not None:
            conditions.append(ActivityLog.user_id == user_id)
        if entity_type is not None:
            conditions.append(ActivityLog.entity_type == entity_type)
        if entity_id is not None:
            conditions.append(ActivityLog.entity_id == entity_id)

        count_result = await db.execute(
            select(func.count()).select_from(ActivityLog).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await db.execute(
            select(ActivityLog)
            .where(*conditions)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total


activity_service = ActivityService()
