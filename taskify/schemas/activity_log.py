"""
ActivityLog Pydantic schemas.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ActivityLogRead(BaseModel):
    id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: int
    meta: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}
