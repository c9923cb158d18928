"""
Aggregates all v1 API routers into a single APIRouter.
"""
from __future__ import annotations

from fastapi import APIRouter

from taskify.api.v1 import (
    activity_logs,
    clients,
    dashboard,
    invoices,
    tasks,
    users,
)

api_router = APIRouter()

api_router.include_router(users.router)
api_router.include_router(clients.router)
api_router.include_router(tasks.router)
api_router.include_router(invoices.router)
api_router.include_router(dashboard.router)
api_router.include_router(activity_logs.router)
