"""
ORM model package. Import all models here so Alembic autogenerate
can discover every table through the shared Base metadata.
"""
from taskify.models.user import User  # noqa: F401
from taskify.models.client import Client  # noqa: F401
from taskify.models.invoice import Invoice  # noqa: F401
from taskify.models.task import Task  # noqa: F401
from taskify.models.activity_log import ActivityLog  # noqa: F401
