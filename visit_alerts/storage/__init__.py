"""PostgreSQL access shared by the alert store and the read-only lookups."""

from visit_alerts.storage.database import Database

__all__ = ["Database"]
