"""SQLite storage for events, orders, campaigns and rating settings."""
from .repository import AttributionSnapshot, AttributionStore
from .schema import connect, init_database

__all__ = [
    "AttributionSnapshot",
    "AttributionStore",
    "connect",
    "init_database",
]
