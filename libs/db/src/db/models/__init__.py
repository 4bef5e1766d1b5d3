"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the generic key-value item table used by
``spending_insights.persistence``.
"""

from .store import Base, StoreItem

__all__ = [
    "Base",
    "StoreItem",
]
