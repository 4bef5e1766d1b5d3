"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.store`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.store import Base, StoreItem

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "StoreItem",
]
