"""Persistence layer: declarative base plus the dream, action and occurrence tables."""

from app.db.base import Base
from app.db import models  # noqa: F401  (registers tables on Base.metadata)
from app.db.models import ActionOccurrence, Dream

__all__ = ["ActionOccurrence", "Base", "Dream"]
