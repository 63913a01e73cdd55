"""
Database base configuration
Imports all models to ensure they're registered with SQLModel metadata
"""

from sqlmodel import SQLModel

# Import all models so they're registered with SQLModel.metadata
from app.db.models import (  # noqa: F401
    User,
    Trip,
    Point,
    Itinerary,
    ShareLink,
)

# Export Base for use in init_db and migrations
Base = SQLModel.metadata

__all__ = ["Base", "SQLModel"]
