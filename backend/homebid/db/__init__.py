"""Database package"""

from homebid.db.session import AsyncSessionLocal, engine, get_db
from homebid.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
