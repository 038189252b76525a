"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID, enum
column mapping) in one module keeps every table consistent.
"""

from datetime import datetime
from enum import Enum
from typing import List, Type
from sqlalchemy import Column, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


def enum_column(enum_cls: Type[Enum], name: str) -> SQLEnum:
    """
    Build an Enum column type that stores the lowercase ``value``.

    WHY: Without values_callable SQLAlchemy persists the member NAME
    (``SUBMITTED``) while migrations and raw SQL use the value
    (``submitted``).
    """

    def _values(enum: Type[Enum]) -> List[str]:
        return [e.value for e in enum]

    return SQLEnum(enum_cls, name=name, values_callable=_values)


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    WHY: Record bookkeeping only. Business timestamps (submitted_date,
    accepted_date, ...) come from the injected clock instead.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """Mixin to add an auto-incrementing integer primary key."""

    id = Column(Integer, primary_key=True, index=True)
