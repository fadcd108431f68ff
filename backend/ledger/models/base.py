"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps) in a base class
ensures consistency across all models and reduces code duplication.
"""

from datetime import datetime
from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    WHY: Most models need timestamp tracking for audit trails and debugging.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
