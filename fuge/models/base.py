"""
SQLAlchemy declarative base for Fuge.

Usage:
    from fuge.models.base import Base

    class MyRecord(Base):
        __tablename__ = "my_table"
        ...
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every persisted model."""


__all__ = ["Base"]
