"""
Aspiration bucket record for Fuge.

Aspirations are the user's long-term goals ("Health", "Career"...) that
habits are filed under. Names are unique; rows are listed in insertion
order.
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String

from fuge.models.base import Base


class AspirationRecord(Base):
    """One named aspiration bucket."""

    __tablename__ = "aspirations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<AspirationRecord(id={self.id}, name={self.name!r})>"
