"""
Venue model - hotels, coworking spaces and other places where bookings happen.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.lib.db import Base


class Venue(Base):
    """
    Venue entity. Managed by CRUD screens; read-only for the booking workflow.
    """
    __tablename__ = "venues"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
        nullable=True,
        comment="ISO 4217 code used for prices at this venue",
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Paris")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name})>"
