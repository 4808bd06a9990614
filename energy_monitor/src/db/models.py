"""
SQLAlchemy ORM models for the panel registry database.

Defines the Panel model holding panel metadata (location, floor) and the
last-seen status fields that the ingestion connector updates on every stored
Reading. Panels are provisioned outside this service.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime

from sqlalchemy import DateTime, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all registry ORM models."""

    pass


class Panel(Base):
    """An electrical distribution panel known to the monitor.

    Attributes:
        panel_code: Panel identifier; matches the MQTT topic segment.
        location: Human-readable location, e.g. "Lantai 1 - Main".
        floor: Building floor number, used for display ordering.
        status: Last classified status, ONLINE or OFFLINE.
        last_online: Time the most recent Reading was stored (nullable).
    """

    __tablename__ = "panels"

    panel_code: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'OFFLINE'")
    )
    last_online: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """Return string representation of the Panel."""
        return (
            f"Panel(panel_code={self.panel_code!r}, "
            f"floor={self.floor!r}, status={self.status!r})"
        )
