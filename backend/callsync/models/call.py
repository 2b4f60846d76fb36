"""Call model for LiveKit room tracking."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from callsync.database import Base


class Call(Base):
    """One row per LiveKit room, keyed by ``(org_id, external_ref)``.

    A call is open while ``ended_at`` is empty and closed once it is set.
    """

    __tablename__ = "calls"
    __table_args__ = (
        UniqueConstraint("org_id", "external_ref", name="uq_calls_org_external_ref"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Room sid, room name, or a synthesized fallback
    external_ref: Mapped[str] = mapped_column(String(255), nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Call {self.org_id}/{self.external_ref} ({state})>"
