"""LiveKit project model mapping a webhook slug to an organization."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from callsync.database import Base


class Project(Base):
    """Read-only lookup row; one per LiveKit project sending webhooks."""

    __tablename__ = "livekit_projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Project {self.slug} ({state})>"
