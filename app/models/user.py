from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.project import Project


class User(Base, TimestampMixin):
    """Platform user. Owns projects, and through them datasets and jobs."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)
    last_name: Mapped[str | None] = mapped_column(String(100), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    sessions: Mapped[list[Session]] = relationship(back_populates="user", lazy="selectin")
    projects: Mapped[list[Project]] = relationship(back_populates="owner", lazy="noload")

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Session(Base, TimestampMixin):
    """User session for cookie-based authentication."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    expires_at: Mapped[datetime] = mapped_column()

    # Relationships
    user: Mapped[User] = relationship(back_populates="sessions", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Session {self.id}>"
