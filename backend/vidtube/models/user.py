from __future__ import annotations

from datetime import datetime
from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from vidtube.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[str] = mapped_column(String(1024), nullable=False)  # media store URL
    cover_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Ordered content references (video ids), most recent last
    watch_history: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # SHA256 of the single live refresh token; NULL after logout
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow
    )

    audit_entries: Mapped[list["AuditLog"]] = relationship("AuditLog", back_populates="user", passive_deletes=True)
