"""
Shared columns: a 15-character hex primary key plus created/updated stamps.
"""
import secrets
from datetime import datetime, timezone
from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from ispecia.db.base import Base

ID_LENGTH = 15


def generate_id() -> str:
    return secrets.token_hex(8)[:ID_LENGTH]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class BaseModel(Base, TimestampMixin):
    """Abstract base for every table."""
    __abstract__ = True

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=generate_id)
