"""
Notification model.
"""
from typing import Optional
from sqlalchemy import String, Text, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from ispecia.models.base import BaseModel


class Notification(BaseModel):
    """In-app notification shown in the user's badge/history."""
    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
