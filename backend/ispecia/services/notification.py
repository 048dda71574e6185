"""
In-app notifications.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.notification import Notification

logger = logging.getLogger(__name__)


async def notify(
    db: AsyncSession,
    user_id: str,
    message: str,
    task_id: Optional[str] = None,
) -> Optional[Notification]:
    """
    Create an unread notification for a user.

    Notification failures never break the calling request: they are logged
    and None is returned.
    """
    try:
        async with db.begin_nested():
            notification = Notification(user_id=user_id, task_id=task_id, message=message, is_read=False)
            db.add(notification)
        logger.info("Notification for user %s: %s", user_id, message)
        return notification
    except SQLAlchemyError:
        logger.exception("Failed to create notification for user %s", user_id)
        return None
