import logging
from typing import List, Optional

from sqlalchemy import select, update, insert, func
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.config import settings
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.database import new_uuid
from coursewallet.models.notification import Notification, NotificationType
from coursewallet.models.user import User

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.info,
    action_url: Optional[str] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        is_read=False,
        action_url=action_url,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(db: AsyncSession, user_id: str, limit: int = 50) -> List[Notification]:
    return list(await db.scalars(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    ))


async def unread_count(db: AsyncSession, user_id: str) -> int:
    count = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,
        )
    )
    return count or 0


async def mark_read(db: AsyncSession, user_id: str, notification_id: str) -> Notification:
    notification = await db.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    if notification is None:
        raise ServiceError(ErrorKind.not_found, "Notification not found")
    notification.is_read = True
    await db.flush()
    return notification


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def broadcast(
    db: AsyncSession,
    title: str,
    message: str,
    type: NotificationType = NotificationType.info,
    batch_size: Optional[int] = None,
) -> int:
    """Create one unread notification for every non-suspended user.

    Users are read and inserted in keyset-paged chunks so neither the user
    list nor a single INSERT grows with the user base.
    """
    batch_size = batch_size or settings.NOTIFICATION_BATCH_SIZE
    created = 0
    last_id = ""
    while True:
        user_ids = list(await db.scalars(
            select(User.id)
            .where(User.is_suspended == False, User.id > last_id)
            .order_by(User.id)
            .limit(batch_size)
        ))
        if not user_ids:
            break
        await db.execute(
            insert(Notification),
            [
                {
                    "id": new_uuid(),
                    "user_id": uid,
                    "title": title,
                    "message": message,
                    "type": type,
                    "is_read": False,
                }
                for uid in user_ids
            ],
        )
        created += len(user_ids)
        last_id = user_ids[-1]

    if created == 0:
        raise ServiceError(ErrorKind.not_found, "No active users found")
    logger.info("Broadcast '%s' to %d users", title, created)
    return created


def notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "read": n.is_read,
        "action_url": n.action_url,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
