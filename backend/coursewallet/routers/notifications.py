from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from coursewallet.database import get_db
from coursewallet.core.deps import get_current_user
from coursewallet.models.user import User
from coursewallet.services import notifications

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    items = await notifications.list_notifications(db, user.id)
    return [notifications.notification_dict(n) for n in items]


@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"count": await notifications.unread_count(db, user.id)}


@router.post("/read-all")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    updated = await notifications.mark_all_read(db, user.id)
    await db.commit()
    return {"updated": updated}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await notifications.mark_read(db, user.id, notification_id)
    await db.commit()
    return {"message": "marked as read"}
