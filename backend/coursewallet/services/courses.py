import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.config import settings
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.course import Course, Purchase, PaymentStatus
from coursewallet.services.storage import create_signed_url

logger = logging.getLogger(__name__)


async def find_purchase(db: AsyncSession, user_id: str, course_id: str) -> Optional[Purchase]:
    return await db.scalar(
        select(Purchase)
        .where(
            Purchase.user_id == user_id,
            Purchase.course_id == course_id,
            Purchase.payment_status != PaymentStatus.failed,
        )
        .order_by(Purchase.purchased_at.desc())
        .limit(1)
    )


async def issue_course_download_url(db: AsyncSession, user_id: str, course_id: str) -> dict:
    """Return a short-lived download URL for a course the user has bought."""
    purchase = await find_purchase(db, user_id, course_id)
    if purchase is None:
        logger.info("Download refused: user %s has not purchased course %s", user_id, course_id)
        raise ServiceError(ErrorKind.not_purchased, "You have not purchased this course")

    course = await db.get(Course, course_id)
    if course is None or not course.pdf_url:
        raise ServiceError(ErrorKind.not_found, "Course PDF not found")

    ttl = settings.SIGNED_URL_TTL_SECONDS
    url = await create_signed_url(course.pdf_url, ttl)
    return {"url": url, "expires_in": ttl}
