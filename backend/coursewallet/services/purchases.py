"""Payment capture: completes purchases and pays referral commission."""
import hashlib
import hmac
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.course import Course, Purchase, PaymentStatus
from coursewallet.models.notification import NotificationType
from coursewallet.models.user import User
from coursewallet.models.wallet import TransactionType
from coursewallet.services import ledger, referrals
from coursewallet.services.notifications import create_notification

logger = logging.getLogger(__name__)


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check a Razorpay-style hex HMAC-SHA256 signature over the raw body."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


async def complete_purchase(
    db: AsyncSession,
    user_id: str,
    course_id: str,
    payment_id: Optional[str] = None,
) -> dict:
    """Mark the newest pending purchase as paid; credit the referrer on the first capture only."""
    purchase = await db.scalar(
        select(Purchase)
        .where(
            Purchase.user_id == user_id,
            Purchase.course_id == course_id,
            Purchase.payment_status == PaymentStatus.pending,
        )
        .order_by(Purchase.purchased_at.desc())
        .limit(1)
    )
    if purchase is None:
        completed = await db.scalar(
            select(Purchase.id).where(
                Purchase.user_id == user_id,
                Purchase.course_id == course_id,
                Purchase.payment_status == PaymentStatus.completed,
            )
        )
        if completed:
            return {"purchase_id": completed, "already_processed": True, "referral_credited": False}
        raise ServiceError(ErrorKind.not_found, "Purchase record not found")

    result = await db.execute(
        update(Purchase)
        .where(Purchase.id == purchase.id, Purchase.payment_status == PaymentStatus.pending)
        .values(payment_status=PaymentStatus.completed, payment_id=payment_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return {"purchase_id": purchase.id, "already_processed": True, "referral_credited": False}

    logger.info("Purchase %s completed (payment %s)", purchase.id, payment_id)
    credited = await _credit_referrer(db, purchase)

    # a completed purchase lets the buyer refer others
    buyer = await db.get(User, user_id)
    code = await referrals.ensure_referral_code(db, buyer)
    course_code = await referrals.get_or_create_course_code(db, user_id, course_id)
    return {
        "purchase_id": purchase.id,
        "already_processed": False,
        "referral_credited": credited,
        "referral_code": code,
        "course_referral_code": course_code.referral_code,
    }


async def _credit_referrer(db: AsyncSession, purchase: Purchase) -> bool:
    if not purchase.used_referral_code:
        return False
    referrer_id = await referrals.resolve_referrer(db, purchase.used_referral_code, purchase.course_id)
    if referrer_id is None or referrer_id == purchase.user_id:
        logger.info("Referral code %s on purchase %s is unusable", purchase.used_referral_code, purchase.id)
        return False
    course = await db.get(Course, purchase.course_id)
    reward = ledger.to_money(course.referral_reward if course else 0)
    if reward <= 0:
        return False

    await ledger.apply_mutation(
        db, referrer_id, reward, TransactionType.credit,
        description=f"Referral commission - {course.title}",
        reference_id=purchase.id,
    )
    await referrals.record_commission(db, referrer_id, purchase, reward)
    await create_notification(
        db, referrer_id,
        "Referral Reward Earned",
        f"You earned ₹{reward} for referring a purchase of {course.title}.",
        NotificationType.referral,
    )
    return True
