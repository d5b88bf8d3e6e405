"""Referral codes, commission records and the referrer dashboard."""
import logging
import secrets
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.course import Course, Purchase, PaymentStatus
from coursewallet.models.referral import CourseReferralCode, Referral, ReferralStatus
from coursewallet.models.user import User

logger = logging.getLogger(__name__)


async def _code_taken(db: AsyncSession, code: str) -> bool:
    in_users = await db.scalar(select(User.id).where(User.referral_code == code))
    if in_users:
        return True
    in_courses = await db.scalar(
        select(CourseReferralCode.id).where(CourseReferralCode.referral_code == code)
    )
    return in_courses is not None


async def _unused_code(db: AsyncSession, preferred: Optional[str] = None) -> str:
    # general and course codes share one namespace so a code resolves to one referrer
    candidate = preferred or secrets.token_hex(4).upper()
    while await _code_taken(db, candidate):
        candidate = secrets.token_hex(4).upper()
    return candidate


async def has_completed_purchase(db: AsyncSession, user_id: str) -> bool:
    count = await db.scalar(
        select(func.count(Purchase.id)).where(
            Purchase.user_id == user_id,
            Purchase.payment_status == PaymentStatus.completed,
        )
    )
    return bool(count)


async def ensure_referral_code(db: AsyncSession, user: User) -> str:
    """Give `user` a general referral code if they do not have one yet."""
    if not user.referral_code:
        user.referral_code = await _unused_code(db)
        await db.flush()
        logger.info("Assigned referral code %s to user %s", user.referral_code, user.id)
    return user.referral_code


async def get_or_create_course_code(db: AsyncSession, user_id: str, course_id: str) -> CourseReferralCode:
    existing = await db.scalar(
        select(CourseReferralCode).where(
            CourseReferralCode.user_id == user_id,
            CourseReferralCode.course_id == course_id,
        )
    )
    if existing is not None:
        return existing
    code = CourseReferralCode(
        user_id=user_id,
        course_id=course_id,
        referral_code=await _unused_code(db, f"{user_id[:5]}-{course_id[:5]}".upper()),
    )
    db.add(code)
    await db.flush()
    await db.refresh(code)
    return code


async def resolve_referrer(db: AsyncSession, code: str, course_id: str) -> Optional[str]:
    """Return the user id behind `code`. Course codes only count for their own course."""
    owner = await db.scalar(
        select(CourseReferralCode.user_id).where(
            CourseReferralCode.referral_code == code,
            CourseReferralCode.course_id == course_id,
        )
    )
    if owner:
        return owner
    return await db.scalar(select(User.id).where(User.referral_code == code))


async def record_commission(
    db: AsyncSession,
    referrer_id: str,
    purchase: Purchase,
    amount: Decimal,
) -> Referral:
    referral = Referral(
        user_id=referrer_id,
        referred_user_id=purchase.user_id,
        course_id=purchase.course_id,
        purchase_id=purchase.id,
        referral_code=purchase.used_referral_code,
        commission_amount=amount,
        status=ReferralStatus.completed,
    )
    db.add(referral)
    await db.flush()
    return referral


async def validate_code(db: AsyncSession, code: str) -> dict:
    course_code = await db.scalar(
        select(CourseReferralCode).where(CourseReferralCode.referral_code == code)
    )
    if course_code is not None:
        referrer = await db.get(User, course_code.user_id)
        return {
            "valid": True,
            "type": "course",
            "course_id": course_code.course_id,
            "referrer": {"id": referrer.id, "name": referrer.name},
        }
    referrer = await db.scalar(select(User).where(User.referral_code == code))
    if referrer is None:
        raise ServiceError(ErrorKind.not_found, "Invalid referral code")
    return {"valid": True, "type": "general", "referrer": {"id": referrer.id, "name": referrer.name}}


async def my_codes(db: AsyncSession, user: User) -> dict:
    rows = (await db.execute(
        select(CourseReferralCode, Course.title)
        .outerjoin(Course, Course.id == CourseReferralCode.course_id)
        .where(CourseReferralCode.user_id == user.id)
        .order_by(CourseReferralCode.created_at.desc())
    )).all()
    return {
        "general_referral_code": user.referral_code,
        "course_referral_codes": [
            {"id": c.id, "course_id": c.course_id, "course_title": title, "referral_code": c.referral_code}
            for c, title in rows
        ],
    }


async def my_stats(db: AsyncSession, user: User) -> dict:
    """Completed-commission totals, a per-course breakdown and the latest referrals."""
    completed = Referral.status == ReferralStatus.completed
    totals = (await db.execute(
        select(
            func.count(Referral.id),
            func.coalesce(func.sum(Referral.commission_amount), 0),
            func.count(func.distinct(Referral.referred_user_id)),
        ).where(Referral.user_id == user.id, completed)
    )).one()

    per_course = {
        course_id: (count, earned)
        for course_id, count, earned in (await db.execute(
            select(
                Referral.course_id,
                func.count(Referral.id),
                func.coalesce(func.sum(Referral.commission_amount), 0),
            )
            .where(Referral.user_id == user.id, completed)
            .group_by(Referral.course_id)
        )).all()
    }
    codes = {
        c.course_id: c.referral_code
        for c in await db.scalars(select(CourseReferralCode).where(CourseReferralCode.user_id == user.id))
    }
    purchased = (await db.execute(
        select(Course.id, Course.title)
        .join(Purchase, Purchase.course_id == Course.id)
        .where(Purchase.user_id == user.id, Purchase.payment_status == PaymentStatus.completed)
        .distinct()
    )).all()
    course_referrals = []
    for course_id, title in purchased:
        count, earned = per_course.get(course_id, (0, 0))
        course_referrals.append({
            "course_id": course_id,
            "course_title": title,
            "referral_code": codes.get(course_id),
            "total_referrals": count,
            "total_earnings": float(earned),
        })
    course_referrals.sort(key=lambda c: c["total_earnings"], reverse=True)

    recent = (await db.execute(
        select(Referral, User.name, User.email, Course.title)
        .outerjoin(User, User.id == Referral.referred_user_id)
        .outerjoin(Course, Course.id == Referral.course_id)
        .where(Referral.user_id == user.id, completed)
        .order_by(Referral.created_at.desc())
        .limit(10)
    )).all()

    return {
        "user_info": {"referral_code": user.referral_code, "name": user.name, "email": user.email},
        "can_refer": await has_completed_purchase(db, user.id),
        "stats": {
            "total_referrals": totals[0],
            "successful_referrals": totals[0],
            "total_earnings": float(totals[1]),
            "unique_users_referred": totals[2],
        },
        "course_referrals": course_referrals,
        "recent_referrals": [
            {
                "id": r.id,
                "referred_user_name": name,
                "referred_user_email": email,
                "course_title": title,
                "commission_amount": float(r.commission_amount),
                "status": r.status,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r, name, email, title in recent
        ],
    }
