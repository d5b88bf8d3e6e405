from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from coursewallet.database import get_db
from coursewallet.core.deps import get_current_user
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.course import Course
from coursewallet.models.user import User
from coursewallet.schemas.referrals import CourseCodeRequest, ValidateCodeRequest
from coursewallet.services import referrals

router = APIRouter(prefix="/api/referrals", tags=["referrals"])


@router.get("/my-stats")
async def my_stats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await referrals.my_stats(db, user)


@router.get("/my-codes")
async def my_codes(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await referrals.my_codes(db, user)


@router.post("/generate-course-code")
async def generate_course_code(
    body: CourseCodeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    course = await db.get(Course, body.course_id)
    if course is None:
        raise ServiceError(ErrorKind.not_found, "Course not found")
    if not await referrals.has_completed_purchase(db, user.id):
        raise ServiceError(ErrorKind.not_purchased, "Purchase a course to start referring")
    code = await referrals.get_or_create_course_code(db, user.id, course.id)
    await referrals.ensure_referral_code(db, user)
    await db.commit()
    return {"referral_code": code.referral_code, "course_id": course.id, "course_title": course.title}


@router.post("/validate-code")
async def validate_code(body: ValidateCodeRequest, db: AsyncSession = Depends(get_db)):
    return await referrals.validate_code(db, body.referral_code)
