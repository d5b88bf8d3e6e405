from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
import enum
from coursewallet.database import Base, new_uuid


class ReferralStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


class Referral(Base):
    """One commission earned by `user_id` for a purchase made by `referred_user_id`."""
    __tablename__ = "referrals"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, unique=True)
    referral_code = Column(String(32), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(ReferralStatus), default=ReferralStatus.completed, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CourseReferralCode(Base):
    __tablename__ = "course_referral_codes"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_course_referral_codes_user_course"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    referral_code = Column(String(32), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
