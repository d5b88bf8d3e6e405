from sqlalchemy import Column, String, Text, Numeric, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
import enum
from coursewallet.database import Base, new_uuid


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=new_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    referral_reward = Column(Numeric(12, 2), default=0)
    pdf_url = Column(String(500), nullable=True)   # object path inside the course asset bucket
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_id = Column(String(100), nullable=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.pending, nullable=False)
    used_referral_code = Column(String(32), nullable=True)
    purchased_at = Column(DateTime(timezone=True), server_default=func.now())
