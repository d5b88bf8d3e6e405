from sqlalchemy import Column, String, Text, Numeric, Boolean, DateTime, Enum, ForeignKey, Index, text
from sqlalchemy.sql import func
import enum
from coursewallet.database import Base, new_uuid


class PayoutMethodType(str, enum.Enum):
    UPI = "UPI"
    BANK = "BANK"


class PayoutStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class PayoutMethod(Base):
    __tablename__ = "payout_methods"
    __table_args__ = (
        Index("uq_payout_methods_default", "user_id", unique=True,
              postgresql_where=text("is_default"), sqlite_where=text("is_default")),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    method_type = Column(Enum(PayoutMethodType), nullable=False)
    upi_id = Column(String(100), nullable=True)
    account_number = Column(String(34), nullable=True)
    ifsc_code = Column(String(11), nullable=True)
    account_holder_name = Column(String(255), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PayoutRequest(Base):
    __tablename__ = "payout_requests"
    __table_args__ = (
        Index("uq_payout_requests_pending", "user_id", unique=True,
              postgresql_where=text("status = 'pending'"), sqlite_where=text("status = 'pending'")),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payout_method_id = Column(String(36), ForeignKey("payout_methods.id"), nullable=True)
    status = Column(Enum(PayoutStatus), default=PayoutStatus.pending, nullable=False)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(String(100), nullable=True)   # admin user id, telegram chat id or "razorpay"
    razorpay_payout_id = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
