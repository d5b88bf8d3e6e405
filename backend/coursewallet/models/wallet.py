from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
import enum
from coursewallet.database import Base, new_uuid


class TransactionType(str, enum.Enum):
    credit = "credit"
    debit = "debit"


class TransactionStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Wallet(Base):
    __tablename__ = "wallet"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    total_earned = Column(Numeric(12, 2), nullable=False, default=0)
    total_withdrawn = Column(Numeric(12, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_transactions_amount_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.completed, nullable=False)
    description = Column(String(500), nullable=True)
    reference_id = Column(String(36), nullable=True, index=True)   # payout / purchase id
    created_at = Column(DateTime(timezone=True), server_default=func.now())
