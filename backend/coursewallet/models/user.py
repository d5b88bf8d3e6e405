from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
import enum
from coursewallet.database import Base, new_uuid

class UserRole(str, enum.Enum):
    user = "user"
    moderator = "moderator"
    admin = "admin"

class User(Base):
    __tablename__ = "users"

    # same id as the auth provider's user (JWT "sub")
    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.user, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)
    referral_code = Column(String(32), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
