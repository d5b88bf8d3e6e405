"""Shared fixtures: in-memory SQLite per test, a token factory, and seeded rows."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test_jwt_secret_for_testing_only")
os.environ.setdefault("TELEGRAM_WEBHOOK_SECRET", "telegram-secret")
os.environ.setdefault("TELEGRAM_ADMIN_CHAT_IDS", "[4242]")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "razorpay-secret")

from decimal import Decimal

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from coursewallet.core.ratelimit import wallet_rate_limit
from coursewallet.core.security import create_access_token
from coursewallet.database import Base, get_db
from coursewallet.main import app
from coursewallet.models.user import User, UserRole
from coursewallet.models.wallet import Wallet, WalletTransaction, TransactionType

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


async def _no_rate_limit():
    return None


@pytest_asyncio.fixture
async def test_db():
    """Create an isolated in-memory SQLite DB for each test and override get_db."""
    engine = create_async_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[wallet_rate_limit] = _no_rate_limit
    yield SessionLocal
    app.dependency_overrides.clear()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


async def create_user(
    session_factory,
    email: str,
    role: UserRole = UserRole.user,
    balance: float = 0.0,
    is_suspended: bool = False,
    referral_code: str = None,
) -> str:
    """Insert a user (and, for a non-zero balance, a credited wallet). Returns the user id."""
    async with session_factory() as session:
        user = User(email=email, role=role, is_suspended=is_suspended, referral_code=referral_code)
        session.add(user)
        await session.flush()
        if balance:
            amount = Decimal(str(balance))
            session.add(Wallet(user_id=user.id, balance=amount, total_earned=amount, total_withdrawn=0))
            session.add(WalletTransaction(
                user_id=user.id, type=TransactionType.credit, amount=amount, description="Opening balance",
            ))
        await session.commit()
        return user.id
