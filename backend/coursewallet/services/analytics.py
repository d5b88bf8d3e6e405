from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.models.course import Purchase, PaymentStatus
from coursewallet.models.payout import PayoutRequest, PayoutStatus
from coursewallet.models.user import User
from coursewallet.models.wallet import Wallet


def _money(value) -> float:
    return float(Decimal(str(value or 0)))


async def summary(db: AsyncSession) -> dict:
    """Platform-wide totals for the admin dashboard."""
    total_users = await db.scalar(select(func.count(User.id)))
    suspended = await db.scalar(select(func.count(User.id)).where(User.is_suspended == True))

    purchases = (await db.execute(
        select(func.count(Purchase.id), func.coalesce(func.sum(Purchase.amount), 0))
        .where(Purchase.payment_status == PaymentStatus.completed)
    )).one()

    wallets = (await db.execute(
        select(
            func.coalesce(func.sum(Wallet.balance), 0),
            func.coalesce(func.sum(Wallet.total_earned), 0),
            func.coalesce(func.sum(Wallet.total_withdrawn), 0),
        )
    )).one()

    pending = (await db.execute(
        select(func.count(PayoutRequest.id), func.coalesce(func.sum(PayoutRequest.amount), 0))
        .where(PayoutRequest.status == PayoutStatus.pending)
    )).one()

    return {
        "users": {
            "total": total_users or 0,
            "active": (total_users or 0) - (suspended or 0),
            "suspended": suspended or 0,
        },
        "purchases": {"completed": purchases[0], "revenue": _money(purchases[1])},
        "wallets": {
            "balance": _money(wallets[0]),
            "total_earned": _money(wallets[1]),
            "total_withdrawn": _money(wallets[2]),
        },
        "pending_payouts": {"count": pending[0], "amount": _money(pending[1])},
    }
