"""Wallet balance mutations and the transaction ledger.

Every balance change goes through this module. A mutation is a single
conditional UPDATE on the wallet row plus a ledger insert, executed inside
the caller's transaction: the row lock taken by the UPDATE serializes
concurrent mutations for one user until commit, and the ``balance >= amount``
guard (backed by the ``balance >= 0`` check constraint) rejects overdrafts
without touching anything.
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple, List

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.wallet import Wallet, WalletTransaction, TransactionType, TransactionStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


async def get_wallet(db: AsyncSession, user_id: str) -> Optional[Wallet]:
    return await db.scalar(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .execution_options(populate_existing=True)
    )


async def get_or_create_wallet(db: AsyncSession, user_id: str) -> Wallet:
    wallet = await get_wallet(db, user_id)
    if wallet is not None:
        return wallet
    wallet = Wallet(
        user_id=user_id,
        balance=Decimal("0"),
        total_earned=Decimal("0"),
        total_withdrawn=Decimal("0"),
    )
    db.add(wallet)
    try:
        await db.flush()
    except IntegrityError:
        # another request created it first; this transaction is unusable now
        raise ServiceError(ErrorKind.conflict, "Wallet is being created, please retry")
    await db.refresh(wallet)
    logger.info("Created wallet for user %s", user_id)
    return wallet


async def apply_mutation(
    db: AsyncSession,
    user_id: str,
    amount,
    direction: TransactionType,
    *,
    status: TransactionStatus = TransactionStatus.completed,
    description: Optional[str] = None,
    reference_id: Optional[str] = None,
    counts_as_withdrawal: bool = True,
) -> Tuple[WalletTransaction, Wallet]:
    """Adjust the balance and append the matching ledger entry.

    Credits raise ``total_earned``. Debits raise ``total_withdrawn`` unless
    ``counts_as_withdrawal`` is False (payout holds, settled later by
    :func:`settle_hold`). Raises ``insufficient_balance`` when a debit would
    overdraw the wallet; nothing is written in that case.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ServiceError(ErrorKind.validation_failed, "Amount must be positive")

    stmt = update(Wallet).where(Wallet.user_id == user_id)
    values = {"updated_at": func.now()}
    if direction == TransactionType.credit:
        await get_or_create_wallet(db, user_id)
        values["balance"] = Wallet.balance + amount
        values["total_earned"] = Wallet.total_earned + amount
    else:
        stmt = stmt.where(Wallet.balance >= amount)
        values["balance"] = Wallet.balance - amount
        if counts_as_withdrawal:
            values["total_withdrawn"] = Wallet.total_withdrawn + amount

    result = await db.execute(
        stmt.values(**values).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info("Rejected %s of %s for user %s: insufficient balance", direction.value, amount, user_id)
        raise ServiceError(ErrorKind.insufficient_balance, "Insufficient balance")

    tx = WalletTransaction(
        user_id=user_id,
        type=direction,
        amount=amount,
        status=status,
        description=description or f"Wallet {direction.value}",
        reference_id=reference_id,
    )
    db.add(tx)
    await db.flush()
    await db.refresh(tx)

    wallet = await get_wallet(db, user_id)
    logger.info(
        "Wallet %s %s for user %s (ref=%s) -> balance %s",
        direction.value, amount, user_id, reference_id, wallet.balance,
    )
    return tx, wallet


async def _hold_transaction(db: AsyncSession, user_id: str, reference_id: str) -> Optional[WalletTransaction]:
    return await db.scalar(
        select(WalletTransaction).where(
            WalletTransaction.user_id == user_id,
            WalletTransaction.reference_id == reference_id,
            WalletTransaction.type == TransactionType.debit,
            WalletTransaction.status == TransactionStatus.pending,
        )
    )


async def settle_hold(db: AsyncSession, user_id: str, amount, reference_id: str) -> Wallet:
    """Turn a pending payout hold into a completed withdrawal.

    The balance was already reduced when the hold was placed, so only
    ``total_withdrawn`` moves and the hold's ledger entry is completed.
    """
    amount = to_money(amount)
    await db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id)
        .values(total_withdrawn=Wallet.total_withdrawn + amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    tx = await _hold_transaction(db, user_id, reference_id)
    if tx is not None:
        tx.status = TransactionStatus.completed
    else:
        logger.warning("No pending hold found for reference %s (user %s)", reference_id, user_id)
    await db.flush()
    return await get_wallet(db, user_id)


async def release_hold(db: AsyncSession, user_id: str, amount, reference_id: str) -> Wallet:
    """Return a pending payout hold to the balance and void its ledger entry."""
    amount = to_money(amount)
    await db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id)
        .values(balance=Wallet.balance + amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    tx = await _hold_transaction(db, user_id, reference_id)
    if tx is not None:
        tx.status = TransactionStatus.failed
    else:
        logger.warning("No pending hold found for reference %s (user %s)", reference_id, user_id)
    await db.flush()
    return await get_wallet(db, user_id)


async def list_transactions(
    db: AsyncSession, user_id: str, page: int = 1, limit: int = 20
) -> Tuple[List[WalletTransaction], int]:
    offset = (page - 1) * limit
    transactions = list(await db.scalars(
        select(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id)
        .offset(offset)
        .limit(limit)
    ))
    total = await db.scalar(
        select(func.count(WalletTransaction.id)).where(WalletTransaction.user_id == user_id)
    )
    return transactions, total or 0


async def ledger_balance(db: AsyncSession, user_id: str) -> Decimal:
    """Signed sum of every non-failed ledger entry; equals the wallet balance."""
    signed = case(
        (WalletTransaction.type == TransactionType.credit, WalletTransaction.amount),
        else_=-WalletTransaction.amount,
    )
    total = await db.scalar(
        select(func.coalesce(func.sum(signed), 0)).where(
            WalletTransaction.user_id == user_id,
            WalletTransaction.status != TransactionStatus.failed,
        )
    )
    return to_money(total)


def wallet_dict(wallet: Wallet) -> dict:
    return {
        "id": wallet.id,
        "user_id": wallet.user_id,
        "balance": float(wallet.balance or 0),
        "total_earned": float(wallet.total_earned or 0),
        "total_withdrawn": float(wallet.total_withdrawn or 0),
        "updated_at": wallet.updated_at.isoformat() if wallet.updated_at else None,
    }


def transaction_dict(tx: WalletTransaction) -> dict:
    return {
        "id": tx.id,
        "type": tx.type,
        "amount": float(tx.amount),
        "status": tx.status,
        "description": tx.description,
        "reference_id": tx.reference_id,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }
