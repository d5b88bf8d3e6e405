import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.config import settings
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.database import new_uuid
from coursewallet.models.notification import NotificationType
from coursewallet.models.payout import PayoutMethod, PayoutMethodType, PayoutRequest, PayoutStatus
from coursewallet.models.wallet import TransactionType, TransactionStatus
from coursewallet.schemas.wallet import PayoutMethodRequest
from coursewallet.services import ledger
from coursewallet.services.notifications import create_notification

logger = logging.getLogger(__name__)


@dataclass
class PayoutOutcome:
    payout: PayoutRequest
    already_processed: bool


# ---------------------------------------------------------------------------
# Payout methods
# ---------------------------------------------------------------------------

async def list_payout_methods(db: AsyncSession, user_id: str) -> List[PayoutMethod]:
    return list(await db.scalars(
        select(PayoutMethod)
        .where(PayoutMethod.user_id == user_id)
        .order_by(PayoutMethod.created_at.desc())
    ))


async def _clear_default(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        update(PayoutMethod)
        .where(PayoutMethod.user_id == user_id, PayoutMethod.is_default == True)
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


async def add_payout_method(db: AsyncSession, user_id: str, body: PayoutMethodRequest) -> PayoutMethod:
    # the first method a user adds becomes the default
    has_methods = await db.scalar(
        select(func.count(PayoutMethod.id)).where(PayoutMethod.user_id == user_id)
    )
    is_default = body.is_default or not has_methods
    if is_default:
        await _clear_default(db, user_id)

    is_upi = body.method_type == PayoutMethodType.UPI
    method = PayoutMethod(
        user_id=user_id,
        method_type=body.method_type,
        upi_id=body.upi_id if is_upi else None,
        account_number=None if is_upi else body.account_number,
        ifsc_code=None if is_upi else body.ifsc_code.upper(),
        account_holder_name=None if is_upi else body.account_holder_name,
        is_default=is_default,
    )
    db.add(method)
    await db.flush()
    await db.refresh(method)
    return method


async def set_default_payout_method(db: AsyncSession, user_id: str, method_id: str) -> PayoutMethod:
    method = await db.scalar(
        select(PayoutMethod).where(PayoutMethod.id == method_id, PayoutMethod.user_id == user_id)
    )
    if method is None:
        raise ServiceError(ErrorKind.not_found, "Payout method not found")
    await _clear_default(db, user_id)
    method.is_default = True
    await db.flush()
    return method


def mask_account(account_number: Optional[str]) -> Optional[str]:
    if not account_number:
        return account_number
    return account_number[-4:].rjust(len(account_number), "*")


def payout_method_dict(m: PayoutMethod) -> dict:
    return {
        "id": m.id,
        "method_type": m.method_type,
        "upi_id": m.upi_id,
        "account_number": mask_account(m.account_number),
        "ifsc_code": m.ifsc_code,
        "account_holder_name": m.account_holder_name,
        "is_default": m.is_default,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


# ---------------------------------------------------------------------------
# Payout requests
# ---------------------------------------------------------------------------

async def request_payout(db: AsyncSession, user_id: str, amount, payout_method_id: str) -> PayoutRequest:
    """Create a pending payout and hold its amount on the wallet.

    The hold is a pending debit referencing the payout; the balance drops
    immediately while ``total_withdrawn`` waits for confirmation.
    """
    amount = ledger.to_money(amount)
    minimum = ledger.to_money(settings.MIN_PAYOUT_AMOUNT)
    if amount < minimum:
        raise ServiceError(ErrorKind.validation_failed, f"Minimum payout amount is ₹{minimum}")

    method = await db.scalar(
        select(PayoutMethod).where(
            PayoutMethod.id == payout_method_id,
            PayoutMethod.user_id == user_id,
        )
    )
    if method is None:
        raise ServiceError(ErrorKind.not_found, "Payout method not found")

    pending = await db.scalar(
        select(PayoutRequest.id).where(
            PayoutRequest.user_id == user_id,
            PayoutRequest.status == PayoutStatus.pending,
        )
    )
    if pending:
        raise ServiceError(
            ErrorKind.conflict,
            "You have a pending payout request. Please wait for it to be processed.",
        )

    payout_id = new_uuid()
    # hold first: an overdraft aborts before anything else is written
    await ledger.apply_mutation(
        db, user_id, amount, TransactionType.debit,
        status=TransactionStatus.pending,
        description=f"Payout request - {method.method_type.value}",
        reference_id=payout_id,
        counts_as_withdrawal=False,
    )
    payout = PayoutRequest(
        id=payout_id,
        user_id=user_id,
        amount=amount,
        payout_method_id=method.id,
        status=PayoutStatus.pending,
    )
    db.add(payout)
    try:
        await db.flush()
    except IntegrityError:
        # a concurrent request for the same user won the pending slot
        raise ServiceError(ErrorKind.conflict, "You have a pending payout request. Please wait for it to be processed.")
    await db.refresh(payout)
    await create_notification(
        db, user_id,
        "Payout Request Submitted",
        f"Your payout request of ₹{amount} has been submitted and is pending approval.",
        NotificationType.info,
    )
    logger.info("Payout %s requested by %s for %s", payout_id, user_id, amount)
    return payout


async def _transition(
    db: AsyncSession,
    payout_id: str,
    new_status: PayoutStatus,
    processed_by: Optional[str],
    notes: Optional[str],
) -> Optional[PayoutRequest]:
    """Compare-and-set pending -> new_status. Returns the payout only if this call won."""
    result = await db.execute(
        update(PayoutRequest)
        .where(PayoutRequest.id == payout_id, PayoutRequest.status == PayoutStatus.pending)
        .values(
            status=new_status,
            processed_at=datetime.now(timezone.utc),
            processed_by=processed_by,
            admin_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    payout = await db.scalar(
        select(PayoutRequest)
        .where(PayoutRequest.id == payout_id)
        .execution_options(populate_existing=True)
    )
    if payout is None:
        raise ServiceError(ErrorKind.not_found, "Payout not found")
    return payout if result.rowcount == 1 else None


async def confirm_payout(
    db: AsyncSession,
    payout_id: str,
    processed_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> PayoutOutcome:
    """Mark a pending payout completed and settle its hold exactly once."""
    payout = await _transition(db, payout_id, PayoutStatus.completed, processed_by, notes)
    if payout is None:
        current = await db.get(PayoutRequest, payout_id)
        if current.status == PayoutStatus.failed:
            raise ServiceError(ErrorKind.conflict, "Payout has already failed")
        logger.info("Payout %s already completed; ignoring replay", payout_id)
        return PayoutOutcome(current, already_processed=True)

    await ledger.settle_hold(db, payout.user_id, payout.amount, payout.id)
    await create_notification(
        db, payout.user_id,
        "Payout Completed",
        f"Your payout of ₹{ledger.to_money(payout.amount)} has been processed.",
        NotificationType.payment,
    )
    logger.info("Payout %s completed by %s", payout_id, processed_by)
    return PayoutOutcome(payout, already_processed=False)


async def fail_payout(
    db: AsyncSession,
    payout_id: str,
    reason: Optional[str] = None,
    processed_by: Optional[str] = None,
) -> PayoutOutcome:
    """Mark a pending payout failed and release its hold back to the balance."""
    payout = await _transition(db, payout_id, PayoutStatus.failed, processed_by, reason)
    if payout is None:
        current = await db.get(PayoutRequest, payout_id)
        if current.status == PayoutStatus.completed:
            raise ServiceError(ErrorKind.conflict, "Payout has already been completed")
        logger.info("Payout %s already failed; ignoring replay", payout_id)
        return PayoutOutcome(current, already_processed=True)

    await ledger.release_hold(db, payout.user_id, payout.amount, payout.id)
    message = f"Your payout of ₹{ledger.to_money(payout.amount)} could not be processed and was returned to your wallet."
    if reason:
        message += f" Reason: {reason}"
    await create_notification(db, payout.user_id, "Payout Failed", message, NotificationType.error)
    logger.info("Payout %s failed by %s: %s", payout_id, processed_by, reason)
    return PayoutOutcome(payout, already_processed=False)


async def attach_gateway_payout(db: AsyncSession, payout_id: str, gateway_payout_id: str) -> PayoutRequest:
    """Record the gateway's id for a payout so its webhooks can find it."""
    payout = await db.get(PayoutRequest, payout_id)
    if payout is None:
        raise ServiceError(ErrorKind.not_found, "Payout not found")
    if payout.razorpay_payout_id and payout.razorpay_payout_id != gateway_payout_id:
        raise ServiceError(ErrorKind.conflict, "Payout is already linked to another gateway payout")
    payout.razorpay_payout_id = gateway_payout_id
    try:
        await db.flush()
    except IntegrityError:
        raise ServiceError(ErrorKind.conflict, "Gateway payout id is already linked to another payout")
    return payout


async def find_gateway_payout(
    db: AsyncSession, gateway_payout_id: str, reference_id: Optional[str] = None
) -> PayoutRequest:
    """Find the payout behind a gateway event.

    Falls back to the event's ``reference_id`` (our payout id, sent when the
    payout was created at the gateway) and links the two on first sight.
    """
    payout = await db.scalar(
        select(PayoutRequest).where(PayoutRequest.razorpay_payout_id == gateway_payout_id)
    )
    if payout is not None:
        return payout
    if reference_id:
        return await attach_gateway_payout(db, reference_id, gateway_payout_id)
    raise ServiceError(ErrorKind.not_found, "Payout not found")


async def list_payouts(db: AsyncSession, user_id: str) -> List[PayoutRequest]:
    return list(await db.scalars(
        select(PayoutRequest)
        .where(PayoutRequest.user_id == user_id)
        .order_by(PayoutRequest.created_at.desc())
    ))


async def list_all_payouts(db: AsyncSession, status: Optional[PayoutStatus] = None, limit: int = 100) -> List[PayoutRequest]:
    query = select(PayoutRequest).order_by(PayoutRequest.created_at.desc()).limit(limit)
    if status is not None:
        query = query.where(PayoutRequest.status == status)
    return list(await db.scalars(query))


def payout_dict(p: PayoutRequest, method: Optional[PayoutMethod] = None) -> dict:
    d = {
        "id": p.id,
        "user_id": p.user_id,
        "amount": float(p.amount),
        "status": p.status,
        "payout_method_id": p.payout_method_id,
        "admin_notes": p.admin_notes,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "processed_at": p.processed_at.isoformat() if p.processed_at else None,
        "razorpay_payout_id": p.razorpay_payout_id,
    }
    if method is not None:
        d["payout_method"] = payout_method_dict(method)
    return d
