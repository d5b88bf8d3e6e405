from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from coursewallet.database import get_db
from coursewallet.core.deps import require_admin
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.user import User
from coursewallet.models.payout import PayoutStatus
from coursewallet.models.wallet import TransactionType
from coursewallet.schemas.admin import BroadcastRequest, CreditRequest, GatewayPayoutLink, PayoutDecision, SuspensionRequest
from coursewallet.services import analytics, ledger, notifications, payouts

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/notifications/broadcast")
async def broadcast_notification(
    body: BroadcastRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    count = await notifications.broadcast(db, body.title, body.message, body.type)
    await db.commit()
    return {"success": True, "count": count}


@router.post("/wallet/credit")
async def credit_wallet(
    body: CreditRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    target = await db.get(User, body.user_id)
    if not target:
        raise ServiceError(ErrorKind.not_found, "User not found")
    tx, wallet = await ledger.apply_mutation(
        db, target.id, body.amount, TransactionType.credit,
        description=body.description or f"Manual credit by admin {admin.id}",
    )
    await db.commit()
    return {"transaction": ledger.transaction_dict(tx), "wallet": ledger.wallet_dict(wallet)}


@router.get("/payouts")
async def list_payouts(
    status: Optional[PayoutStatus] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return [payouts.payout_dict(p) for p in await payouts.list_all_payouts(db, status)]


@router.post("/payouts/{payout_id}/confirm")
async def confirm_payout(
    payout_id: str,
    body: PayoutDecision = PayoutDecision(),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    outcome = await payouts.confirm_payout(db, payout_id, processed_by=admin.id, notes=body.notes)
    await db.commit()
    return {"payout": payouts.payout_dict(outcome.payout), "already_processed": outcome.already_processed}


@router.post("/payouts/{payout_id}/fail")
async def fail_payout(
    payout_id: str,
    body: PayoutDecision = PayoutDecision(),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    outcome = await payouts.fail_payout(db, payout_id, reason=body.notes, processed_by=admin.id)
    await db.commit()
    return {"payout": payouts.payout_dict(outcome.payout), "already_processed": outcome.already_processed}


@router.put("/payouts/{payout_id}/gateway")
async def link_gateway_payout(
    payout_id: str,
    body: GatewayPayoutLink,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await payouts.attach_gateway_payout(db, payout_id, body.razorpay_payout_id)
    await db.commit()
    return {"payout": payouts.payout_dict(payout)}


@router.put("/users/{user_id}/suspension")
async def set_suspension(
    user_id: str,
    body: SuspensionRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError(ErrorKind.not_found, "User not found")
    if user.id == admin.id:
        raise ServiceError(ErrorKind.validation_failed, "Admins cannot suspend themselves")
    user.is_suspended = body.is_suspended
    await db.commit()
    return {"message": "suspension updated", "is_suspended": user.is_suspended}


@router.get("/analytics")
async def analytics_summary(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.summary(db)
