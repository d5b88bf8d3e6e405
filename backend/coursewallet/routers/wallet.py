from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from coursewallet.database import get_db
from coursewallet.core.deps import get_current_user
from coursewallet.core.ratelimit import wallet_rate_limit
from coursewallet.models.user import User
from coursewallet.models.payout import PayoutMethod
from coursewallet.schemas.wallet import PayoutMethodRequest, PayoutRequestBody
from coursewallet.services import ledger, payouts

router = APIRouter(
    prefix="/api/wallet",
    tags=["wallet"],
    dependencies=[Depends(wallet_rate_limit)],
)

@router.get("")
async def get_wallet(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    wallet = await ledger.get_or_create_wallet(db, user.id)
    await db.commit()
    return {"wallet": ledger.wallet_dict(wallet)}


@router.get("/transactions")
async def get_transactions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transactions, total = await ledger.list_transactions(db, user.id, page, limit)
    offset = (page - 1) * limit
    return {
        "transactions": [ledger.transaction_dict(t) for t in transactions],
        "pagination": {
            "current_page": page,
            "total_pages": -(-total // limit),
            "total_count": total,
            "has_more": offset + len(transactions) < total,
        },
    }


@router.get("/payout-methods")
async def get_payout_methods(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    methods = await payouts.list_payout_methods(db, user.id)
    return {"payout_methods": [payouts.payout_method_dict(m) for m in methods]}


@router.post("/payout-methods", status_code=201)
async def add_payout_method(
    body: PayoutMethodRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    method = await payouts.add_payout_method(db, user.id, body)
    await db.commit()
    return {
        "message": "Payout method added successfully",
        "payout_method": payouts.payout_method_dict(method),
    }


@router.put("/payout-methods/{method_id}/default")
async def set_default_payout_method(
    method_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    method = await payouts.set_default_payout_method(db, user.id, method_id)
    await db.commit()
    return {"message": "Default payout method updated", "payout_method_id": method.id}


@router.post("/payout-request", status_code=201)
async def request_payout(
    body: PayoutRequestBody,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payout = await payouts.request_payout(db, user.id, body.amount, body.payout_method_id)
    wallet = await ledger.get_wallet(db, user.id)
    await db.commit()
    return {
        "message": "Payout request submitted successfully",
        "payout_request": payouts.payout_dict(payout),
        "balance": float(wallet.balance),
    }


@router.get("/payout-requests")
async def get_payout_requests(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    requests = await payouts.list_payouts(db, user.id)
    method_ids = {p.payout_method_id for p in requests if p.payout_method_id}
    methods = {}
    if method_ids:
        methods = {
            m.id: m for m in await db.scalars(select(PayoutMethod).where(PayoutMethod.id.in_(method_ids)))
        }
    return {
        "payout_requests": [payouts.payout_dict(p, methods.get(p.payout_method_id)) for p in requests]
    }
