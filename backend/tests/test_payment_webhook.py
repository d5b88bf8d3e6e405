"""
Tests for the payment capture webhook and referral commission.

Covers:
1. Bad or missing signature is rejected
2. A capture completes the purchase and credits the referrer once
3. Redelivery of the same capture credits nothing more
4. Self-referral and unknown codes credit nothing
5. Completion assigns the buyer referral codes; course codes credit their owner
6. Gateway payout events confirm or fail payouts, idempotently
7. Bodies that are not JSON objects are rejected
"""
import hashlib
import hmac
import json

import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select

from coursewallet.main import app
from coursewallet.models.course import Course, Purchase, PaymentStatus
from coursewallet.models.notification import Notification, NotificationType
from coursewallet.models.payout import PayoutMethod, PayoutMethodType, PayoutRequest, PayoutStatus
from coursewallet.models.referral import CourseReferralCode, Referral
from coursewallet.models.user import User, UserRole
from coursewallet.models.wallet import WalletTransaction, TransactionStatus
from coursewallet.services import ledger, payouts, purchases

from conftest import auth_headers, create_user

SECRET = "razorpay-secret"


def _signed(payload: dict, secret: str = SECRET):
    body = json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return body, {"X-Razorpay-Signature": signature, "Content-Type": "application/json"}


def _capture(user_id: str, course_id: str, payment_id: str = "pay_001") -> dict:
    return {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {"id": payment_id, "notes": {"user_id": user_id, "course_id": course_id}},
            },
        },
    }


async def _seed(session_factory, buyer_id: str, referral_code=None) -> str:
    async with session_factory() as session:
        course = Course(title="Web Dev", price=Decimal("999.00"), referral_reward=Decimal("100.00"))
        session.add(course)
        await session.flush()
        session.add(Purchase(
            user_id=buyer_id, course_id=course.id, amount=Decimal("999.00"),
            payment_status=PaymentStatus.pending, used_referral_code=referral_code,
        ))
        await session.commit()
        return course.id


# ---------------------------------------------------------------------------
# 1. Signature
# ---------------------------------------------------------------------------

def test_verify_signature():
    body = b'{"event":"payment.captured"}'
    good = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
    assert purchases.verify_signature(body, good, SECRET) is True
    assert purchases.verify_signature(body + b" ", good, SECRET) is False
    assert purchases.verify_signature(body, "", SECRET) is False
    assert purchases.verify_signature(body, good, "") is False


@pytest.mark.asyncio
async def test_bad_signature_is_unauthorized(test_db):
    buyer = await create_user(test_db, "buyer@example.com")
    course_id = await _seed(test_db, buyer)
    body, headers = _signed(_capture(buyer, course_id), secret="wrong")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 401, r.text

    async with test_db() as session:
        purchase = await session.scalar(select(Purchase).where(Purchase.user_id == buyer))
        assert purchase.payment_status == PaymentStatus.pending


# ---------------------------------------------------------------------------
# 2 + 3. Capture and redelivery
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_capture_credits_referrer_exactly_once(test_db):
    referrer = await create_user(test_db, "referrer@example.com", referral_code="REF123")
    buyer = await create_user(test_db, "buyer@example.com")
    course_id = await _seed(test_db, buyer, referral_code="REF123")
    body, headers = _signed(_capture(buyer, course_id))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["already_processed"] is False
        assert r.json()["referral_credited"] is True

        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["already_processed"] is True
        assert r.json()["referral_credited"] is False

    async with test_db() as session:
        purchase = await session.scalar(select(Purchase).where(Purchase.user_id == buyer))
        wallet = await ledger.get_wallet(session, referrer)
        credits = list(await session.scalars(
            select(WalletTransaction).where(WalletTransaction.reference_id == purchase.id)
        ))
        notes = list(await session.scalars(
            select(Notification).where(
                Notification.user_id == referrer, Notification.type == NotificationType.referral
            )
        ))

        assert purchase.payment_status == PaymentStatus.completed
        assert purchase.payment_id == "pay_001"
        assert len(credits) == 1
        assert Decimal(str(wallet.balance)) == Decimal("100.00")
        assert Decimal(str(wallet.total_earned)) == Decimal("100.00")
        assert len(notes) == 1


@pytest.mark.asyncio
async def test_unhandled_event_is_acknowledged(test_db):
    body, headers = _signed({"event": "payment.failed", "payload": {}})
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json() == {"success": True}


@pytest.mark.asyncio
async def test_capture_without_notes_is_bad_request(test_db):
    body, headers = _signed({"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_x"}}}})
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 400, r.text


# ---------------------------------------------------------------------------
# 4. Unusable referral codes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_self_referral_earns_nothing(test_db):
    buyer = await create_user(test_db, "selfie@example.com", referral_code="SELF01")
    course_id = await _seed(test_db, buyer, referral_code="SELF01")

    async with test_db() as session:
        result = await purchases.complete_purchase(session, buyer, course_id, payment_id="pay_self")
        await session.commit()
        assert result["already_processed"] is False
        assert result["referral_credited"] is False
        assert await ledger.get_wallet(session, buyer) is None


@pytest.mark.asyncio
async def test_unknown_referral_code_earns_nothing(test_db):
    buyer = await create_user(test_db, "lonely@example.com")
    course_id = await _seed(test_db, buyer, referral_code="NOSUCH")

    async with test_db() as session:
        result = await purchases.complete_purchase(session, buyer, course_id)
        await session.commit()
        assert result["referral_credited"] is False
        count = len(list(await session.scalars(select(WalletTransaction))))
        assert count == 0


# ---------------------------------------------------------------------------
# 5. Referral codes and commission records
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_completion_assigns_buyer_referral_codes(test_db):
    buyer = await create_user(test_db, "newbie@example.com")
    course_id = await _seed(test_db, buyer)

    async with test_db() as session:
        result = await purchases.complete_purchase(session, buyer, course_id, payment_id="pay_new")
        await session.commit()

        user = await session.get(User, buyer)
        course_code = await session.scalar(
            select(CourseReferralCode).where(CourseReferralCode.user_id == buyer)
        )
        assert user.referral_code
        assert result["referral_code"] == user.referral_code
        assert course_code.course_id == course_id
        assert result["course_referral_code"] == course_code.referral_code
        assert course_code.referral_code != user.referral_code


@pytest.mark.asyncio
async def test_generated_code_earns_commission_and_is_recorded(test_db):
    first = await create_user(test_db, "first@example.com")
    first_course = await _seed(test_db, first)
    async with test_db() as session:
        result = await purchases.complete_purchase(session, first, first_course)
        await session.commit()
    course_code = result["course_referral_code"]

    # a friend buys the same course with the first buyer's course code
    friend = await create_user(test_db, "friend@example.com")
    async with test_db() as session:
        session.add(Purchase(
            user_id=friend, course_id=first_course, amount=Decimal("999.00"),
            payment_status=PaymentStatus.pending, used_referral_code=course_code,
        ))
        await session.commit()
    body, headers = _signed(_capture(friend, first_course, payment_id="pay_friend"))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["referral_credited"] is True

    async with test_db() as session:
        referral = await session.scalar(select(Referral).where(Referral.user_id == first))
        wallet = await ledger.get_wallet(session, first)
        assert referral.referred_user_id == friend
        assert referral.course_id == first_course
        assert referral.referral_code == course_code
        assert Decimal(str(referral.commission_amount)) == Decimal("100.00")
        assert Decimal(str(wallet.balance)) == Decimal("100.00")


@pytest.mark.asyncio
async def test_course_code_does_not_apply_to_other_courses(test_db):
    owner = await create_user(test_db, "coder@example.com")
    owner_course = await _seed(test_db, owner)
    async with test_db() as session:
        result = await purchases.complete_purchase(session, owner, owner_course)
        await session.commit()

    buyer = await create_user(test_db, "elsewhere@example.com")
    other_course = await _seed(test_db, buyer, referral_code=result["course_referral_code"])
    async with test_db() as session:
        outcome = await purchases.complete_purchase(session, buyer, other_course)
        await session.commit()
        assert outcome["referral_credited"] is False
        assert await ledger.get_wallet(session, owner) is None


# ---------------------------------------------------------------------------
# 6. Gateway payout events
# ---------------------------------------------------------------------------

async def _pending_payout(session_factory, email: str, balance=500, amount=200) -> tuple:
    user_id = await create_user(session_factory, email, balance=balance)
    async with session_factory() as session:
        method = PayoutMethod(user_id=user_id, method_type=PayoutMethodType.UPI, upi_id="u@upi", is_default=True)
        session.add(method)
        await session.flush()
        payout = await payouts.request_payout(session, user_id, amount, method.id)
        await session.commit()
        return user_id, payout.id


def _payout_event(event: str, gateway_id: str, reference_id: str = None, **extra) -> dict:
    entity = {"id": gateway_id, "amount": 20000, **extra}
    if reference_id:
        entity["reference_id"] = reference_id
    return {"event": event, "payload": {"payout": {"entity": entity}}}


@pytest.mark.asyncio
async def test_payout_processed_confirms_once(test_db):
    user_id, payout_id = await _pending_payout(test_db, "gw@example.com")
    body, headers = _signed(_payout_event("payout.processed", "pout_001", reference_id=payout_id))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "completed"
        assert r.json()["already_processed"] is False

        # redelivered without reference_id: found by the stored gateway id
        body, headers = _signed(_payout_event("payout.processed", "pout_001"))
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["already_processed"] is True

    async with test_db() as session:
        payout = await session.get(PayoutRequest, payout_id)
        wallet = await ledger.get_wallet(session, user_id)
        debits = list(await session.scalars(
            select(WalletTransaction).where(WalletTransaction.reference_id == payout_id)
        ))
        assert payout.status == PayoutStatus.completed
        assert payout.razorpay_payout_id == "pout_001"
        assert payout.processed_by == "razorpay"
        assert len(debits) == 1
        assert debits[0].status == TransactionStatus.completed
        assert Decimal(str(wallet.balance)) == Decimal("300.00")
        assert Decimal(str(wallet.total_withdrawn)) == Decimal("200.00")


@pytest.mark.asyncio
async def test_payout_failed_refunds_hold(test_db):
    admin_id = await create_user(test_db, "ops@example.com", role=UserRole.admin)
    user_id, payout_id = await _pending_payout(test_db, "gwfail@example.com")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.put(
            f"/api/admin/payouts/{payout_id}/gateway",
            json={"razorpay_payout_id": "pout_002"},
            headers=auth_headers(admin_id),
        )
        assert r.status_code == 200, r.text
        assert r.json()["payout"]["razorpay_payout_id"] == "pout_002"

        body, headers = _signed(_payout_event("payout.failed", "pout_002", failure_reason="Beneficiary bank offline"))
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "failed"

        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 200, r.text
        assert r.json()["already_processed"] is True

    async with test_db() as session:
        payout = await session.get(PayoutRequest, payout_id)
        wallet = await ledger.get_wallet(session, user_id)
        assert payout.status == PayoutStatus.failed
        assert payout.admin_notes == "Beneficiary bank offline"
        assert Decimal(str(wallet.balance)) == Decimal("500.00")
        assert await ledger.ledger_balance(session, user_id) == Decimal("500.00")


@pytest.mark.asyncio
async def test_payout_event_for_unknown_payout_is_not_found(test_db):
    body, headers = _signed(_payout_event("payout.processed", "pout_missing"))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 404, r.text


# ---------------------------------------------------------------------------
# 7. Body shape
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    [],
    "captured",
    {"event": "payment.captured", "payload": []},
    {"event": "payment.captured", "payload": {"payment": []}},
    {"event": "payment.captured", "payload": {"payment": {"entity": "pay_1"}}},
    {"event": "payout.processed", "payload": {"payout": {"entity": {}}}},
])
async def test_signed_but_malformed_body_is_bad_request(test_db, payload):
    body, headers = _signed(payload)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 400, r.text
        assert r.json()["error"] == "validation_failed"


@pytest.mark.asyncio
async def test_capture_with_empty_notes_list_is_bad_request(test_db):
    payload = {"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_2", "notes": []}}}}
    body, headers = _signed(payload)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert r.status_code == 400, r.text
