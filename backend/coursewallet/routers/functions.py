"""
functions.py — single-purpose endpoints called by the frontend and by external webhooks.

  POST /functions/get-course-url            purchase-gated signed download URL
  POST /functions/telegram-payout-webhook   admin bot commands: /confirm_payout, /reject_payout
  POST /functions/payment-webhook           payment gateway capture and payout events
"""
import hmac
import json
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from coursewallet.config import settings
from coursewallet.database import get_db
from coursewallet.core.deps import get_current_user
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.models.user import User, UserRole
from coursewallet.schemas.functions import CourseUrlRequest, TelegramUpdate
from coursewallet.services import payouts, purchases
from coursewallet.services.courses import issue_course_download_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])

PAYMENT_CAPTURED_EVENTS = ("payment.captured", "order.paid")
PAYOUT_EVENTS = ("payout.processed", "payout.failed")


@router.post("/get-course-url")
async def get_course_url(
    body: CourseUrlRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = body.user_id or user.id
    if user_id != user.id and user.role != UserRole.admin:
        raise ServiceError(ErrorKind.authorization_denied, "Cannot request another user's course")
    return await issue_course_download_url(db, user_id, body.course_id)


def parse_command(text: str) -> Tuple[Optional[str], List[str]]:
    """Split '/cmd@bot arg1 arg2' into ('/cmd', ['arg1', 'arg2'])."""
    parts = text.strip().split()
    if not parts or not parts[0].startswith("/"):
        return None, []
    return parts[0].split("@", 1)[0].lower(), parts[1:]


def _telegram_secret_ok(token: Optional[str]) -> bool:
    expected = settings.TELEGRAM_WEBHOOK_SECRET
    if not expected or not token:
        return False
    return hmac.compare_digest(expected, token)


@router.post("/telegram-payout-webhook")
async def telegram_payout_webhook(
    update: TelegramUpdate,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    if not _telegram_secret_ok(x_telegram_bot_api_secret_token):
        logger.warning("Rejected Telegram update %s: bad secret token", update.update_id)
        raise ServiceError(ErrorKind.authorization_denied, "Invalid webhook secret")

    message = update.message
    command, args = parse_command(message.text or "") if message else (None, [])
    if command not in ("/confirm_payout", "/reject_payout"):
        return {"success": True}

    sender = message.from_.id if message.from_ else None
    if sender not in settings.TELEGRAM_ADMIN_CHAT_IDS:
        logger.warning("Rejected %s from non-admin Telegram user %s", command, sender)
        raise ServiceError(ErrorKind.authorization_denied, "Not authorized to process payouts")
    if not args:
        raise ServiceError(ErrorKind.validation_failed, "Invalid payout ID")

    payout_id = args[0]
    processed_by = f"telegram:{sender}"
    logger.info("Processing %s for payout %s from %s", command, payout_id, processed_by)
    if command == "/confirm_payout":
        outcome = await payouts.confirm_payout(
            db, payout_id, processed_by=processed_by, notes="Confirmed via Telegram bot"
        )
        text = "Payout already processed" if outcome.already_processed else "Payout confirmed and processed"
    else:
        reason = " ".join(args[1:]) or "Rejected via Telegram bot"
        outcome = await payouts.fail_payout(db, payout_id, reason=reason, processed_by=processed_by)
        text = "Payout already rejected" if outcome.already_processed else "Payout rejected and refunded"
    await db.commit()

    return {
        "success": True,
        "message": text,
        "payout_id": outcome.payout.id,
        "status": outcome.payout.status,
        "already_processed": outcome.already_processed,
    }


def _entity(entities: dict, *kinds: str) -> dict:
    """Return payload.<kind>.entity for the first kind present."""
    for kind in kinds:
        wrapper = entities.get(kind)
        if wrapper is None:
            continue
        entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
        if not isinstance(entity, dict):
            raise ServiceError(ErrorKind.validation_failed, f"Malformed {kind} entity")
        return entity
    return {}


async def _handle_capture(db: AsyncSession, entities: dict) -> dict:
    entity = _entity(entities, "payment", "order")
    notes = entity.get("notes")
    # the gateway sends an empty list when no notes were set
    if not isinstance(notes, dict):
        notes = {}
    user_id, course_id = notes.get("user_id"), notes.get("course_id")
    if not user_id or not course_id:
        raise ServiceError(ErrorKind.validation_failed, "Payment notes must carry user_id and course_id")

    result = await purchases.complete_purchase(db, user_id, course_id, payment_id=entity.get("id"))
    await db.commit()
    return {"success": True, **result}


async def _handle_payout(db: AsyncSession, event: str, entities: dict) -> dict:
    entity = _entity(entities, "payout")
    gateway_id = entity.get("id")
    if not gateway_id:
        raise ServiceError(ErrorKind.validation_failed, "Payout event without payout id")

    payout = await payouts.find_gateway_payout(db, gateway_id, entity.get("reference_id"))
    if event == "payout.processed":
        outcome = await payouts.confirm_payout(
            db, payout.id, processed_by="razorpay", notes=f"Processed by gateway ({gateway_id})"
        )
    else:
        reason = entity.get("failure_reason") or "Payout failed at the payment gateway"
        outcome = await payouts.fail_payout(db, payout.id, reason=reason, processed_by="razorpay")
    await db.commit()
    logger.info("Gateway %s for payout %s (already processed: %s)", event, payout.id, outcome.already_processed)
    return {
        "success": True,
        "payout_id": outcome.payout.id,
        "status": outcome.payout.status,
        "already_processed": outcome.already_processed,
    }


@router.post("/payment-webhook")
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    raw = await request.body()
    if not purchases.verify_signature(raw, x_razorpay_signature or "", settings.RAZORPAY_WEBHOOK_SECRET):
        logger.warning("Rejected payment webhook: invalid signature")
        raise ServiceError(ErrorKind.authentication_missing, "Invalid signature")

    try:
        payload = json.loads(raw)
    except ValueError:
        raise ServiceError(ErrorKind.validation_failed, "Malformed JSON body")
    if not isinstance(payload, dict):
        raise ServiceError(ErrorKind.validation_failed, "Webhook body must be a JSON object")
    entities = payload.get("payload") or {}
    if not isinstance(entities, dict):
        raise ServiceError(ErrorKind.validation_failed, "Webhook payload must be a JSON object")

    event = payload.get("event")
    if event in PAYMENT_CAPTURED_EVENTS:
        return await _handle_capture(db, entities)
    if event in PAYOUT_EVENTS:
        return await _handle_payout(db, event, entities)
    logger.info("Unhandled payment webhook event: %s", event)
    return {"success": True}
