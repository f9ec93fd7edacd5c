import json
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException
from nedapay.core.security import verify_hmac_sha256
from nedapay.db.models import TERMINAL_STATUSES, OffRampStatus, OffRampTransaction
from nedapay.services.referral_service import code_for_wallet

settings = get_settings()
logger = logging.getLogger(__name__)

EVENT_STATUS = {
    "payment_order.pending": OffRampStatus.pending.value,
    "payment_order.settled": OffRampStatus.settled.value,
    "payment_order.expired": OffRampStatus.expired.value,
    "payment_order.refunded": OffRampStatus.refunded.value,
}


def _text(value) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return str(value)


def _order_fields(data: dict) -> dict:
    recipient = data.get("recipient")
    if not isinstance(recipient, dict):
        recipient = {}
    fields = {
        "amount": data.get("amount"),
        "rate": data.get("rate"),
        "currency": data.get("currency") or recipient.get("currency"),
        "tx_hash": data.get("txHash"),
    }
    fields = {key: _text(value) for key, value in fields.items()}
    return {key: value for key, value in fields.items() if value}


def _apply_status(row: OffRampTransaction, status: str, merchant_id: str | None, fields: dict) -> bool:
    if row.status in TERMINAL_STATUSES and status != row.status:
        # Terminal states are final; late or out-of-order deliveries are dropped.
        logger.warning(
            "Ignoring Paycrest transition %s -> %s for order %s",
            row.status,
            status,
            row.id,
        )
        return False
    row.status = status
    if merchant_id:
        row.merchant_id = merchant_id
    for key, value in fields.items():
        setattr(row, key, value)
    return True


def upsert_offramp_transaction(db: Session, order_id: str, status: str, data: dict) -> tuple[OffRampTransaction, bool]:
    from_address = data.get("fromAddress")
    merchant_id = (from_address.strip().lower() or None) if isinstance(from_address, str) else None
    fields = _order_fields(data)

    row = db.get(OffRampTransaction, order_id)
    if row is None:
        if not merchant_id:
            raise AppException("Missing fromAddress on payment order", status_code=400, code="VALIDATION_ERROR")
        row = OffRampTransaction(id=order_id, merchant_id=merchant_id, status=status, **fields)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # Concurrent delivery for the same order created the row first.
            db.rollback()
            row = db.get(OffRampTransaction, order_id)
            applied = _apply_status(row, status, merchant_id, fields)
            db.commit()
            db.refresh(row)
            return row, applied
        db.refresh(row)
        return row, True

    applied = _apply_status(row, status, merchant_id, fields)
    db.commit()
    db.refresh(row)
    return row, applied


def handle_paycrest_webhook(db: Session, raw_body: bytes, signature: str | None) -> dict:
    if not settings.PAYCREST_CLIENT_SECRET:
        raise AppException("Paycrest is not configured", status_code=500)
    if not verify_hmac_sha256(settings.PAYCREST_CLIENT_SECRET, raw_body, signature):
        raise AppException("Invalid Signature", status_code=401, code="UNAUTHORIZED")

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise AppException("Invalid webhook payload", status_code=400)
    if not isinstance(event, dict):
        raise AppException("Invalid webhook payload", status_code=400)

    event_name = event.get("event")
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise AppException("Invalid webhook payload", status_code=400)
    status = EVENT_STATUS.get(event_name) if isinstance(event_name, str) else None
    if status is None:
        logger.info("Unknown Paycrest event %s", event_name)
        return {"status": "ignored", "event": event_name}

    order_id = _text(data.get("id"))
    if not order_id:
        raise AppException("Missing payment order id", status_code=400, code="VALIDATION_ERROR")

    row, applied = upsert_offramp_transaction(db, order_id, status, data)
    logger.info("Paycrest %s for order %s (merchant %s)", event_name, row.id, row.merchant_id)
    if applied and status == OffRampStatus.settled.value:
        # Attribution is logged only; commissions are derived when analytics are read.
        code = code_for_wallet(db, row.merchant_id)
        if code:
            logger.info("Settled order %s belongs to a wallet referred by %s", row.id, code)

    return {
        "status": "processed" if applied else "ignored",
        "orderId": row.id,
        "orderStatus": row.status,
    }
