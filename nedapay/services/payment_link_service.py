from datetime import datetime
from decimal import Decimal
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException
from nedapay.core.security import sign_hmac_sha256, verify_hmac_sha256
from nedapay.db.models import PaymentLink
from nedapay.schemas.payment_link import OFF_RAMP_TYPES, PaymentLinkCreate

settings = get_settings()

# Characters left alone by a browser's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def format_amount(amount: float) -> str:
    """Render a number the way JavaScript's ``String(number)`` does.

    Python's ``repr`` already yields the shortest round-trip digits; only the
    placement of the decimal point and the exponent notation differ.
    """
    value = float(amount)
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = k + exponent

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def build_query_string(amount: float, currency: str, merchant_id: str, description: str | None) -> str:
    return (
        f"amount={format_amount(amount)}"
        f"&currency={currency}"
        f"&to={merchant_id}"
        f"&description={quote(description or '', safe=_URI_COMPONENT_SAFE)}"
    )


def _hmac_secret() -> str:
    if not settings.HMAC_SECRET:
        raise AppException("Payment link signing is not configured", status_code=500)
    return settings.HMAC_SECRET


def sign_query_string(query_string: str) -> str:
    return sign_hmac_sha256(_hmac_secret(), query_string)


def serialize_link(link: PaymentLink) -> dict:
    return {
        "id": link.id,
        "linkId": link.link_id,
        "merchantId": link.merchant_id,
        "url": link.url,
        "amount": link.amount,
        "currency": link.currency,
        "description": link.description,
        "status": link.status,
        "expiresAt": link.expires_at.isoformat() if link.expires_at else None,
        "signature": link.signature,
        "linkType": link.link_type,
        "offRampType": link.off_ramp_type,
        "offRampValue": link.off_ramp_value,
        "offRampProvider": link.off_ramp_provider,
        "accountName": link.account_name,
        "createdAt": link.created_at.isoformat() if link.created_at else None,
    }


def create_payment_link(db: Session, payload: PaymentLinkCreate, base_url: str) -> PaymentLink:
    query_string = build_query_string(payload.amount, payload.currency, payload.merchantId, payload.description)
    signature = sign_query_string(query_string)
    link = PaymentLink(
        link_id=payload.linkId,
        merchant_id=payload.merchantId,
        url=f"{base_url.rstrip('/')}/pay/{payload.linkId}?{query_string}&sig={signature}",
        amount=payload.amount,
        currency=payload.currency,
        description=payload.description,
        status=payload.status,
        expires_at=payload.expires_at_naive,
        signature=signature,
        link_type=payload.linkType,
        off_ramp_type=payload.offRampType,
        off_ramp_value=payload.offRampValue,
        off_ramp_provider=payload.offRampProvider,
        account_name=payload.accountName,
    )
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppException("Payment link already exists", status_code=409)
    db.refresh(link)
    return link


def list_active_links(db: Session, merchant_id: str) -> list[PaymentLink]:
    return (
        db.query(PaymentLink)
        .filter(
            PaymentLink.merchant_id == merchant_id,
            PaymentLink.status == "Active",
            PaymentLink.expires_at > datetime.utcnow(),
        )
        .order_by(PaymentLink.created_at.desc())
        .all()
    )


def _require_off_ramp_details(link: PaymentLink) -> None:
    is_phone = link.off_ramp_type == "PHONE"
    if link.off_ramp_type not in OFF_RAMP_TYPES:
        raise AppException("Invalid off-ramp configuration", status_code=400)
    if not link.off_ramp_value:
        raise AppException("Phone number is missing" if is_phone else "Bank account is missing", status_code=400)
    if not link.off_ramp_provider:
        raise AppException("Mobile network is missing" if is_phone else "Bank is missing", status_code=400)
    if not link.account_name:
        raise AppException("Account name is missing", status_code=400)


def validate_payment_link(db: Session, link_id: str, signature: str | None = None) -> dict:
    link = db.query(PaymentLink).filter(PaymentLink.link_id == link_id).first()
    if not link:
        raise AppException("Payment link not found", status_code=404)
    if link.status != "Active":
        raise AppException("Payment link is not active", status_code=400)
    if link.expires_at and datetime.utcnow() > link.expires_at:
        link.status = "Expired"
        db.commit()
        raise AppException("Payment link has expired", status_code=400)

    if signature is not None:
        query_string = build_query_string(link.amount, link.currency, link.merchant_id, link.description)
        if not verify_hmac_sha256(_hmac_secret(), query_string, signature):
            raise AppException("Invalid payment link signature", status_code=400)

    if link.link_type == "OFF_RAMP":
        _require_off_ramp_details(link)
        return {
            "valid": True,
            "linkType": link.link_type,
            "offRampType": link.off_ramp_type,
            "offRampProvider": link.off_ramp_provider,
        }
    return {"valid": True, "linkType": link.link_type}
