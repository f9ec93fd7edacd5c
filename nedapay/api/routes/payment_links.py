from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from nedapay.api.deps import enforce_rate_limit, request_base_url
from nedapay.db.session import get_db
from nedapay.schemas.payment_link import WALLET_PATTERN, PaymentLinkCreate
from nedapay.services.payment_link_service import (
    create_payment_link,
    list_active_links,
    serialize_link,
    validate_payment_link,
)

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


@router.get("")
def payment_links_list(
    merchantId: str = Query(pattern=WALLET_PATTERN),
    db: Session = Depends(get_db),
):
    return {"data": [serialize_link(row) for row in list_active_links(db, merchantId)]}


@router.post("", status_code=201)
def payment_links_create(
    payload: PaymentLinkCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    link = create_payment_link(db, payload, base_url=request_base_url(request))
    return {"data": serialize_link(link)}


@router.get("/validate/{link_id}")
def payment_links_validate(
    link_id: str,
    sig: str | None = None,
    db: Session = Depends(get_db),
):
    return {"data": validate_payment_link(db, link_id, signature=sig)}
