from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from nedapay.db.session import get_db
from nedapay.services.paycrest_service import handle_paycrest_webhook

router = APIRouter()


@router.post("/webhook")
async def paycrest_webhook(
    request: Request,
    x_paycrest_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    raw = await request.body()
    data = handle_paycrest_webhook(db=db, raw_body=raw, signature=x_paycrest_signature)
    return {"message": "Webhook received", "data": data}
