from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nedapay.db.session import get_db
from nedapay.services.offramp_service import get_offramp_transaction, list_offramp_transactions, serialize_offramp

router = APIRouter()


@router.get("")
def offramp_list(
    merchantId: str | None = None,
    transactionId: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {
        "data": list_offramp_transactions(
            db,
            merchant_id=merchantId,
            transaction_id=transactionId,
            status=status,
            page=page,
            limit=limit,
        )
    }


@router.get("/{transaction_id}")
def offramp_detail(
    transaction_id: str,
    db: Session = Depends(get_db),
):
    return {"data": serialize_offramp(get_offramp_transaction(db, transaction_id))}
