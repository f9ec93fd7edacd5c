import math

from sqlalchemy.orm import Session

from nedapay.core.exceptions import AppException
from nedapay.db.models import OffRampTransaction


def serialize_offramp(tx: OffRampTransaction) -> dict:
    return {
        "id": tx.id,
        "merchantId": tx.merchant_id,
        "amount": tx.amount,
        "rate": tx.rate,
        "currency": tx.currency,
        "status": tx.status,
        "txHash": tx.tx_hash,
        "createdAt": tx.created_at.isoformat() if tx.created_at else None,
        "updatedAt": tx.updated_at.isoformat() if tx.updated_at else None,
    }


def list_offramp_transactions(
    db: Session,
    merchant_id: str | None = None,
    transaction_id: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    q = db.query(OffRampTransaction)
    if merchant_id:
        q = q.filter(OffRampTransaction.merchant_id == merchant_id.lower())
    if transaction_id:
        q = q.filter(OffRampTransaction.id == transaction_id)
    if status:
        q = q.filter(OffRampTransaction.status == status)

    total_count = q.count()
    rows = (
        q.order_by(OffRampTransaction.created_at.desc(), OffRampTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total_count / limit) if total_count else 0
    return {
        "transactions": [serialize_offramp(row) for row in rows],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalCount": total_count,
            "hasNextPage": page < total_pages,
            "hasPreviousPage": page > 1,
        },
    }


def get_offramp_transaction(db: Session, transaction_id: str) -> OffRampTransaction:
    row = db.get(OffRampTransaction, transaction_id)
    if not row:
        raise AppException("Transaction not found", status_code=404)
    return row
