from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nedapay.api.deps import require_admin_key
from nedapay.db.session import get_db
from nedapay.schemas.disbursement import DisbursementRecordRequest
from nedapay.services.disbursement_service import (
    list_pending_earnings,
    record_disbursement,
    serialize_disbursement,
    sync_pending_earnings,
)

router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.get("/disbursement/earnings")
def admin_pending_earnings(
    influencerProfileId: str = Query(min_length=1),
    db: Session = Depends(get_db),
):
    return {"data": list_pending_earnings(db, influencerProfileId)}


@router.post("/disbursement/earnings/sync")
def admin_sync_earnings(
    influencerProfileId: str = Query(min_length=1),
    db: Session = Depends(get_db),
):
    return {"data": sync_pending_earnings(db, influencerProfileId)}


@router.post("/disbursement/record")
def admin_record_disbursement(
    payload: DisbursementRecordRequest,
    db: Session = Depends(get_db),
):
    row = record_disbursement(db, payload)
    return {"data": {"success": True, "disbursement": serialize_disbursement(row)}}
