import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from nedapay.core.exceptions import AppException
from nedapay.db.models import InfluencerDisbursement, InfluencerEarning, InfluencerProfile
from nedapay.schemas.disbursement import DisbursementRecordRequest
from nedapay.services.commission_service import EARNING_DECIMALS, get_influencer_analytics

logger = logging.getLogger(__name__)


def _get_profile_or_raise(db: Session, influencer_profile_id: str) -> InfluencerProfile:
    profile = db.query(InfluencerProfile).filter(InfluencerProfile.id == influencer_profile_id).first()
    if not profile:
        raise AppException("Influencer not found", status_code=404)
    return profile


def sync_pending_earnings(db: Session, influencer_profile_id: str) -> dict:
    """Persist derived commissions that have no earning row yet as PENDING."""
    profile = _get_profile_or_raise(db, influencer_profile_id)
    analytics = get_influencer_analytics(db, profile)

    referral_ids = [row["referralId"] for row in analytics["referredUsers"]]
    recorded = {
        row[0]
        for row in db.query(InfluencerEarning.referral_id).filter(InfluencerEarning.referral_id.in_(referral_ids)).all()
    } if referral_ids else set()

    created = []
    for row in analytics["referredUsers"]:
        earning = row["earning"]
        if not earning or row["referralId"] in recorded:
            continue
        created.append(
            InfluencerEarning(
                influencer_profile_id=profile.id,
                referral_id=row["referralId"],
                source_tx_id=earning["sourceTxId"],
                amount=str(earning["amount"]),
                currency=earning["currency"],
                status="PENDING",
            )
        )
    if created:
        db.add_all(created)
        db.commit()
        logger.info("Recorded %s pending earnings for influencer %s", len(created), profile.id)
    return {"created": len(created), "earningIds": [row.id for row in created]}


def list_pending_earnings(db: Session, influencer_profile_id: str) -> dict:
    rows = (
        db.query(InfluencerEarning)
        .filter(
            InfluencerEarning.influencer_profile_id == influencer_profile_id,
            InfluencerEarning.status == "PENDING",
        )
        .order_by(InfluencerEarning.created_at.asc())
        .all()
    )

    grouped: dict[str, dict] = {}
    for row in rows:
        bucket = grouped.setdefault(row.currency, {"currency": row.currency, "amount": 0.0, "earningIds": [], "count": 0})
        bucket["amount"] += float(row.amount)
        bucket["earningIds"].append(row.id)
        bucket["count"] += 1
    for bucket in grouped.values():
        bucket["amount"] = round(bucket["amount"], EARNING_DECIMALS)

    return {"pendingEarnings": list(grouped.values()), "totalEarnings": len(rows)}


def record_disbursement(db: Session, payload: DisbursementRecordRequest) -> InfluencerDisbursement:
    _get_profile_or_raise(db, payload.influencerProfileId)

    disbursement = InfluencerDisbursement(
        influencer_profile_id=payload.influencerProfileId,
        amount=str(payload.amount),
        currency=payload.currency,
        transaction_hash=payload.transactionHash,
        recipient_address=payload.recipientAddress,
        notes=payload.notes or None,
        # The on-chain transfer has already been sent by the admin.
        status="COMPLETED",
    )
    try:
        db.add(disbursement)
        db.flush()
        if payload.earningIds:
            db.execute(
                update(InfluencerEarning)
                .where(
                    InfluencerEarning.id.in_(payload.earningIds),
                    InfluencerEarning.influencer_profile_id == payload.influencerProfileId,
                    InfluencerEarning.status == "PENDING",
                )
                .values(status="DISBURSED", disbursement_id=disbursement.id)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(disbursement)
    return disbursement


def serialize_disbursement(row: InfluencerDisbursement) -> dict:
    return {
        "id": row.id,
        "influencerProfileId": row.influencer_profile_id,
        "amount": row.amount,
        "currency": row.currency,
        "transactionHash": row.transaction_hash,
        "recipientAddress": row.recipient_address,
        "notes": row.notes,
        "status": row.status,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }
