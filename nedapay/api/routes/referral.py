from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nedapay.api.deps import get_current_user, require_admin_key
from nedapay.db.models import User
from nedapay.db.session import get_db
from nedapay.schemas.referral import ReferralClaimRequest
from nedapay.services.commission_service import get_analytics_by_code, get_analytics_for_user, get_platform_rollup
from nedapay.services.referral_service import claim_referral, get_or_create_referral_code, get_referral_code_summary

router = APIRouter()


@router.get("/code")
def referral_code(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"data": get_referral_code_summary(db, user)}


@router.post("/code")
def referral_create_code(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"data": get_or_create_referral_code(db, user)}


@router.post("/claim")
def referral_claim(
    payload: ReferralClaimRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"data": claim_referral(db, user, payload.code.strip().upper())}


@router.get("/analytics/influencer")
def referral_analytics_influencer(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"data": get_analytics_for_user(db, user)}


@router.get("/analytics/all")
def referral_analytics_all(
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
):
    return {"data": get_platform_rollup(db)}


@router.get("/analytics/{code}")
def referral_analytics_code(
    code: str,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
):
    return {"data": get_analytics_by_code(db, code)}
