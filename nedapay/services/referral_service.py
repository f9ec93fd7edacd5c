import random

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException
from nedapay.db.models import InfluencerProfile, OffRampTransaction, Referral, ReferralCodeCounter, User, parse_amount

settings = get_settings()

CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
CODE_BASE = len(CODE_ALPHABET)
CODE_COUNTER_WIDTH = 5


def _to_base32(num: int, width: int) -> str:
    out = ""
    for _ in range(width):
        out = CODE_ALPHABET[num % CODE_BASE] + out
        num //= CODE_BASE
    return out


def _checksum(value: str) -> str:
    return CODE_ALPHABET[sum(CODE_ALPHABET.index(ch) for ch in value) % CODE_BASE]


def encode_referral_code(shard: str, counter: int) -> str:
    partial = shard + _to_base32(counter, CODE_COUNTER_WIDTH)
    return partial + _checksum(partial)


def ensure_code_counters(db: Session) -> None:
    existing = {row[0] for row in db.query(ReferralCodeCounter.shard).all()}
    missing = [shard for shard in CODE_ALPHABET if shard not in existing]
    if not missing:
        return
    db.add_all([ReferralCodeCounter(shard=shard, next_val=0) for shard in missing])
    try:
        db.commit()
    except IntegrityError:
        # Another worker seeded the shards first.
        db.rollback()


def _bump_shard_counter(db: Session, shard: str) -> int:
    db.execute(
        update(ReferralCodeCounter)
        .where(ReferralCodeCounter.shard == shard)
        .values(next_val=ReferralCodeCounter.next_val + 1)
    )
    return db.query(ReferralCodeCounter.next_val).filter(ReferralCodeCounter.shard == shard).scalar()


def generate_referral_code(db: Session) -> str:
    """Allocate a new 7 character influencer code.

    A random shard character prefixes a base32 counter kept per shard in the
    database, followed by a checksum character. Collisions with an existing
    profile code are skipped.
    """
    ensure_code_counters(db)
    while True:
        shard = random.choice(CODE_ALPHABET)
        code = encode_referral_code(shard, _bump_shard_counter(db, shard))
        taken = db.query(InfluencerProfile.id).filter(InfluencerProfile.custom_code == code).first()
        if not taken:
            return code


def invite_link(code: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/invite/{code}"


def get_influencer_by_code(db: Session, code: str) -> InfluencerProfile | None:
    return db.query(InfluencerProfile).filter(InfluencerProfile.custom_code == code).first()


def get_influencer_for_user(db: Session, user_id: str) -> InfluencerProfile | None:
    return db.query(InfluencerProfile).filter(InfluencerProfile.user_id == user_id).first()


def list_referrals_for_code(db: Session, code: str) -> list[Referral]:
    return (
        db.query(Referral)
        .filter(Referral.influencer_code == code)
        .order_by(Referral.created_at.asc(), Referral.id.asc())
        .all()
    )


def wallets_for_code(db: Session, code: str) -> list[str]:
    rows = (
        db.query(User.wallet)
        .join(Referral, Referral.user_id == User.id)
        .filter(Referral.influencer_code == code, User.wallet.is_not(None))
        .all()
    )
    return [row[0] for row in rows]


def code_for_wallet(db: Session, wallet: str) -> str | None:
    row = (
        db.query(Referral.influencer_code)
        .join(User, Referral.user_id == User.id)
        .filter(User.wallet == wallet)
        .first()
    )
    return row[0] if row else None


def wallet_to_code_map(db: Session, codes: list[str] | None = None) -> dict[str, str]:
    q = db.query(User.wallet, Referral.influencer_code).join(Referral, Referral.user_id == User.id)
    q = q.filter(User.wallet.is_not(None))
    if codes is not None:
        q = q.filter(Referral.influencer_code.in_(codes))
    return {wallet: code for wallet, code in q.all()}


def _settled_volume_by_wallet(db: Session, wallets: list[str]) -> dict[str, float]:
    volume: dict[str, float] = {}
    if not wallets:
        return volume
    rows = db.query(OffRampTransaction).filter(OffRampTransaction.merchant_id.in_(wallets)).all()
    for tx in rows:
        if tx.is_settled:
            volume[tx.merchant_id] = volume.get(tx.merchant_id, 0.0) + parse_amount(tx.amount)
    return volume


def get_referral_code_summary(db: Session, user: User) -> dict:
    profile = get_influencer_for_user(db, user.id)
    if not profile or not profile.is_active or not user.is_active:
        raise AppException("Not an active influencer", status_code=403)

    if not profile.custom_code:
        profile.custom_code = generate_referral_code(db)
        db.commit()
        db.refresh(profile)

    referrals = list_referrals_for_code(db, profile.custom_code)
    wallets = [row.user.wallet for row in referrals if row.user and row.user.wallet]
    volume = _settled_volume_by_wallet(db, wallets)
    return {
        "code": profile.custom_code,
        "inviteLink": invite_link(profile.custom_code),
        "invitees": [
            {
                "id": row.id,
                "email": row.user.email if row.user else None,
                "wallet": row.user.wallet if row.user else None,
                # Off-ramped stablecoin amount, which is USD denominated.
                "volumeUsd": round(volume.get(row.user.wallet, 0.0), 8) if row.user and row.user.wallet else 0,
                "createdAt": row.created_at.isoformat() if row.created_at else None,
            }
            for row in referrals
        ],
    }


def get_or_create_referral_code(db: Session, user: User) -> dict:
    profile = get_influencer_for_user(db, user.id)
    if not profile:
        profile = InfluencerProfile(
            user_id=user.id,
            display_name=user.name or f"User-{user.privy_user_id[:6]}",
            custom_code=generate_referral_code(db),
            is_active=True,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
    elif not profile.custom_code:
        profile.custom_code = generate_referral_code(db)
        db.commit()
        db.refresh(profile)

    return {
        "code": profile.custom_code,
        "inviteLink": invite_link(profile.custom_code),
        "invitees": [],
    }


def claim_referral(db: Session, user: User, code: str) -> dict:
    profile = (
        db.query(InfluencerProfile)
        .join(User, InfluencerProfile.user_id == User.id)
        .filter(
            InfluencerProfile.custom_code == code,
            InfluencerProfile.is_active == True,  # noqa: E712
            User.is_active == True,  # noqa: E712
        )
        .first()
    )
    if not profile:
        raise AppException("Invalid code", status_code=400)
    if profile.user_id == user.id:
        raise AppException("You cannot use your own referral code", status_code=400)

    existing = db.query(Referral).filter(Referral.user_id == user.id).first()
    if existing:
        return {"referralId": existing.id, "influencerCode": existing.influencer_code, "created": False}

    referral = Referral(
        influencer_code=code,
        user_id=user.id,
        influencer_name=profile.display_name,
    )
    db.add(referral)
    try:
        db.flush()
        profile.total_referrals = int(profile.total_referrals or 0) + 1
        db.commit()
    except IntegrityError:
        # A concurrent claim for the same user won.
        db.rollback()
        existing = db.query(Referral).filter(Referral.user_id == user.id).first()
        return {"referralId": existing.id, "influencerCode": existing.influencer_code, "created": False}

    db.refresh(referral)
    return {"referralId": referral.id, "influencerCode": referral.influencer_code, "created": True}
