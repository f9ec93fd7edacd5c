"""Referral commission derivation.

Commissions are never stored by this module: every call recomputes them from
the referral rows and the off-ramp transactions of the referred wallets. A
referral earns once, on the earliest settled off-ramp of its wallet, at
``REFERRAL_COMMISSION_RATE`` of ``amount * rate`` in that order's currency.
"""
from collections import defaultdict
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException
from nedapay.db.models import InfluencerProfile, OffRampTransaction, Referral, User, parse_amount
from nedapay.services.referral_service import (
    get_influencer_by_code,
    get_influencer_for_user,
    list_referrals_for_code,
    wallet_to_code_map,
    wallets_for_code,
)

settings = get_settings()
EARNING_DECIMALS = 8
UNKNOWN_CURRENCY = "UNK"
UNKNOWN_STATUS = "UNKNOWN"


def first_settled(transactions: Iterable[OffRampTransaction]) -> OffRampTransaction | None:
    settled = [tx for tx in transactions if tx.is_settled]
    if not settled:
        return None
    return min(settled, key=lambda tx: (tx.created_at or datetime.min, tx.id))


def compute_commission(tx: OffRampTransaction, commission_rate: float | None = None) -> dict:
    if commission_rate is None:
        commission_rate = settings.REFERRAL_COMMISSION_RATE
    amount = commission_rate * parse_amount(tx.amount) * parse_amount(tx.rate)
    return {
        "amount": round(amount, EARNING_DECIMALS),
        "currency": tx.currency or UNKNOWN_CURRENCY,
        "sourceTxId": tx.id,
    }


def sum_by_currency(pairs: Iterable[tuple[str, float]]) -> list[dict]:
    bag: dict[str, float] = {}
    for currency, amount in pairs:
        bag[currency] = bag.get(currency, 0.0) + amount
    return [{"currency": currency, "total": round(total, EARNING_DECIMALS)} for currency, total in bag.items()]


def status_breakdown(transactions: Iterable[OffRampTransaction]) -> list[dict]:
    counts: dict[str, int] = {}
    for tx in transactions:
        key = tx.status or UNKNOWN_STATUS
        counts[key] = counts.get(key, 0) + 1
    return [{"name": name, "value": value} for name, value in counts.items()]


def _serialize_tx(tx: OffRampTransaction) -> dict:
    return {
        "id": tx.id,
        "amount": tx.local_amount,
        "currency": tx.currency or UNKNOWN_CURRENCY,
        "status": tx.status,
        "createdAt": tx.created_at.isoformat() if tx.created_at else None,
    }


def group_by_wallet(transactions: Iterable[OffRampTransaction]) -> dict[str, list[OffRampTransaction]]:
    grouped: dict[str, list[OffRampTransaction]] = defaultdict(list)
    for tx in transactions:
        grouped[tx.merchant_id].append(tx)
    for rows in grouped.values():
        rows.sort(key=lambda tx: (tx.created_at or datetime.min, tx.id))
    return grouped


def _transactions_for_wallets(db: Session, wallets: list[str]) -> list[OffRampTransaction]:
    if not wallets:
        return []
    return (
        db.query(OffRampTransaction)
        .filter(OffRampTransaction.merchant_id.in_(wallets))
        .order_by(OffRampTransaction.created_at.asc(), OffRampTransaction.id.asc())
        .all()
    )


def build_referral_rows(referrals: list[Referral], by_wallet: dict[str, list[OffRampTransaction]]) -> list[dict]:
    rows = []
    for referral in referrals:
        user = referral.user
        wallet = user.wallet if user and user.wallet else ""
        history = by_wallet.get(wallet, []) if wallet else []
        settled = first_settled(history)
        rows.append(
            {
                "referralId": referral.id,
                "createdAt": referral.created_at.isoformat() if referral.created_at else None,
                "user": {
                    "id": user.id if user else None,
                    "email": (user.email if user else None) or "",
                    "wallet": wallet,
                    "name": user.name if user else None,
                },
                "transactions": [_serialize_tx(tx) for tx in history],
                "firstSettledTx": _serialize_tx(settled) if settled else None,
                "earning": compute_commission(settled) if settled else None,
            }
        )
    return rows


def _serialize_influencer(profile: InfluencerProfile) -> dict:
    user: User | None = profile.user
    return {
        "id": profile.id,
        "code": profile.custom_code,
        "displayName": profile.display_name,
        "email": (user.email if user else None) or "",
        "wallet": (user.wallet if user else None) or "",
        "isActive": bool(profile.is_active),
    }


def get_influencer_analytics(db: Session, profile: InfluencerProfile) -> dict:
    referrals = list_referrals_for_code(db, profile.custom_code) if profile.custom_code else []
    transactions = _transactions_for_wallets(db, wallets_for_code(db, profile.custom_code)) if referrals else []
    rows = build_referral_rows(referrals, group_by_wallet(transactions))

    earnings = [(row["earning"]["currency"], row["earning"]["amount"]) for row in rows if row["earning"]]
    return {
        "influencer": _serialize_influencer(profile),
        "referralsCount": len(rows),
        "referredUsers": rows,
        "earningsByCurrency": sum_by_currency(earnings),
        "totals": {
            "referrals": len(rows),
            "earnedReferrals": len(earnings),
            "txCount": len(transactions),
            "txVolumeByCurrency": sum_by_currency(
                (tx.currency or UNKNOWN_CURRENCY, tx.local_amount) for tx in transactions
            ),
            "statusBreakdown": status_breakdown(transactions),
        },
    }


def get_analytics_by_code(db: Session, code: str) -> dict:
    profile = get_influencer_by_code(db, code)
    if not profile:
        raise AppException("Influencer not found", status_code=404)
    return get_influencer_analytics(db, profile)


def get_analytics_for_user(db: Session, user: User) -> dict:
    profile = get_influencer_for_user(db, user.id)
    if not profile or not profile.custom_code:
        raise AppException("Influencer not found", status_code=404)
    return get_influencer_analytics(db, profile)


def get_platform_rollup(db: Session) -> dict:
    influencers = db.query(InfluencerProfile).order_by(InfluencerProfile.created_at.asc()).all()
    codes = [row.custom_code for row in influencers if row.custom_code]

    referral_counts: dict[str, int] = defaultdict(int)
    if codes:
        for (code,) in db.query(Referral.influencer_code).filter(Referral.influencer_code.in_(codes)).all():
            referral_counts[code] += 1

    # Off-ramps from wallets nobody referred stay out of the rollup.
    code_by_wallet = wallet_to_code_map(db, codes) if codes else {}
    transactions = _transactions_for_wallets(db, list(code_by_wallet))
    by_wallet = group_by_wallet(transactions)

    tx_by_code: dict[str, list[OffRampTransaction]] = defaultdict(list)
    earnings_by_code: dict[str, list[tuple[str, float]]] = defaultdict(list)
    for wallet, history in by_wallet.items():
        code = code_by_wallet[wallet]
        tx_by_code[code].extend(history)
        settled = first_settled(history)
        if settled:
            earning = compute_commission(settled)
            earnings_by_code[code].append((earning["currency"], earning["amount"]))

    rows = []
    for profile in influencers:
        code = profile.custom_code
        history = tx_by_code.get(code, []) if code else []
        rows.append(
            {
                **_serialize_influencer(profile),
                "referrals": referral_counts.get(code, 0) if code else 0,
                "offrampTx": len(history),
                "volumeByCurrency": sum_by_currency(
                    (tx.currency or UNKNOWN_CURRENCY, tx.local_amount) for tx in history
                ),
                "statusBreakdown": status_breakdown(history),
                "earningsByCurrency": sum_by_currency(earnings_by_code.get(code, [])),
            }
        )

    return {
        "rows": rows,
        "totals": {
            "influencers": len(influencers),
            "totalReferrals": sum(referral_counts.values()),
            "offrampTxCount": len(transactions),
            "offrampVolumeByCurrency": sum_by_currency(
                (tx.currency or UNKNOWN_CURRENCY, tx.local_amount) for tx in transactions
            ),
            "earningsByCurrency": sum_by_currency(
                pair for pairs in earnings_by_code.values() for pair in pairs
            ),
        },
    }
