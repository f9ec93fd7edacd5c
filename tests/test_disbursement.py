import pytest

from conftest import ADMIN_HEADERS, make_referral, make_tx, make_user, wallet
from nedapay.db.models import InfluencerDisbursement, InfluencerEarning


def _sync(client, profile_id):
    return client.post(
        "/api/admin/disbursement/earnings/sync",
        params={"influencerProfileId": profile_id},
        headers=ADMIN_HEADERS,
    )


def test_admin_routes_require_key(client, abc123_scenario):
    profile_id = abc123_scenario["profile"].id
    resp = client.get("/api/admin/disbursement/earnings", params={"influencerProfileId": profile_id})
    assert resp.status_code == 401


def test_sync_records_each_earning_once(client, db, abc123_scenario):
    profile_id = abc123_scenario["profile"].id

    first = _sync(client, profile_id)
    assert first.status_code == 200
    assert first.json()["data"]["created"] == 1
    assert _sync(client, profile_id).json()["data"]["created"] == 0

    earning = db.query(InfluencerEarning).one()
    assert earning.status == "PENDING"
    assert earning.source_tx_id == "order-settled"
    assert float(earning.amount) == pytest.approx(15000)


def test_pending_earnings_are_grouped_by_currency(client, db, abc123_scenario):
    profile_id = abc123_scenario["profile"].id
    extra = make_user(db, wallet("c1"))
    make_referral(db, "ABC123", extra)
    make_tx(db, wallet("c1"), "20", "130", "settled", currency="KES")
    _sync(client, profile_id)

    resp = client.get(
        "/api/admin/disbursement/earnings",
        params={"influencerProfileId": profile_id},
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalEarnings"] == 2
    buckets = {row["currency"]: row for row in data["pendingEarnings"]}
    assert buckets["NGN"]["amount"] == pytest.approx(15000)
    assert buckets["KES"]["amount"] == pytest.approx(260)
    assert buckets["KES"]["count"] == 1


def test_record_marks_earnings_disbursed(client, db, abc123_scenario):
    profile_id = abc123_scenario["profile"].id
    earning_ids = _sync(client, profile_id).json()["data"]["earningIds"]

    resp = client.post(
        "/api/admin/disbursement/record",
        json={
            "influencerProfileId": profile_id,
            "amount": 15000,
            "currency": "NGN",
            "transactionHash": "0xabc",
            "recipientAddress": wallet("bb"),
            "earningIds": earning_ids,
        },
        headers=ADMIN_HEADERS,
    )

    assert resp.status_code == 200
    body = resp.json()["data"]
    assert body["success"] is True
    assert body["disbursement"]["status"] == "COMPLETED"

    db.expire_all()
    earning = db.get(InfluencerEarning, earning_ids[0])
    assert earning.status == "DISBURSED"
    assert earning.disbursement_id == body["disbursement"]["id"]
    assert db.query(InfluencerDisbursement).count() == 1

    pending = client.get(
        "/api/admin/disbursement/earnings",
        params={"influencerProfileId": profile_id},
        headers=ADMIN_HEADERS,
    )
    assert pending.json()["data"] == {"pendingEarnings": [], "totalEarnings": 0}


def test_record_for_unknown_influencer(client):
    resp = client.post(
        "/api/admin/disbursement/record",
        json={
            "influencerProfileId": "missing",
            "amount": 1,
            "currency": "NGN",
            "transactionHash": "0xabc",
            "recipientAddress": wallet("bb"),
        },
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 404


def test_pending_totals_are_rounded(client, db, abc123_scenario):
    profile = abc123_scenario["profile"]
    for byte, amount in (("e1", "0.1"), ("e2", "0.2")):
        referral = make_referral(db, "ABC123", make_user(db, wallet(byte)))
        db.add(
            InfluencerEarning(
                influencer_profile_id=profile.id,
                referral_id=referral.id,
                source_tx_id=f"order-{byte}",
                amount=amount,
                currency="USDC",
                status="PENDING",
            )
        )
    db.commit()

    resp = client.get(
        "/api/admin/disbursement/earnings",
        params={"influencerProfileId": profile.id},
        headers=ADMIN_HEADERS,
    )

    (bucket,) = resp.json()["data"]["pendingEarnings"]
    assert bucket["currency"] == "USDC"
    assert bucket["amount"] == 0.3
    assert bucket["count"] == 2
