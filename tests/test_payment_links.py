import hmac
from datetime import datetime, timedelta, timezone
from hashlib import sha256

from conftest import HMAC_SECRET, wallet
from nedapay.db.models import PaymentLink
from nedapay.services.payment_link_service import build_query_string, format_amount

MERCHANT = "0x" + "Ab" * 20


def _payload(**overrides) -> dict:
    payload = {
        "merchantId": MERCHANT,
        "amount": "25.5",
        "currency": "USDC",
        "description": "Invoice #1",
        "status": "Active",
        "expiresAt": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
        "linkId": "link-1",
    }
    payload.update(overrides)
    return payload


def _sign(message: str) -> str:
    return hmac.new(HMAC_SECRET.encode("utf-8"), msg=message.encode("utf-8"), digestmod=sha256).hexdigest()


def test_format_amount_matches_browser_number_formatting():
    assert format_amount(100.0) == "100"
    assert format_amount(25.5) == "25.5"
    assert format_amount(0.1) == "0.1"


def test_format_amount_uses_exponent_form_at_the_same_thresholds_as_javascript():
    assert format_amount(1e20) == "100000000000000000000"
    assert format_amount(1e21) == "1e+21"
    assert format_amount(1.5e22) == "1.5e+22"
    assert format_amount(0.000001) == "0.000001"
    assert format_amount(1e-7) == "1e-7"
    assert format_amount(1.23e-18) == "1.23e-18"
    assert format_amount(123.456) == "123.456"


def test_query_string_encodes_description_like_uri_component():
    qs = build_query_string(10, "USDC", MERCHANT, "Tea & cake (x2)!")
    assert qs == f"amount=10&currency=USDC&to={MERCHANT}&description=Tea%20%26%20cake%20(x2)!"


def test_create_signs_the_query_string(client, db):
    resp = client.post("/api/payment-links", json=_payload())

    assert resp.status_code == 201
    data = resp.json()["data"]
    qs = f"amount=25.5&currency=USDC&to={MERCHANT}&description=Invoice%20%231"
    assert data["signature"] == _sign(qs)
    assert data["url"] == f"http://testserver/pay/link-1?{qs}&sig={_sign(qs)}"
    assert db.query(PaymentLink).filter(PaymentLink.link_id == "link-1").count() == 1


def test_create_rejects_malformed_input(client):
    for overrides in (
        {"currency": "usd"},
        {"merchantId": "0x123"},
        {"amount": "-5"},
        {"status": "Paused"},
        {"description": "x" * 1001},
        {"expiresAt": (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()},
    ):
        resp = client.post("/api/payment-links", json=_payload(**overrides))
        assert resp.status_code == 400, overrides
        assert resp.json()["code"] == "VALIDATION_ERROR"


def test_duplicate_link_id_conflicts(client):
    assert client.post("/api/payment-links", json=_payload()).status_code == 201
    assert client.post("/api/payment-links", json=_payload()).status_code == 409


def test_list_returns_only_active_unexpired_links(client, db):
    client.post("/api/payment-links", json=_payload(linkId="fresh"))
    db.add(
        PaymentLink(
            link_id="stale",
            merchant_id=MERCHANT,
            url="http://testserver/pay/stale",
            amount=1,
            currency="USDC",
            status="Active",
            expires_at=datetime.utcnow() - timedelta(days=1),
            signature="0" * 64,
        )
    )
    db.commit()

    resp = client.get("/api/payment-links", params={"merchantId": MERCHANT})

    assert resp.status_code == 200
    assert [row["linkId"] for row in resp.json()["data"]] == ["fresh"]


def test_rate_limit_is_per_client_ip(client, fake_redis):
    headers = {"x-forwarded-for": "203.0.113.7"}
    for _ in range(10):
        assert client.get("/api/payment-links", params={"merchantId": MERCHANT}, headers=headers).status_code == 200

    blocked = client.get("/api/payment-links", params={"merchantId": MERCHANT}, headers=headers)
    assert blocked.status_code == 429
    assert blocked.json()["message"] == "Rate limit exceeded"
    assert fake_redis.ttls_ms["rate_limit:203.0.113.7"] == 60_000

    other = client.get("/api/payment-links", params={"merchantId": MERCHANT}, headers={"x-forwarded-for": "198.51.100.1"})
    assert other.status_code == 200


def test_validate_checks_signature(client):
    created = client.post("/api/payment-links", json=_payload()).json()["data"]

    ok = client.get("/api/payment-links/validate/link-1", params={"sig": created["signature"]})
    assert ok.status_code == 200
    assert ok.json()["data"] == {"valid": True, "linkType": "NORMAL"}

    bad = client.get("/api/payment-links/validate/link-1", params={"sig": "deadbeef"})
    assert bad.status_code == 400


def test_validate_marks_expired_links(client, db):
    db.add(
        PaymentLink(
            link_id="old",
            merchant_id=MERCHANT,
            url="http://testserver/pay/old",
            amount=1,
            currency="USDC",
            status="Active",
            expires_at=datetime.utcnow() - timedelta(hours=1),
            signature="0" * 64,
        )
    )
    db.commit()

    resp = client.get("/api/payment-links/validate/old")

    assert resp.status_code == 400
    assert resp.json()["message"] == "Payment link has expired"
    db.expire_all()
    assert db.query(PaymentLink).filter(PaymentLink.link_id == "old").one().status == "Expired"


def test_validate_unknown_link(client):
    assert client.get("/api/payment-links/validate/missing").status_code == 404


def test_off_ramp_link_requires_account_details(client):
    created = client.post(
        "/api/payment-links",
        json=_payload(
            linkId="offramp-1",
            linkType="OFF_RAMP",
            offRampType="BANK_ACCOUNT",
            offRampValue="0123456789",
            offRampProvider="Access Bank",
        ),
    )
    assert created.status_code == 201

    resp = client.get("/api/payment-links/validate/offramp-1")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Account name is missing"


def test_off_ramp_link_validates(client):
    client.post(
        "/api/payment-links",
        json=_payload(
            linkId="offramp-2",
            linkType="OFF_RAMP",
            offRampType="PHONE",
            offRampValue="+254700000000",
            offRampProvider="Safaricom",
            accountName="Jane Doe",
        ),
    )

    resp = client.get("/api/payment-links/validate/offramp-2")

    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "valid": True,
        "linkType": "OFF_RAMP",
        "offRampType": "PHONE",
        "offRampProvider": "Safaricom",
    }


def test_rate_limiter_lets_requests_through_when_redis_is_down(client):
    from redis.exceptions import ConnectionError as RedisConnectionError

    from nedapay.api.deps import get_rate_limiter
    from nedapay.main import app
    from nedapay.services.rate_limit_service import RateLimiter

    class DownRedis:
        def get(self, key):
            raise RedisConnectionError("down")

    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(DownRedis(), max_requests=1, window_seconds=60)
    for _ in range(3):
        assert client.get("/api/payment-links", params={"merchantId": wallet("ab")}).status_code == 200
