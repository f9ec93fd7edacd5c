import hmac
import os
import uuid
from datetime import datetime, timedelta
from hashlib import sha256
from pathlib import Path
from typing import Iterator

import pytest

# Settings are cached on first import, so the environment has to be ready first.
_TEST_ENV = {
    "ENVIRONMENT": "test",
    "DEBUG": "false",
    "DATABASE_URL": "sqlite://",
    "REDIS_URL": "redis://localhost:6399/0",
    "PAYCREST_CLIENT_SECRET": "paycrest-test-secret",
    "HMAC_SECRET": "hmac-test-secret",
    "NEXT_PUBLIC_APP_ACCESS": "admin-test-key",
    "PRIVY_VERIFICATION_KEY": "",
    "APP_BASE_URL": "https://nedapay.test",
}
for _k, _v in _TEST_ENV.items():
    os.environ[_k] = _v

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from nedapay.api.deps import get_rate_limiter  # noqa: E402
from nedapay.db.base import Base  # noqa: E402
from nedapay.db.models import InfluencerProfile, OffRampTransaction, Referral, User  # noqa: E402
from nedapay.db.session import get_db  # noqa: E402
from nedapay.main import app  # noqa: E402
from nedapay.services.rate_limit_service import RateLimiter  # noqa: E402

PAYCREST_SECRET = _TEST_ENV["PAYCREST_CLIENT_SECRET"]
HMAC_SECRET = _TEST_ENV["HMAC_SECRET"]
ADMIN_HEADERS = {"x-admin-access-key": _TEST_ENV["NEXT_PUBLIC_APP_ACCESS"]}


class InMemoryRedis:
    """Just enough of the redis client surface for the rate limiter."""

    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls_ms: dict[str, int] = {}

    def get(self, key):
        value = self.values.get(key)
        return None if value is None else str(value)

    def pipeline(self):
        return _InMemoryPipeline(self)


class _InMemoryPipeline:
    def __init__(self, store: InMemoryRedis):
        self.store = store
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key, None))
        return self

    def pexpire(self, key, ms):
        self.ops.append(("pexpire", key, ms))
        return self

    def execute(self):
        results = []
        for op, key, arg in self.ops:
            if op == "incr":
                self.store.values[key] = self.store.values.get(key, 0) + 1
                results.append(self.store.values[key])
            else:
                self.store.ttls_ms[key] = arg
                results.append(True)
        self.ops = []
        return results


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def client(session_factory, fake_redis) -> Iterator[TestClient]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(fake_redis, max_requests=10, window_seconds=60)
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def privy_token(subject: str) -> str:
    return jwt.encode({"sub": subject, "iss": "privy.io"}, "unused", algorithm="HS256")


def auth_headers(subject: str) -> dict:
    return {"Authorization": f"Bearer {privy_token(subject)}"}


def paycrest_signature(body: bytes, secret: str = PAYCREST_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), msg=body, digestmod=sha256).hexdigest()


def wallet(byte: str) -> str:
    return "0x" + byte * 20


def make_user(db: Session, wallet_address: str | None = None, privy_user_id: str | None = None, **kwargs) -> User:
    user = User(
        privy_user_id=privy_user_id or f"did:privy:{uuid.uuid4().hex[:12]}",
        wallet=wallet_address,
        email=kwargs.pop("email", f"{uuid.uuid4().hex[:8]}@example.com"),
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_influencer(db: Session, user: User, code: str, display_name: str = "Influencer") -> InfluencerProfile:
    profile = InfluencerProfile(user_id=user.id, custom_code=code, display_name=display_name, is_active=True)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_referral(db: Session, code: str, user: User, created_at: datetime | None = None) -> Referral:
    referral = Referral(influencer_code=code, user_id=user.id, created_at=created_at or datetime.utcnow())
    db.add(referral)
    db.commit()
    db.refresh(referral)
    return referral


def make_tx(
    db: Session,
    merchant_id: str,
    amount: str,
    rate: str,
    status: str,
    currency: str = "NGN",
    created_at: datetime | None = None,
    tx_id: str | None = None,
) -> OffRampTransaction:
    tx = OffRampTransaction(
        id=tx_id or f"order-{uuid.uuid4().hex[:10]}",
        merchant_id=merchant_id,
        amount=amount,
        rate=rate,
        currency=currency,
        status=status,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx


@pytest.fixture
def abc123_scenario(db: Session) -> dict:
    """Influencer ABC123 with one referred wallet: a pending then a settled off-ramp."""
    influencer_user = make_user(db, wallet("bb"), privy_user_id="did:privy:influencer")
    profile = make_influencer(db, influencer_user, "ABC123", display_name="Ada")
    referred = make_user(db, wallet("aa"), privy_user_id="did:privy:referred")
    referral = make_referral(db, "ABC123", referred)

    started = datetime(2025, 1, 10, 9, 0, 0)
    pending = make_tx(db, wallet("aa"), "50", "1500", "pending", created_at=started, tx_id="order-pending")
    settled = make_tx(
        db, wallet("aa"), "100", "1500", "settled", created_at=started + timedelta(hours=1), tx_id="order-settled"
    )
    return {
        "profile": profile,
        "influencer_user": influencer_user,
        "referred": referred,
        "referral": referral,
        "pending": pending,
        "settled": settled,
    }
