import math
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from nedapay.db.base import Base


class OffRampStatus(str, Enum):
    pending = "pending"
    settled = "settled"
    expired = "expired"
    refunded = "refunded"


TERMINAL_STATUSES = {OffRampStatus.settled.value, OffRampStatus.expired.value, OffRampStatus.refunded.value}


def parse_amount(value) -> float:
    """Lenient decimal parse of provider amounts: blanks and garbage count as 0."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


class OffRampTransaction(Base):
    __tablename__ = "offramp_transactions"

    # Payment order id issued by the provider.
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rate: Mapped[str | None] = mapped_column(String(64), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OffRampStatus.pending.value, index=True)
    tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_settled(self) -> bool:
        return (self.status or "").lower() == OffRampStatus.settled.value

    @property
    def local_amount(self) -> float:
        # Stablecoin amount converted at the order rate, in the payout currency.
        return parse_amount(self.amount) * parse_amount(self.rate)
