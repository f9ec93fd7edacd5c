import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nedapay.db.base import Base


class InfluencerEarning(Base):
    __tablename__ = "influencer_earnings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    influencer_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("influencer_profiles.id"), nullable=False, index=True
    )
    referral_id: Mapped[str] = mapped_column(String(36), ForeignKey("referrals.id"), nullable=False, unique=True)
    source_tx_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING", index=True)
    disbursement_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("influencer_disbursements.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class InfluencerDisbursement(Base):
    __tablename__ = "influencer_disbursements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    influencer_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("influencer_profiles.id"), nullable=False, index=True
    )
    amount: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    recipient_address: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="COMPLETED")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
