from nedapay.db.models.disbursement import InfluencerDisbursement, InfluencerEarning
from nedapay.db.models.offramp import TERMINAL_STATUSES, OffRampStatus, OffRampTransaction, parse_amount
from nedapay.db.models.payment_link import PaymentLink
from nedapay.db.models.referral import InfluencerProfile, Referral, ReferralCodeCounter
from nedapay.db.models.user import User

__all__ = [
    "InfluencerDisbursement",
    "InfluencerEarning",
    "InfluencerProfile",
    "OffRampStatus",
    "OffRampTransaction",
    "PaymentLink",
    "Referral",
    "ReferralCodeCounter",
    "TERMINAL_STATUSES",
    "User",
    "parse_amount",
]
