from pydantic import BaseModel, Field

from nedapay.schemas.payment_link import WALLET_PATTERN


class DisbursementRecordRequest(BaseModel):
    influencerProfileId: str
    amount: float = Field(gt=0, allow_inf_nan=False)
    currency: str = Field(min_length=1, max_length=10)
    transactionHash: str = Field(min_length=1, max_length=128)
    recipientAddress: str = Field(pattern=WALLET_PATTERN)
    notes: str | None = None
    earningIds: list[str] = []
