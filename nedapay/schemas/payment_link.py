from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

WALLET_PATTERN = r"^0x[a-fA-F0-9]{40}$"
OFF_RAMP_TYPES = {"PHONE", "BANK_ACCOUNT"}


class PaymentLinkCreate(BaseModel):
    merchantId: str = Field(pattern=WALLET_PATTERN)
    amount: float = Field(gt=0, allow_inf_nan=False)
    currency: str = Field(pattern=r"^[A-Z]{3,10}$")
    description: str | None = Field(default=None, max_length=1000)
    status: str
    expiresAt: datetime
    linkId: str = Field(min_length=1, max_length=64)
    linkType: Literal["NORMAL", "OFF_RAMP"] = "NORMAL"
    offRampType: str | None = None
    offRampValue: str | None = None
    offRampProvider: str | None = None
    accountName: str | None = None

    @field_validator("status")
    @classmethod
    def _active_only(cls, value: str) -> str:
        if value != "Active":
            raise ValueError("Invalid status")
        return value

    @field_validator("expiresAt")
    @classmethod
    def _in_future(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value <= datetime.now(timezone.utc):
            raise ValueError("Invalid expiration date")
        return value

    @model_validator(mode="after")
    def _off_ramp_type(self):
        if self.linkType == "OFF_RAMP" and self.offRampType not in OFF_RAMP_TYPES:
            raise ValueError("Invalid off-ramp configuration")
        return self

    @property
    def expires_at_naive(self) -> datetime:
        return self.expiresAt.astimezone(timezone.utc).replace(tzinfo=None)
