from pydantic import BaseModel, EmailStr, Field

from nedapay.schemas.payment_link import WALLET_PATTERN


class UserSyncRequest(BaseModel):
    wallet: str = Field(pattern=WALLET_PATTERN)
    email: EmailStr | None = None
    name: str | None = Field(default=None, max_length=120)
