from pydantic import BaseModel, Field


class ReferralClaimRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)
