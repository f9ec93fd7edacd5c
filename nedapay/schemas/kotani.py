from pydantic import BaseModel, Field


class ExchangeRateRequest(BaseModel):
    fromCurrency: str
    toCurrency: str
    amount: float = Field(gt=0, allow_inf_nan=False)
