from fastapi import APIRouter, Depends

from nedapay.api.deps import get_kotani_client
from nedapay.schemas.kotani import ExchangeRateRequest
from nedapay.services.kotani_service import KotaniClient

router = APIRouter()


@router.post("/exchange-rate")
def kotani_exchange_rate(
    payload: ExchangeRateRequest,
    client: KotaniClient = Depends(get_kotani_client),
):
    return {"data": client.exchange_rate(payload.fromCurrency, payload.toCurrency, payload.amount)}


@router.get("/status/{transaction_id}")
def kotani_status(
    transaction_id: str,
    client: KotaniClient = Depends(get_kotani_client),
):
    return {"data": client.transaction_status(transaction_id)}
