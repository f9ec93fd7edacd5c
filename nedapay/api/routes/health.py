from fastapi import APIRouter

from nedapay.core.config import get_settings

router = APIRouter()
settings = get_settings()


def _configured(*values: str) -> bool:
    return all(value.strip() for value in values)


@router.get("/health")
def health():
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "paycrestConfigured": _configured(settings.PAYCREST_CLIENT_SECRET),
        "paymentLinksConfigured": _configured(settings.HMAC_SECRET),
        "kotaniConfigured": _configured(settings.KOTANI_USERNAME, settings.KOTANI_PASSWORD),
        "sumsubConfigured": _configured(settings.SUMSUB_APP_TOKEN, settings.SUMSUB_SECRET_KEY),
        "supabaseConfigured": _configured(settings.SUPABASE_URL, settings.SUPABASE_KEY),
    }
