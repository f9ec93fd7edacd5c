import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nedapay.api.routes import api_router
from nedapay.core.config import get_settings
from nedapay.core.exceptions import register_exception_handlers
from nedapay.core.logging import setup_logging
from nedapay.db.base import Base
from nedapay.db.session import engine, session_scope
from nedapay.middleware.request_context import RequestContextMiddleware
from nedapay.services.referral_service import ensure_code_counters

settings = get_settings()
setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
app.include_router(api_router, prefix=settings.API_PREFIX)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        ensure_code_counters(db)
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
