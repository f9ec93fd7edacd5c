from fastapi import APIRouter

from nedapay.api.routes import admin, health, kotani, offramp, payment_links, paycrest, referral, users

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(referral.router, prefix="/referral", tags=["referral"])
api_router.include_router(paycrest.router, prefix="/paycrest", tags=["paycrest"])
api_router.include_router(payment_links.router, prefix="/payment-links", tags=["payment-links"])
api_router.include_router(offramp.router, prefix="/offramp-transactions", tags=["offramp"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(kotani.router, prefix="/kotani", tags=["kotani"])
