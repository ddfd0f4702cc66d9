# payout_service/api/v1/api.py

from fastapi import APIRouter
from payout_service.api.v1.endpoints import admin_payouts, health

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(admin_payouts.router, prefix="/admin/payouts", tags=["admin-payouts"])
