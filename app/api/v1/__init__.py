from fastapi import APIRouter

from app.api.v1.routers import health, kyc_kyb_verification, loan_applications

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loan_applications.router)
api_router.include_router(kyc_kyb_verification.router)

__all__ = ["api_router"]
