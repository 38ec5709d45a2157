from fastapi import APIRouter
from waveorder.api.v1 import analytics, cx, stripe_sync

api_router = APIRouter()

api_router.include_router(stripe_sync.router, prefix="/superadmin", tags=["stripe-sync"])
api_router.include_router(cx.router, prefix="/superadmin", tags=["cx-analytics"])
api_router.include_router(analytics.router, tags=["analytics"])
