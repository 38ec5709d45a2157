# waveorder/api/v1/cx.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.api.dependencies import Principal, get_stripe_client, require_superadmin
from waveorder.db.database import get_db
from waveorder.schemas.cx import CXReport
from waveorder.services.cx_analytics import CXAnalyticsService
from waveorder.services.stripe_client import StripeClient

router = APIRouter()


@router.get("/analytics/cx", response_model=CXReport)
async def get_cx_analytics(
    time_range: str = Query("30d", alias="range"),
    admin: Principal = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """NPS, CSAT, CES, churn, CLV, support and at-risk metrics across all businesses"""
    return await CXAnalyticsService(db, stripe_client).build_report(time_range)
