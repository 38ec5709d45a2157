# waveorder/api/v1/stripe_sync.py
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from waveorder.api.dependencies import Principal, get_stripe_client, require_superadmin
from waveorder.db.database import get_db
from waveorder.schemas.billing_sync import (
    GlobalFixRequest,
    GlobalFixResult,
    GlobalSyncSummary,
    SyncAnalysis,
    SyncFixResult,
)
from waveorder.services.billing_sync import BillingSyncService
from waveorder.services.stripe_client import StripeClient

router = APIRouter()


def get_billing_sync_service(
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> BillingSyncService:
    return BillingSyncService(db, stripe_client)


@router.get("/businesses/{business_id}/stripe-sync", response_model=SyncAnalysis)
async def analyze_business_sync(
    business_id: str,
    admin: Principal = Depends(require_superadmin),
    service: BillingSyncService = Depends(get_billing_sync_service),
):
    """Compare Stripe subscription state with the local billing records"""
    return await service.analyze(business_id)


@router.post("/businesses/{business_id}/stripe-sync", response_model=SyncFixResult)
async def fix_business_sync(
    business_id: str,
    admin: Principal = Depends(require_superadmin),
    service: BillingSyncService = Depends(get_billing_sync_service),
):
    """Apply corrective writes for every detected sync issue"""
    return await service.fix(business_id, triggered_by=admin.email or admin.user_id)


@router.get("/stripe-sync", response_model=GlobalSyncSummary)
async def analyze_all_sync(
    admin: Principal = Depends(require_superadmin),
    service: BillingSyncService = Depends(get_billing_sync_service),
):
    """Sync overview across all active businesses"""
    return await service.analyze_all()


@router.post("/stripe-sync", response_model=GlobalFixResult)
async def fix_all_sync(
    payload: Optional[GlobalFixRequest] = Body(default=None),
    admin: Principal = Depends(require_superadmin),
    service: BillingSyncService = Depends(get_billing_sync_service),
):
    """Fix every active business with a Stripe customer, or only the given ids"""
    business_ids = payload.business_ids if payload else None
    return await service.fix_all(business_ids, triggered_by=admin.email or admin.user_id)
