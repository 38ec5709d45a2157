# waveorder/api/v1/analytics.py
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from waveorder.api.dependencies import Principal, require_business_access
from waveorder.db.database import get_db
from waveorder.schemas.analytics import AnalyticsReport
from waveorder.services.analytics import AnalyticsService, normalize_window

router = APIRouter()


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}: {value}"
        )
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@router.get("/businesses/{business_id}/analytics", response_model=AnalyticsReport)
async def get_business_analytics(
    business_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    principal: Principal = Depends(require_business_access),
    db: AsyncSession = Depends(get_db),
):
    """Traffic, conversion, product and customer analytics for a date window"""
    start, end = normalize_window(
        _parse_date(start_date, "startDate"),
        _parse_date(end_date, "endDate"),
    )
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate must not be after endDate"
        )

    return await AnalyticsService(db).build_report(business_id, start, end)
