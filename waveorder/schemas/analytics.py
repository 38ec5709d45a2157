# waveorder/schemas/analytics.py
from pydantic import BaseModel
from typing import List
from datetime import datetime


class AnalyticsOverview(BaseModel):
    total_views: int
    unique_visitors: int
    total_orders: int
    completed_orders: int
    revenue: float
    conversion_rate: float
    avg_order_value: float
    bounce_rate: float
    views_growth: float
    revenue_growth: float


class TrafficPoint(BaseModel):
    date: str
    visitors: int
    orders: int


class DimensionStat(BaseModel):
    """Visitors for one source/medium/campaign/placement value, with estimated orders"""
    key: str
    visitors: int
    estimated_orders: int
    conversion_rate: float
    percentage: float


class TrafficAnalytics(BaseModel):
    trends: List[TrafficPoint]
    sources: List[DimensionStat]
    mediums: List[DimensionStat]
    campaigns: List[DimensionStat]
    placements: List[DimensionStat]


class ProductStat(BaseModel):
    id: str
    name: str
    orders: int
    quantity: int
    revenue: float


class ProductAnalytics(BaseModel):
    top_products: List[ProductStat]
    total_product_views: int


class HourBucket(BaseModel):
    hour: str
    visitors: int = 0
    orders: int = 0
    revenue: float = 0.0


class DayBucket(BaseModel):
    day: str
    visitors: int = 0
    orders: int = 0
    revenue: float = 0.0


class TimeAnalysis(BaseModel):
    hourly: List[HourBucket]
    daily: List[DayBucket]
    peak_hours: List[str]


class CustomerAnalytics(BaseModel):
    total: int
    repeat: int
    repeat_rate: float


class StatusCount(BaseModel):
    status: str
    count: int
    percentage: float


class ReportPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class AnalyticsReport(BaseModel):
    overview: AnalyticsOverview
    traffic: TrafficAnalytics
    products: ProductAnalytics
    time_analysis: TimeAnalysis
    customers: CustomerAnalytics
    orders_by_status: List[StatusCount]
    period: ReportPeriod
