# waveorder/schemas/cx.py
from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime


class NpsTrendPoint(BaseModel):
    month: str
    month_label: str
    nps: Optional[int] = None
    responses: int = 0


class NpsMetrics(BaseModel):
    score: Optional[int] = None
    promoters: int = 0
    passives: int = 0
    detractors: int = 0
    total_responses: int = 0
    trend: List[NpsTrendPoint] = []


class TypeScore(BaseModel):
    score: float
    count: int


class CsatTrendPoint(BaseModel):
    month: str
    month_label: str
    csat: Optional[float] = None
    responses: int = 0


class CsatMetrics(BaseModel):
    score: Optional[float] = None
    total_responses: int = 0
    by_type: Dict[str, TypeScore] = {}
    trend: List[CsatTrendPoint] = []


class CesMetrics(BaseModel):
    score: Optional[float] = None
    avg_onboarding_time_hours: Optional[float] = None
    avg_time_to_first_order_days: Optional[float] = None
    businesses_analyzed: int = 0


class ChurnTrendPoint(BaseModel):
    month: str
    month_label: str
    churn_rate: float
    churned: int
    total_at_start: int


class ChurnMetrics(BaseModel):
    rate: float = 0.0
    churned_this_period: int = 0
    active_businesses: int = 0
    revenue_churn_mrr: float = 0.0
    trend: List[ChurnTrendPoint] = []
    reasons: Dict[str, int] = {}
    data_source: str


class PlanClv(BaseModel):
    avg_clv: float
    count: int


class ClvMetrics(BaseModel):
    average: Optional[float] = None
    by_plan: Dict[str, PlanClv] = {}
    businesses_analyzed: int = 0


class SupportTrendPoint(BaseModel):
    month: str
    month_label: str
    tickets: int
    resolved: int
    fcr: Optional[float] = None
    avg_frt: Optional[float] = None


class SupportMetrics(BaseModel):
    avg_first_response_time_hours: Optional[float] = None
    first_contact_resolution_rate: Optional[float] = None
    total_tickets: int = 0
    resolved_tickets: int = 0
    trend: List[SupportTrendPoint] = []
    by_type: Dict[str, int] = {}


class AtRiskBusiness(BaseModel):
    id: str
    name: str
    risk_score: int
    reasons: List[str]
    last_order_date: Optional[datetime] = None
    support_tickets_count: int = 0
    last_feedback_rating: Optional[int] = None


class AtRiskMetrics(BaseModel):
    count: int
    businesses: List[AtRiskBusiness]


class CXReport(BaseModel):
    range: str
    start_date: datetime
    generated_at: datetime
    nps: NpsMetrics
    csat: CsatMetrics
    ces: CesMetrics
    churn: ChurnMetrics
    clv: ClvMetrics
    support: SupportMetrics
    at_risk: AtRiskMetrics
