# waveorder/schemas/billing_sync.py
from enum import Enum
from pydantic import BaseModel
from typing import Any, List, Optional
from datetime import datetime


class SyncStatus(str, Enum):
    IN_SYNC = "in_sync"
    ISSUES_FOUND = "issues_found"
    NO_STRIPE_CUSTOMER = "no_stripe_customer"


class IssueType(str, Enum):
    MISSING_SUBSCRIPTION = "missing_subscription"
    PLAN_MISMATCH = "plan_mismatch"
    STATUS_MISMATCH = "status_mismatch"
    PRICE_ID_MISMATCH = "price_id_mismatch"
    DUPLICATE_SUBS = "duplicate_subs"
    NO_STRIPE_CUSTOMER = "no_stripe_customer"
    ORPHANED_DB_RECORD = "orphaned_db_record"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class SyncIssue(BaseModel):
    type: IssueType
    severity: IssueSeverity
    description: str
    stripe_data: Optional[Any] = None
    db_data: Optional[Any] = None
    fix: Optional[str] = None


class StripeSubscriptionView(BaseModel):
    id: str
    subscription_item_id: Optional[str] = None
    status: str
    plan: str
    display_plan: str
    price_id: str
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    created: datetime


class DbSubscriptionView(BaseModel):
    id: str
    stripe_id: str
    status: str
    plan: str
    price_id: str

    class Config:
        from_attributes = True


class LastPayment(BaseModel):
    amount: float
    currency: str
    date: datetime


class SyncAnalysis(BaseModel):
    business_id: str
    business_name: str
    owner_email: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    status: SyncStatus = SyncStatus.IN_SYNC
    issues: List[SyncIssue] = []
    stripe_subscriptions: List[StripeSubscriptionView] = []
    db_subscription: Optional[DbSubscriptionView] = None
    db_plan: str
    db_status: str
    has_payment_method: bool = False
    last_payment: Optional[LastPayment] = None


class SyncFixResult(BaseModel):
    success: bool
    message: str
    fixes_applied: int = 0
    details: List[str] = []


class BusinessSyncSummary(BaseModel):
    business_id: str
    business_name: str
    owner_email: Optional[str] = None
    status: SyncStatus
    issue_count: int = 0
    issues: List[str] = []


class GlobalSyncSummary(BaseModel):
    total_businesses: int
    in_sync: int
    with_issues: int
    no_stripe_customer: int
    businesses: List[BusinessSyncSummary]


class GlobalFixRequest(BaseModel):
    business_ids: Optional[List[str]] = None


class BusinessFixOutcome(BaseModel):
    business_id: str
    business_name: str
    success: bool
    fixes: int
    details: List[str] = []


class GlobalFixResult(BaseModel):
    success: bool
    total_businesses: int
    total_fixed: int
    total_failed: int
    results: List[BusinessFixOutcome]
