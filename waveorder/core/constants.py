# waveorder/core/constants.py
from enum import Enum
from typing import Dict, Any, Optional

from waveorder.core.config import settings


class PlanId(str, Enum):
    """Current subscription plans. STARTER is the default tier.

    Historical rows may still carry the retired ``FREE`` value; migration
    002_fold_free_plan_into_starter rewrites them, so it is not a member here.
    """
    STARTER = "STARTER"
    PRO = "PRO"
    BUSINESS = "BUSINESS"


DEFAULT_PLAN = PlanId.STARTER


class BusinessSubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    INACTIVE = "INACTIVE"
    CANCELLED = "CANCELLED"


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    BUSINESS_OWNER = "BUSINESS_OWNER"
    STAFF = "STAFF"


class BusinessRole(str, Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class OrderType(str, Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"
    DINE_IN = "DINE_IN"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    PICKED_UP = "PICKED_UP"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class FeedbackType(str, Enum):
    INITIAL = "INITIAL"
    PERIODIC = "PERIODIC"
    NPS = "NPS"
    FEATURE_REQUEST = "FEATURE_REQUEST"
    SUPPORT = "SUPPORT"
    OTHER = "OTHER"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


# Stripe subscription statuses we branch on
STRIPE_ACTIVE_STATUSES = ("active", "trialing")
STRIPE_TERMINAL_STATUSES = ("canceled", "incomplete_expired")
STRIPE_CANCELLABLE_STATUSES = ("active", "trialing", "paused", "past_due")


# Plan pricing (USD list price per month) and Stripe price ids
PLANS: Dict[PlanId, Dict[str, Any]] = {
    PlanId.STARTER: {
        "name": "Starter",
        "price": 19,
        "annual_price": 16,
        "price_id": settings.STRIPE_STARTER_PRICE_ID,
        "annual_price_id": settings.STRIPE_STARTER_ANNUAL_PRICE_ID,
        "free_price_id": settings.STRIPE_STARTER_FREE_PRICE_ID,
    },
    PlanId.PRO: {
        "name": "Pro",
        "price": 39,
        "annual_price": 32,
        "price_id": settings.STRIPE_PRO_PRICE_ID,
        "annual_price_id": settings.STRIPE_PRO_ANNUAL_PRICE_ID,
        "free_price_id": settings.STRIPE_PRO_FREE_PRICE_ID,
    },
    PlanId.BUSINESS: {
        "name": "Business",
        "price": 79,
        "annual_price": 66,
        "price_id": settings.STRIPE_BUSINESS_PRICE_ID,
        "annual_price_id": settings.STRIPE_BUSINESS_ANNUAL_PRICE_ID,
        "free_price_id": settings.STRIPE_BUSINESS_FREE_PRICE_ID,
    },
}


def map_price_to_plan(price_id: Optional[str]) -> PlanId:
    """Resolve the plan owning a Stripe price id, falling back to STARTER"""
    if price_id:
        for plan_id, plan in PLANS.items():
            if price_id in (plan["price_id"], plan["annual_price_id"], plan["free_price_id"]):
                return plan_id
    return DEFAULT_PLAN


def billing_type_for_price(price_id: Optional[str]) -> Optional[str]:
    """Return monthly, yearly or free for a known price id, else None"""
    if not price_id or not price_id.strip():
        return None

    for plan in PLANS.values():
        if plan["free_price_id"] == price_id:
            return "free"
        if plan["annual_price_id"] == price_id:
            return "yearly"
        if plan["price_id"] == price_id:
            return "monthly"

    return None


def monthly_list_price(plan: PlanId, billing_type: Optional[str]) -> float:
    """Per-month list price for a plan; yearly billing uses the annual per-month rate"""
    plan_data = PLANS[plan]
    if billing_type == "free":
        return 0.0
    if billing_type == "yearly":
        return float(plan_data["annual_price"])
    return float(plan_data["price"])
