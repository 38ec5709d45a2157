# waveorder/services/cx_analytics.py
"""
Platform-wide customer-experience metrics for the superadmin dashboard.

All scores here are heuristics over stored rows: CES is derived from
onboarding and first-order latency rather than a survey, CLV is tenure
times list price, and the at-risk score is an additive point system.
"""
import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.core.constants import (
    DEFAULT_PLAN,
    BusinessSubscriptionStatus,
    FeedbackType,
    PlanId,
    TicketStatus,
    billing_type_for_price,
    monthly_list_price,
)
from waveorder.core.exceptions import ProcessorError
from waveorder.core.result import Result
from waveorder.db.models.business import Business
from waveorder.db.models.feedback import BusinessFeedback
from waveorder.db.models.order import Order
from waveorder.db.models.support import SupportTicket
from waveorder.db.repositories.business_repository import BusinessRepository
from waveorder.schemas.cx import (
    AtRiskBusiness,
    AtRiskMetrics,
    CesMetrics,
    ChurnMetrics,
    ChurnTrendPoint,
    ClvMetrics,
    CsatMetrics,
    CsatTrendPoint,
    CXReport,
    NpsMetrics,
    NpsTrendPoint,
    PlanClv,
    SupportMetrics,
    SupportTrendPoint,
    TypeScore,
)
from waveorder.services.stripe_client import ExternalSubscription, StripeClient

logger = logging.getLogger(__name__)

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE = "30d"
TREND_MONTHS = 6
AT_RISK_LIMIT = 20

# At-risk weights
NO_ORDERS_POINTS = 30
LOW_ORDERS_POINTS = 15
MANY_TICKETS_POINTS = 25
SOME_TICKETS_POINTS = 10
LOW_RATING_POINTS = 35
BELOW_AVG_RATING_POINTS = 15
STALE_ORDERS_POINTS = 20
STALE_ORDER_DAYS = 14

_RESOLVED = (TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value)


def window_start(time_range: str, now: datetime) -> datetime:
    """Start of the trailing window; unknown ranges fall back to 30 days"""
    if time_range == "1y":
        try:
            return now.replace(year=now.year - 1)
        except ValueError:
            # Feb 29
            return now.replace(year=now.year - 1, day=28)
    return now - timedelta(days=RANGE_DAYS.get(time_range, RANGE_DAYS[DEFAULT_RANGE]))


def trailing_months(now: datetime, count: int = TREND_MONTHS) -> List[Tuple[datetime, datetime]]:
    """[start, next_start) for the last `count` calendar months, oldest first"""
    months = []
    year, month = now.year, now.month
    for _ in range(count):
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
        months.append((start, end))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return list(reversed(months))


def _month_key(start: datetime) -> Tuple[str, str]:
    return start.strftime("%Y-%m"), start.strftime("%b %y")


def _mean(values: Sequence[float], digits: int = 1) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), digits)


def nps_score(ratings: Sequence[int]) -> Optional[int]:
    """Promoters (9-10) minus detractors (0-6) as a percentage; None without responses"""
    if not ratings:
        return None
    promoters = sum(1 for r in ratings if r >= 9)
    detractors = sum(1 for r in ratings if r <= 6)
    return int(math.floor((promoters - detractors) / len(ratings) * 100 + 0.5))


def churn_rate(churned: int, existing_at_start: int) -> float:
    if existing_at_start <= 0:
        return 0.0
    return round(churned / existing_at_start * 100, 1)


def ces_score(avg_onboarding_hours: Optional[float], avg_first_order_days: Optional[float]) -> Optional[float]:
    """Effort proxy on a 1-5 scale from onboarding and first-order latency"""
    if avg_onboarding_hours is None or avg_first_order_days is None:
        return None
    raw = 5 - (avg_onboarding_hours / 24) * 0.5 - (avg_first_order_days / 7) * 0.5
    return round(max(1.0, min(5.0, raw)), 1)


def tenure_months(created_at: datetime, now: datetime) -> int:
    """Whole 30-day months since creation, at least 1"""
    return max(1, (now - created_at).days // 30)


def risk_assessment(
    orders_30d: int,
    last_order_at: Optional[datetime],
    tickets_30d: int,
    last_rating: Optional[int],
    now: datetime,
) -> Tuple[int, List[str]]:
    """Additive churn-risk points and the reasons that contributed"""
    score = 0
    reasons: List[str] = []

    if orders_30d == 0:
        score += NO_ORDERS_POINTS
        reasons.append("No orders in last 30 days")
    elif orders_30d < 3:
        score += LOW_ORDERS_POINTS
        reasons.append("Low order activity")

    if tickets_30d >= 3:
        score += MANY_TICKETS_POINTS
        reasons.append(f"{tickets_30d} support tickets in last 30 days")
    elif tickets_30d == 2:
        score += SOME_TICKETS_POINTS
        reasons.append("Multiple support tickets")

    if last_rating is not None:
        if last_rating <= 2:
            score += LOW_RATING_POINTS
            reasons.append("Low feedback rating")
        elif last_rating <= 3:
            score += BELOW_AVG_RATING_POINTS
            reasons.append("Below average feedback")

    if orders_30d > 0 and last_order_at is not None:
        if (now - last_order_at).total_seconds() / 86400 > STALE_ORDER_DAYS:
            score += STALE_ORDERS_POINTS
            reasons.append("No recent orders")

    return score, reasons


class CXAnalyticsService:
    """Computes the CX report; Stripe is optional and only enriches churn"""

    def __init__(self, session: AsyncSession, stripe_client: Optional[StripeClient] = None):
        self.session = session
        self.stripe = stripe_client

    async def _stripe_subscriptions(self) -> Result[List[ExternalSubscription]]:
        if self.stripe is None:
            return Result.ok([])
        try:
            return Result.ok(await self.stripe.list_all_subscriptions())
        except ProcessorError as e:
            return Result.err(e)

    async def build_report(self, time_range: str = DEFAULT_RANGE, now: Optional[datetime] = None) -> CXReport:
        if time_range not in RANGE_DAYS and time_range != "1y":
            time_range = DEFAULT_RANGE
        now = now or datetime.utcnow()
        start = window_start(time_range, now)
        months = trailing_months(now)

        stripe_subs = await self._stripe_subscriptions()
        if not stripe_subs.is_ok:
            logger.warning(f"Stripe unavailable for CX churn, using database only: {stripe_subs.error}")

        feedbacks = list((await self.session.execute(
            select(BusinessFeedback).where(BusinessFeedback.created_at >= start)
        )).scalars().all())

        businesses = list((await self.session.execute(
            select(Business).where(Business.test_mode.is_(False))
        )).scalars().all())

        report = CXReport(
            range=time_range,
            start_date=start,
            generated_at=now,
            nps=self._nps(feedbacks, months),
            csat=self._csat(feedbacks, months),
            ces=await self._ces(start),
            churn=self._churn(
                businesses, start, months, stripe_subs.unwrap_or([]),
                data_source="stripe_enhanced" if self.stripe is not None and stripe_subs.is_ok else "database",
            ),
            clv=await self._clv(now),
            support=await self._support(start, months),
            at_risk=await self._at_risk(businesses, now),
        )
        logger.info(f"CX report built for range {time_range}")
        return report

    @staticmethod
    def _nps(feedbacks: List[BusinessFeedback], months) -> NpsMetrics:
        responses = [f for f in feedbacks if f.type == FeedbackType.NPS.value]
        ratings = [f.rating for f in responses]

        trend = []
        for month_start, month_end in months:
            month_ratings = [f.rating for f in responses if month_start <= f.created_at < month_end]
            key, label = _month_key(month_start)
            trend.append(NpsTrendPoint(
                month=key, month_label=label, nps=nps_score(month_ratings), responses=len(month_ratings)
            ))

        return NpsMetrics(
            score=nps_score(ratings),
            promoters=sum(1 for r in ratings if r >= 9),
            passives=sum(1 for r in ratings if 7 <= r <= 8),
            detractors=sum(1 for r in ratings if r <= 6),
            total_responses=len(ratings),
            trend=trend,
        )

    @staticmethod
    def _csat(feedbacks: List[BusinessFeedback], months) -> CsatMetrics:
        by_type: Dict[str, TypeScore] = {}
        for feedback_type in FeedbackType:
            ratings = [f.rating for f in feedbacks if f.type == feedback_type.value]
            if ratings:
                by_type[feedback_type.value] = TypeScore(score=_mean(ratings), count=len(ratings))

        trend = []
        for month_start, month_end in months:
            ratings = [f.rating for f in feedbacks if month_start <= f.created_at < month_end]
            key, label = _month_key(month_start)
            trend.append(CsatTrendPoint(month=key, month_label=label, csat=_mean(ratings), responses=len(ratings)))

        return CsatMetrics(
            score=_mean([f.rating for f in feedbacks]),
            total_responses=len(feedbacks),
            by_type=by_type,
            trend=trend,
        )

    async def _ces(self, start: datetime) -> CesMetrics:
        onboarded = list((await self.session.execute(
            select(Business)
            .where(Business.test_mode.is_(False))
            .where(Business.onboarding_completed.is_(True))
            .where(Business.onboarding_completed_at.is_not(None))
            .where(Business.onboarding_completed_at >= start)
        )).scalars().all())
        if not onboarded:
            return CesMetrics()

        first_orders = dict((await self.session.execute(
            select(Order.business_id, func.min(Order.created_at))
            .where(Order.business_id.in_([b.id for b in onboarded]))
            .group_by(Order.business_id)
        )).all())

        onboarding_hours = [
            (b.onboarding_completed_at - b.created_at).total_seconds() / 3600 for b in onboarded
        ]
        first_order_days = [
            (first_orders[b.id] - b.created_at).total_seconds() / 86400
            for b in onboarded if first_orders.get(b.id) is not None
        ]

        avg_hours = _mean(onboarding_hours)
        avg_days = _mean(first_order_days)
        return CesMetrics(
            score=ces_score(avg_hours, avg_days),
            avg_onboarding_time_hours=avg_hours,
            avg_time_to_first_order_days=avg_days,
            businesses_analyzed=len(onboarded),
        )

    @staticmethod
    def _churn(
        businesses: List[Business],
        start: datetime,
        months,
        stripe_subs: List[ExternalSubscription],
        data_source: str,
    ) -> ChurnMetrics:
        canceled = [s for s in stripe_subs if s.status == "canceled" and s.canceled_at is not None]

        def churned_between(lower: datetime, upper: Optional[datetime] = None) -> int:
            db_churned = sum(
                1 for b in businesses
                if not b.is_active and b.deactivated_at is not None
                and b.deactivated_at >= lower and (upper is None or b.deactivated_at < upper)
            )
            stripe_churned = sum(
                1 for s in canceled
                if s.canceled_at >= lower and (upper is None or s.canceled_at < upper)
            )
            # Some churn is only visible on one side
            return max(db_churned, stripe_churned)

        churned = churned_between(start)
        existing = sum(1 for b in businesses if b.created_at < start)

        trend = []
        for month_start, month_end in months:
            month_churned = churned_between(month_start, month_end)
            at_month_start = sum(1 for b in businesses if b.created_at < month_start)
            key, label = _month_key(month_start)
            trend.append(ChurnTrendPoint(
                month=key,
                month_label=label,
                churn_rate=churn_rate(month_churned, at_month_start),
                churned=month_churned,
                total_at_start=at_month_start,
            ))

        reasons = Counter(
            b.deactivation_reason for b in businesses
            if not b.is_active and b.deactivated_at is not None
            and b.deactivated_at >= start and b.deactivation_reason
        )

        return ChurnMetrics(
            rate=churn_rate(churned, existing),
            churned_this_period=churned,
            active_businesses=sum(1 for b in businesses if b.is_active),
            revenue_churn_mrr=round(sum(s.monthly_amount for s in canceled if s.canceled_at >= start), 2),
            trend=trend,
            reasons=dict(reasons),
            data_source=data_source,
        )

    async def _clv(self, now: datetime) -> ClvMetrics:
        businesses = await BusinessRepository(self.session).list_active_with_members()
        per_plan: Dict[str, List[float]] = defaultdict(list)

        for business in businesses:
            if business.test_mode:
                continue
            if business.subscription_status != BusinessSubscriptionStatus.ACTIVE.value:
                continue
            if business.trial_ends_at is not None and business.trial_ends_at > now:
                continue

            owner = BusinessRepository.owner_of(business)
            subscription = owner.subscription if owner else None
            billing_type = billing_type_for_price(subscription.price_id if subscription else None)

            plan = PlanId(business.subscription_plan)
            if billing_type == "free":
                continue
            if plan == DEFAULT_PLAN and billing_type is None:
                continue

            price = monthly_list_price(plan, billing_type)
            per_plan[plan.value].append(price * tenure_months(business.created_at, now))

        all_values = [v for values in per_plan.values() for v in values]
        return ClvMetrics(
            average=_mean(all_values, 2),
            by_plan={
                plan: PlanClv(avg_clv=_mean(values, 2), count=len(values))
                for plan, values in per_plan.items()
            },
            businesses_analyzed=len(all_values),
        )

    async def _support(self, start: datetime, months) -> SupportMetrics:
        tickets = list((await self.session.execute(
            select(SupportTicket).where(SupportTicket.created_at >= start)
        )).scalars().all())

        def first_response_hours(items: List[SupportTicket]) -> List[float]:
            return [
                (t.comments[0].created_at - t.created_at).total_seconds() / 3600
                for t in items if t.comments
            ]

        def fcr(items: List[SupportTicket]) -> Tuple[int, Optional[float]]:
            # One comment on a closed ticket stands in for "resolved on first reply"
            resolved = [t for t in items if t.status in _RESOLVED]
            if not resolved:
                return 0, None
            single = sum(1 for t in resolved if len(t.comments) == 1)
            return len(resolved), round(single / len(resolved) * 100, 1)

        trend = []
        for month_start, month_end in months:
            month_tickets = [t for t in tickets if month_start <= t.created_at < month_end]
            resolved_count, month_fcr = fcr(month_tickets)
            key, label = _month_key(month_start)
            trend.append(SupportTrendPoint(
                month=key,
                month_label=label,
                tickets=len(month_tickets),
                resolved=resolved_count,
                fcr=month_fcr,
                avg_frt=_mean(first_response_hours(month_tickets)),
            ))

        resolved_count, overall_fcr = fcr(tickets)
        return SupportMetrics(
            avg_first_response_time_hours=_mean(first_response_hours(tickets)),
            first_contact_resolution_rate=overall_fcr,
            total_tickets=len(tickets),
            resolved_tickets=resolved_count,
            trend=trend,
            by_type=dict(Counter(t.type for t in tickets)),
        )

    async def _at_risk(self, businesses: List[Business], now: datetime) -> AtRiskMetrics:
        since_30 = now - timedelta(days=30)
        since_90 = now - timedelta(days=90)

        order_stats = {
            business_id: (count, last)
            for business_id, count, last in (await self.session.execute(
                select(Order.business_id, func.count(Order.id), func.max(Order.created_at))
                .where(Order.created_at >= since_30)
                .group_by(Order.business_id)
            )).all()
        }
        ticket_counts = dict((await self.session.execute(
            select(SupportTicket.business_id, func.count(SupportTicket.id))
            .where(SupportTicket.created_at >= since_30)
            .group_by(SupportTicket.business_id)
        )).all())

        latest_rating: Dict[str, int] = {}
        feedback_rows = (await self.session.execute(
            select(BusinessFeedback.business_id, BusinessFeedback.rating)
            .where(BusinessFeedback.created_at >= since_90)
            .order_by(BusinessFeedback.created_at.desc())
        )).all()
        for business_id, rating in feedback_rows:
            latest_rating.setdefault(business_id, rating)

        flagged: List[AtRiskBusiness] = []
        for business in businesses:
            if not business.is_active:
                continue
            orders_30d, last_order_at = order_stats.get(business.id, (0, None))
            tickets_30d = ticket_counts.get(business.id, 0)
            rating = latest_rating.get(business.id)

            score, reasons = risk_assessment(orders_30d, last_order_at, tickets_30d, rating, now)
            if score > 0:
                flagged.append(AtRiskBusiness(
                    id=business.id,
                    name=business.name,
                    risk_score=score,
                    reasons=reasons,
                    last_order_date=last_order_at,
                    support_tickets_count=tickets_30d,
                    last_feedback_rating=rating,
                ))

        top = sorted(flagged, key=lambda b: b.risk_score, reverse=True)[:AT_RISK_LIMIT]
        return AtRiskMetrics(count=len(top), businesses=top)
