# waveorder/services/analytics.py
"""
Per-business analytics report.

Visits come from two generations of tracking: legacy `Analytics` rows
(one aggregated visitor count per day) and per-visit `VisitorSession`
rows. Both are summed into view counts even though their granularity
differs. Orders are only credited as revenue when they are completed.
"""
import logging
import math
from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, time
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_, or_, not_
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.core.constants import OrderStatus, OrderType, PaymentStatus
from waveorder.core.exceptions import NotFoundError
from waveorder.db.models.analytics import Analytics, VisitorSession
from waveorder.db.models.business import Business
from waveorder.db.models.order import Order
from waveorder.schemas.analytics import (
    AnalyticsOverview,
    AnalyticsReport,
    CustomerAnalytics,
    DayBucket,
    DimensionStat,
    HourBucket,
    ProductAnalytics,
    ProductStat,
    ReportPeriod,
    StatusCount,
    TimeAnalysis,
    TrafficAnalytics,
    TrafficPoint,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
DEFAULT_SOURCE = "Direct"
TOP_PRODUCTS_LIMIT = 10
PEAK_HOURS_LIMIT = 3

# Order status that marks fulfilment for each order type
_FULFILLED_STATUS = {
    OrderType.DELIVERY.value: OrderStatus.DELIVERED.value,
    OrderType.PICKUP.value: OrderStatus.PICKED_UP.value,
    OrderType.DINE_IN.value: OrderStatus.PICKED_UP.value,
}
_VOID_STATUSES = (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value)


def is_completed(order: Order) -> bool:
    """Paid, not voided, and fulfilled the way its order type requires"""
    if order.payment_status != PaymentStatus.PAID.value:
        return False
    if order.status in _VOID_STATUSES:
        return False
    return _FULFILLED_STATUS.get(order.type) == order.status


def completed_clause():
    """SQL form of is_completed()"""
    return and_(
        Order.payment_status == PaymentStatus.PAID.value,
        not_(Order.status.in_(_VOID_STATUSES)),
        or_(*[
            and_(Order.type == order_type, Order.status == status)
            for order_type, status in _FULFILLED_STATUS.items()
        ]),
    )


def growth(current: float, previous: float) -> float:
    """Percent change to 1dp; 0 when there is no prior baseline"""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(part: float, whole: float, digits: int = 1) -> float:
    return round(part / whole * 100, digits) if whole > 0 else 0.0


def normalize_window(start: Optional[datetime], end: Optional[datetime], now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Resolve the report window; end is pushed to the last microsecond of its day.

    Without both bounds the window is the first of the current month to now.
    """
    if start is None or end is None:
        now = now or datetime.utcnow()
        start = datetime(now.year, now.month, 1)
        end = now
    end = datetime.combine(end.date(), time.max)
    return start, end


@dataclass
class DimensionCount:
    visitors: int = 0


class DimensionBreakdown:
    """Visitor counts per attribution value (source, medium, ...).

    Keys start at zero on first touch. Orders are never joined to visits,
    so each key's order count is estimated from its share of visitors.
    """

    def __init__(self):
        self._counts: Dict[str, DimensionCount] = OrderedDict()

    def __getitem__(self, key: str) -> DimensionCount:
        if key not in self._counts:
            self._counts[key] = DimensionCount()
        return self._counts[key]

    def add(self, key: Optional[str], visitors: int = 1) -> None:
        if not key:
            return
        self[key].visitors += visitors

    @property
    def total_visitors(self) -> int:
        return sum(c.visitors for c in self._counts.values())

    def estimated_orders(self, key: str, completed_orders: int) -> int:
        total = self.total_visitors
        if total == 0 or key not in self._counts:
            return 0
        return _round_half_up(completed_orders * self._counts[key].visitors / total)

    def stats(self, completed_orders: int) -> List[DimensionStat]:
        total = self.total_visitors
        rows = []
        for key, count in self._counts.items():
            orders = self.estimated_orders(key, completed_orders)
            rows.append(DimensionStat(
                key=key,
                visitors=count.visitors,
                estimated_orders=orders,
                conversion_rate=_percent(orders, count.visitors, 2),
                percentage=_percent(count.visitors, total),
            ))
        return sorted(rows, key=lambda r: r.visitors, reverse=True)


class AnalyticsService:
    """Builds the analytics report for one business and date window"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _legacy_rows(self, business_id: str, start: datetime, end: datetime) -> List[Analytics]:
        result = await self.session.execute(
            select(Analytics)
            .where(Analytics.business_id == business_id)
            .where(Analytics.date >= start, Analytics.date <= end)
            .order_by(Analytics.date)
        )
        return list(result.scalars().all())

    async def _sessions(self, business_id: str, start: datetime, end: datetime) -> List[VisitorSession]:
        result = await self.session.execute(
            select(VisitorSession)
            .where(VisitorSession.business_id == business_id)
            .where(VisitorSession.visited_at >= start, VisitorSession.visited_at <= end)
        )
        return list(result.scalars().all())

    async def _orders(self, business_id: str, start: datetime, end: datetime) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.business_id == business_id)
            .where(Order.created_at >= start, Order.created_at <= end)
            .order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def _window_totals(self, business_id: str, start: datetime, end: datetime) -> Tuple[int, float]:
        """(views, completed revenue) for a window, computed in SQL"""
        legacy = await self.session.scalar(
            select(func.coalesce(func.sum(Analytics.visitors), 0))
            .where(Analytics.business_id == business_id)
            .where(Analytics.date >= start, Analytics.date <= end)
        )
        sessions = await self.session.scalar(
            select(func.count(VisitorSession.id))
            .where(VisitorSession.business_id == business_id)
            .where(VisitorSession.visited_at >= start, VisitorSession.visited_at <= end)
        )
        revenue = await self.session.scalar(
            select(func.coalesce(func.sum(Order.total), 0.0))
            .where(Order.business_id == business_id)
            .where(Order.created_at >= start, Order.created_at <= end)
            .where(completed_clause())
        )
        return int(legacy or 0) + int(sessions or 0), float(revenue or 0.0)

    async def build_report(self, business_id: str, start: datetime, end: datetime) -> AnalyticsReport:
        """
        Compute the full report for [start, end]

        Raises:
            NotFoundError: unknown business
        """
        if not await self.session.get(Business, business_id):
            raise NotFoundError(f"Business {business_id} not found")

        legacy = await self._legacy_rows(business_id, start, end)
        sessions = await self._sessions(business_id, start, end)
        orders = await self._orders(business_id, start, end)
        completed = [o for o in orders if is_completed(o)]

        # Prior window of equal length ending just before this one
        duration = end - start
        prev_views, prev_revenue = await self._window_totals(
            business_id, start - duration, start - timedelta(microseconds=1)
        )

        legacy_views = sum(a.visitors for a in legacy)
        total_views = legacy_views + len(sessions)
        revenue = sum(o.total for o in completed)

        visits_per_ip = Counter(s.ip_address for s in sessions if s.ip_address)
        distinct_ips = len(visits_per_ip)
        single_visit = sum(1 for n in visits_per_ip.values() if n == 1)

        overview = AnalyticsOverview(
            total_views=total_views,
            unique_visitors=distinct_ips + legacy_views,
            total_orders=len(orders),
            completed_orders=len(completed),
            revenue=round(revenue, 2),
            conversion_rate=_percent(len(completed), total_views, 2),
            avg_order_value=round(revenue / len(completed), 2) if completed else 0.0,
            bounce_rate=_percent(single_visit, distinct_ips),
            views_growth=growth(total_views, prev_views),
            revenue_growth=growth(revenue, prev_revenue),
        )

        logger.info(
            f"Analytics report: {total_views} views, {len(orders)} orders, {len(completed)} completed",
            extra={"business_id": business_id},
        )

        return AnalyticsReport(
            overview=overview,
            traffic=self._traffic(start, end, legacy, sessions, completed),
            products=ProductAnalytics(
                top_products=self._top_products(completed),
                total_product_views=total_views,
            ),
            time_analysis=self._time_analysis(legacy, sessions, completed),
            customers=self._customers(orders),
            orders_by_status=self._orders_by_status(orders),
            period=ReportPeriod(start_date=start, end_date=end),
        )

    def _traffic(
        self,
        start: datetime,
        end: datetime,
        legacy: List[Analytics],
        sessions: List[VisitorSession],
        completed: List[Order],
    ) -> TrafficAnalytics:
        visitors_by_day: Counter = Counter()
        orders_by_day: Counter = Counter()
        for row in legacy:
            visitors_by_day[row.date.date()] += row.visitors
        for s in sessions:
            visitors_by_day[s.visited_at.date()] += 1
        for o in completed:
            orders_by_day[o.created_at.date()] += 1

        trends = []
        day = start.date()
        while day <= end.date():
            trends.append(TrafficPoint(
                date=day.isoformat(),
                visitors=visitors_by_day[day],
                orders=orders_by_day[day],
            ))
            day += timedelta(days=1)

        sources, mediums = DimensionBreakdown(), DimensionBreakdown()
        campaigns, placements = DimensionBreakdown(), DimensionBreakdown()

        visits = [(row, row.visitors) for row in legacy] + [(s, 1) for s in sessions]
        for visit, count in visits:
            sources.add(visit.source or DEFAULT_SOURCE, count)
            mediums.add(visit.medium, count)
            campaigns.add(visit.campaign, count)
            placements.add(visit.placement, count)

        n = len(completed)
        return TrafficAnalytics(
            trends=trends,
            sources=sources.stats(n),
            mediums=mediums.stats(n),
            campaigns=campaigns.stats(n),
            placements=placements.stats(n),
        )

    @staticmethod
    def _top_products(completed: List[Order]) -> List[ProductStat]:
        stats: Dict[str, ProductStat] = {}
        for order in completed:
            for item in order.items:
                stat = stats.get(item.product_id)
                if stat is None:
                    stat = stats[item.product_id] = ProductStat(
                        id=item.product_id,
                        name=item.product.name if item.product else "",
                        orders=0,
                        quantity=0,
                        revenue=0.0,
                    )
                stat.orders += 1
                stat.quantity += item.quantity
                stat.revenue += item.price * item.quantity

        ranked = sorted(stats.values(), key=lambda p: p.revenue, reverse=True)[:TOP_PRODUCTS_LIMIT]
        for p in ranked:
            p.revenue = round(p.revenue, 2)
        return ranked

    @staticmethod
    def _time_analysis(
        legacy: List[Analytics],
        sessions: List[VisitorSession],
        completed: List[Order],
    ) -> TimeAnalysis:
        hourly = [HourBucket(hour=f"{h:02d}:00") for h in range(24)]
        daily = [DayBucket(day=d) for d in WEEKDAYS]

        for s in sessions:
            hourly[s.visited_at.hour].visitors += 1
            daily[s.visited_at.weekday()].visitors += 1
        # Legacy rows are daily totals with no hour of visit
        for row in legacy:
            daily[row.date.weekday()].visitors += row.visitors

        for o in completed:
            hourly[o.created_at.hour].orders += 1
            hourly[o.created_at.hour].revenue += o.total
            daily[o.created_at.weekday()].orders += 1
            daily[o.created_at.weekday()].revenue += o.total

        for bucket in hourly + daily:
            bucket.revenue = round(bucket.revenue, 2)

        busiest = sorted((b for b in hourly if b.orders > 0), key=lambda b: b.orders, reverse=True)
        return TimeAnalysis(
            hourly=hourly,
            daily=daily,
            peak_hours=[b.hour for b in busiest[:PEAK_HOURS_LIMIT]],
        )

    @staticmethod
    def _customers(orders: List[Order]) -> CustomerAnalytics:
        per_customer = Counter(o.customer_id for o in orders if o.customer_id)
        repeat = sum(1 for n in per_customer.values() if n > 1)
        return CustomerAnalytics(
            total=len(per_customer),
            repeat=repeat,
            repeat_rate=_percent(repeat, len(per_customer)),
        )

    @staticmethod
    def _orders_by_status(orders: List[Order]) -> List[StatusCount]:
        counts = Counter(o.status for o in orders)
        return [
            StatusCount(status=status, count=count, percentage=_percent(count, len(orders)))
            for status, count in counts.items()
        ]
