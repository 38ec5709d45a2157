"""
Tests for the per-business analytics report
"""
import pytest
from datetime import datetime, time

from waveorder.core.exceptions import NotFoundError
from waveorder.db.models import Analytics, Customer, Order, OrderItem, Product, VisitorSession
from waveorder.services.analytics import (
    AnalyticsService,
    DimensionBreakdown,
    growth,
    is_completed,
    normalize_window,
)


class TestOrderCompletion:
    """Which orders count as revenue"""

    @pytest.mark.parametrize("order_type,status,payment,expected", [
        ("DELIVERY", "DELIVERED", "PAID", True),
        ("PICKUP", "PICKED_UP", "PAID", True),
        ("DINE_IN", "PICKED_UP", "PAID", True),
        ("DELIVERY", "PICKED_UP", "PAID", False),
        ("PICKUP", "DELIVERED", "PAID", False),
        ("DELIVERY", "DELIVERED", "PENDING", False),
        ("PICKUP", "PICKED_UP", "REFUNDED", False),
        ("DELIVERY", "CANCELLED", "PAID", False),
        ("DINE_IN", "PREPARING", "PAID", False),
    ])
    def test_is_completed(self, order_type, status, payment, expected):
        order = Order(type=order_type, status=status, payment_status=payment, total=10.0)
        assert is_completed(order) is expected


class TestHelpers:

    def test_growth_without_baseline_is_zero(self):
        assert growth(120, 0) == 0.0
        assert growth(0, 0) == 0.0

    def test_growth_is_percent_change(self):
        assert growth(15, 10) == 50.0
        assert growth(5, 10) == -50.0
        assert growth(1, 3) == -66.7

    def test_default_window_is_month_to_date(self):
        start, end = normalize_window(None, None, now=datetime(2026, 3, 15, 10, 30))

        assert start == datetime(2026, 3, 1)
        assert end == datetime.combine(datetime(2026, 3, 15).date(), time.max)

    def test_end_covers_whole_day(self):
        start, end = normalize_window(datetime(2026, 3, 2), datetime(2026, 3, 8))

        assert start == datetime(2026, 3, 2)
        assert end == datetime(2026, 3, 8, 23, 59, 59, 999999)


class TestDimensionBreakdown:
    """Attribution tallies with proportional order estimates"""

    def test_orders_estimated_by_visitor_share(self):
        sources = DimensionBreakdown()
        sources.add("google", 30)
        sources.add("instagram", 10)

        assert sources.estimated_orders("google", 4) == 3
        assert sources.estimated_orders("instagram", 4) == 1

        stats = sources.stats(4)
        assert [s.key for s in stats] == ["google", "instagram"]
        assert stats[0].percentage == 75.0
        assert stats[0].conversion_rate == 10.0

    def test_empty_keys_are_ignored(self):
        mediums = DimensionBreakdown()
        mediums.add(None)
        mediums.add("")

        assert mediums.total_visitors == 0
        assert mediums.stats(5) == []

    def test_unknown_key_reads_as_zero(self):
        campaigns = DimensionBreakdown()

        assert campaigns["spring"].visitors == 0
        assert campaigns.estimated_orders("spring", 3) == 0


@pytest.mark.asyncio
class TestAnalyticsReport:
    """End-to-end report over a seeded week"""

    START = datetime(2026, 3, 2)  # Monday
    END = datetime(2026, 3, 8, 23, 59, 59, 999999)

    async def _seed(self, db_session, business_id: str):
        burger = Product(business_id=business_id, name="Burger")
        regular = Customer(business_id=business_id, name="Regular")
        once = Customer(business_id=business_id, name="Once")
        db_session.add_all([burger, regular, once])
        await db_session.flush()

        db_session.add_all([
            # Current window
            Analytics(business_id=business_id, date=datetime(2026, 3, 4), visitors=10),
            VisitorSession(business_id=business_id, ip_address="10.0.0.1", visited_at=datetime(2026, 3, 2, 9, 0), source="instagram"),
            VisitorSession(business_id=business_id, ip_address="10.0.0.1", visited_at=datetime(2026, 3, 2, 9, 30)),
            VisitorSession(business_id=business_id, ip_address="10.0.0.2", visited_at=datetime(2026, 3, 2, 18, 0)),
            Order(
                business_id=business_id, customer_id=regular.id, type="DELIVERY", status="DELIVERED",
                payment_status="PAID", total=20.0, created_at=datetime(2026, 3, 3, 12, 30),
                items=[OrderItem(product=burger, quantity=2, price=10.0)],
            ),
            Order(
                business_id=business_id, customer_id=regular.id, type="PICKUP", status="PICKED_UP",
                payment_status="PENDING", total=15.0, created_at=datetime(2026, 3, 5, 19, 0),
            ),
            Order(
                business_id=business_id, customer_id=once.id, type="DELIVERY", status="CANCELLED",
                payment_status="PAID", total=30.0, created_at=datetime(2026, 3, 6, 13, 0),
            ),
            # Previous window
            VisitorSession(business_id=business_id, ip_address="10.0.0.9", visited_at=datetime(2026, 2, 26, 10, 0)),
            Order(
                business_id=business_id, type="PICKUP", status="PICKED_UP",
                payment_status="PAID", total=10.0, created_at=datetime(2026, 2, 25, 11, 0),
            ),
            # Outside both windows
            VisitorSession(business_id=business_id, ip_address="10.0.0.3", visited_at=datetime(2026, 3, 9, 0, 5)),
        ])
        await db_session.commit()

    async def test_overview(self, db_session, make_business):
        business = await make_business()
        await self._seed(db_session, business.id)

        report = await AnalyticsService(db_session).build_report(business.id, self.START, self.END)
        overview = report.overview

        assert overview.total_views == 13
        assert overview.unique_visitors == 12
        assert overview.bounce_rate == 50.0
        assert overview.total_orders == 3
        assert overview.completed_orders == 1
        assert overview.revenue == 20.0
        assert overview.avg_order_value == 20.0
        assert overview.conversion_rate == 7.69
        assert overview.views_growth == 1200.0
        assert overview.revenue_growth == 100.0

    async def test_traffic_breakdown(self, db_session, make_business):
        business = await make_business()
        await self._seed(db_session, business.id)

        report = await AnalyticsService(db_session).build_report(business.id, self.START, self.END)
        traffic = report.traffic

        assert len(traffic.trends) == 7
        by_date = {p.date: p for p in traffic.trends}
        assert by_date["2026-03-02"].visitors == 3
        assert by_date["2026-03-04"].visitors == 10
        assert by_date["2026-03-03"].orders == 1

        sources = {s.key: s for s in traffic.sources}
        assert sources["Direct"].visitors == 12
        assert sources["Direct"].estimated_orders == 1
        assert sources["instagram"].estimated_orders == 0
        assert traffic.mediums == []

    async def test_products_time_and_customers(self, db_session, make_business):
        business = await make_business()
        await self._seed(db_session, business.id)

        report = await AnalyticsService(db_session).build_report(business.id, self.START, self.END)

        [top] = report.products.top_products
        assert top.name == "Burger"
        assert top.quantity == 2
        assert top.revenue == 20.0

        time_analysis = report.time_analysis
        assert time_analysis.hourly[9].visitors == 2
        assert time_analysis.hourly[12].orders == 1
        assert time_analysis.peak_hours == ["12:00"]
        assert time_analysis.daily[0].visitors == 3
        assert time_analysis.daily[2].visitors == 10

        assert report.customers.total == 2
        assert report.customers.repeat == 1
        assert report.customers.repeat_rate == 50.0

        statuses = {s.status: s for s in report.orders_by_status}
        assert set(statuses) == {"DELIVERED", "PICKED_UP", "CANCELLED"}
        assert statuses["DELIVERED"].percentage == 33.3

    async def test_empty_window(self, db_session, make_business):
        business = await make_business()

        report = await AnalyticsService(db_session).build_report(business.id, self.START, self.END)

        assert report.overview.total_views == 0
        assert report.overview.conversion_rate == 0.0
        assert report.overview.bounce_rate == 0.0
        assert report.overview.views_growth == 0.0
        assert report.time_analysis.peak_hours == []

    async def test_unknown_business(self, db_session):
        with pytest.raises(NotFoundError):
            await AnalyticsService(db_session).build_report("missing", self.START, self.END)
