"""
Tests for platform customer-experience metrics
"""
import pytest
from datetime import datetime, timedelta

from waveorder.core.exceptions import ProcessorError
from waveorder.db.models import BusinessFeedback, Order, SupportTicket, TicketComment
from waveorder.services.cx_analytics import (
    CXAnalyticsService,
    ces_score,
    churn_rate,
    nps_score,
    risk_assessment,
    tenure_months,
    trailing_months,
    window_start,
)


class TestScoring:
    """Pure scoring helpers"""

    def test_nps_without_responses_is_none(self):
        assert nps_score([]) is None

    def test_nps_promoters_minus_detractors(self):
        assert nps_score([10, 9, 8, 6, 3]) == 0
        assert nps_score([10, 10, 7]) == 67
        assert nps_score([0, 5]) == -100

    def test_churn_rate_without_base_is_zero(self):
        assert churn_rate(3, 0) == 0.0
        assert churn_rate(1, 3) == 33.3

    def test_ces_is_clamped(self):
        assert ces_score(12, 3.5) == 4.5
        assert ces_score(0, 0) == 5.0
        assert ces_score(24 * 30, 60) == 1.0
        assert ces_score(None, 2) is None

    def test_tenure_is_at_least_one_month(self):
        now = datetime(2026, 6, 1)
        assert tenure_months(now - timedelta(days=3), now) == 1
        assert tenure_months(now - timedelta(days=65), now) == 2

    def test_worst_case_risk(self):
        now = datetime(2026, 6, 1)
        score, reasons = risk_assessment(0, None, 3, 2, now)

        assert score == 90
        assert reasons == [
            "No orders in last 30 days",
            "3 support tickets in last 30 days",
            "Low feedback rating",
        ]

    def test_stale_but_active_business(self):
        now = datetime(2026, 6, 1)
        score, reasons = risk_assessment(1, now - timedelta(days=20), 2, 3, now)

        assert score == 15 + 10 + 15 + 20
        assert "No recent orders" in reasons
        assert "Multiple support tickets" in reasons

    def test_healthy_business_scores_zero(self):
        now = datetime(2026, 6, 1)
        assert risk_assessment(8, now - timedelta(days=1), 0, 5, now) == (0, [])


class TestWindows:

    def test_named_ranges(self):
        now = datetime(2026, 6, 15, 12, 0)
        assert window_start("7d", now) == now - timedelta(days=7)
        assert window_start("90d", now) == now - timedelta(days=90)
        assert window_start("1y", now) == datetime(2025, 6, 15, 12, 0)

    def test_unknown_range_falls_back_to_30_days(self):
        now = datetime(2026, 6, 15)
        assert window_start("forever", now) == now - timedelta(days=30)

    def test_leap_day_year_back(self):
        assert window_start("1y", datetime(2028, 2, 29)) == datetime(2027, 2, 28)

    def test_trailing_months_cross_year(self):
        months = trailing_months(datetime(2026, 2, 15), 3)

        assert months == [
            (datetime(2025, 12, 1), datetime(2026, 1, 1)),
            (datetime(2026, 1, 1), datetime(2026, 2, 1)),
            (datetime(2026, 2, 1), datetime(2026, 3, 1)),
        ]


@pytest.mark.asyncio
class TestCXReport:
    """Report built from seeded rows"""

    async def test_empty_platform(self, db_session):
        report = await CXAnalyticsService(db_session).build_report("30d")

        assert report.nps.score is None
        assert report.csat.score is None
        assert report.ces.score is None
        assert report.churn.rate == 0.0
        assert report.churn.data_source == "database"
        assert report.clv.average is None
        assert report.at_risk.count == 0
        assert len(report.nps.trend) == 6

    async def test_unknown_range_is_normalised(self, db_session):
        report = await CXAnalyticsService(db_session).build_report("forever")

        assert report.range == "30d"

    async def test_feedback_scores(self, db_session, make_business):
        now = datetime.utcnow()
        business = await make_business()
        db_session.add_all([
            BusinessFeedback(business_id=business.id, type="NPS", rating=10, created_at=now - timedelta(days=2)),
            BusinessFeedback(business_id=business.id, type="NPS", rating=9, created_at=now - timedelta(days=3)),
            BusinessFeedback(business_id=business.id, type="NPS", rating=4, created_at=now - timedelta(days=4)),
            BusinessFeedback(business_id=business.id, type="PERIODIC", rating=4, created_at=now - timedelta(days=5)),
            # Outside the window
            BusinessFeedback(business_id=business.id, type="NPS", rating=0, created_at=now - timedelta(days=45)),
        ])
        await db_session.commit()

        report = await CXAnalyticsService(db_session).build_report("30d", now=now)

        assert report.nps.score == 33
        assert report.nps.promoters == 2
        assert report.nps.detractors == 1
        assert report.nps.total_responses == 3
        assert report.csat.by_type["PERIODIC"].score == 4.0
        assert report.csat.total_responses == 4

    async def test_ces_from_onboarding_latency(self, db_session, make_business):
        now = datetime.utcnow()
        created = now - timedelta(days=10)
        business = await make_business(
            created_at=created,
            onboarding_completed=True,
            onboarding_completed_at=created + timedelta(hours=12),
        )
        db_session.add(Order(
            business_id=business.id, type="PICKUP", status="PICKED_UP", payment_status="PAID",
            total=12.0, created_at=created + timedelta(days=3, hours=12),
        ))
        await db_session.commit()

        report = await CXAnalyticsService(db_session).build_report("30d", now=now)

        assert report.ces.avg_onboarding_time_hours == 12.0
        assert report.ces.avg_time_to_first_order_days == 3.5
        assert report.ces.score == 4.5
        assert report.ces.businesses_analyzed == 1

    async def _seed_churn(self, make_business, now):
        for _ in range(3):
            await make_business(created_at=now - timedelta(days=60))
        await make_business(
            created_at=now - timedelta(days=60),
            is_active=False,
            deactivated_at=now - timedelta(days=5),
            deactivation_reason="Too expensive",
        )

    async def test_churn_uses_stripe_when_it_sees_more(self, db_session, stripe_fake, make_business):
        now = datetime.utcnow()
        await self._seed_churn(make_business, now)
        stripe_fake.add_subscription(
            "cus_a", "sub_a", "price_pro_monthly", status="canceled",
            unit_amount=3900, canceled_at=now - timedelta(days=3),
        )
        stripe_fake.add_subscription(
            "cus_b", "sub_b", "price_pro_yearly", status="canceled",
            unit_amount=39000, interval="year", canceled_at=now - timedelta(days=3),
        )

        report = await CXAnalyticsService(db_session, stripe_fake).build_report("30d", now=now)
        churn = report.churn

        assert churn.data_source == "stripe_enhanced"
        assert churn.churned_this_period == 2
        assert churn.rate == 50.0
        assert churn.revenue_churn_mrr == 71.5
        assert churn.active_businesses == 3
        assert churn.reasons == {"Too expensive": 1}

    async def test_churn_falls_back_to_database(self, db_session, stripe_fake, make_business):
        now = datetime.utcnow()
        await self._seed_churn(make_business, now)
        stripe_fake.list_all_error = ProcessorError("Stripe is unavailable")

        report = await CXAnalyticsService(db_session, stripe_fake).build_report("30d", now=now)
        churn = report.churn

        assert churn.data_source == "database"
        assert churn.churned_this_period == 1
        assert churn.rate == 25.0
        assert churn.revenue_churn_mrr == 0.0

    async def test_clv_by_plan(self, db_session, make_business):
        now = datetime.utcnow()
        await make_business(
            plan="PRO", created_at=now - timedelta(days=65),
            local_stripe_id="sub_pro", local_price_id="price_pro_yearly",
        )
        await make_business(
            plan="STARTER", created_at=now - timedelta(days=31),
            local_stripe_id="sub_starter", local_price_id="price_starter_monthly",
        )
        # Default plan without a subscription, comped price, and a live trial are skipped
        await make_business(plan="STARTER", created_at=now - timedelta(days=90))
        await make_business(
            plan="BUSINESS", created_at=now - timedelta(days=90),
            local_stripe_id="sub_comp", local_price_id="price_business_free",
        )
        await make_business(
            plan="PRO", created_at=now - timedelta(days=5),
            trial_ends_at=now + timedelta(days=9),
        )

        report = await CXAnalyticsService(db_session).build_report("30d", now=now)
        clv = report.clv

        assert clv.businesses_analyzed == 2
        assert clv.by_plan["PRO"].avg_clv == 64.0
        assert clv.by_plan["STARTER"].avg_clv == 19.0
        assert clv.average == 41.5
        assert "BUSINESS" not in clv.by_plan

    async def test_support_metrics(self, db_session, make_business):
        now = datetime.utcnow()
        business = await make_business()
        opened = now - timedelta(days=2)
        db_session.add_all([
            SupportTicket(
                business_id=business.id, status="RESOLVED", created_at=opened,
                comments=[TicketComment(body="Fixed", created_at=opened + timedelta(hours=2))],
            ),
            SupportTicket(
                business_id=business.id, type="BILLING", status="CLOSED", created_at=opened,
                comments=[
                    TicketComment(body="Looking", created_at=opened + timedelta(hours=4)),
                    TicketComment(body="Done", created_at=opened + timedelta(hours=8)),
                ],
            ),
            SupportTicket(business_id=business.id, status="OPEN", created_at=opened, comments=[]),
        ])
        await db_session.commit()

        report = await CXAnalyticsService(db_session).build_report("30d", now=now)
        support = report.support

        assert support.total_tickets == 3
        assert support.resolved_tickets == 2
        assert support.avg_first_response_time_hours == 3.0
        assert support.first_contact_resolution_rate == 50.0
        assert support.by_type == {"GENERAL": 2, "BILLING": 1}

    async def test_at_risk_ranking(self, db_session, make_business):
        now = datetime.utcnow()
        troubled = await make_business(name="Troubled")
        quiet = await make_business(name="Quiet")
        healthy = await make_business(name="Healthy")
        await make_business(name="Gone", is_active=False, deactivated_at=now - timedelta(days=1))

        rows = [
            BusinessFeedback(business_id=troubled.id, type="PERIODIC", rating=5, created_at=now - timedelta(days=20)),
            BusinessFeedback(business_id=troubled.id, type="PERIODIC", rating=2, created_at=now - timedelta(days=1)),
            Order(
                business_id=quiet.id, type="DELIVERY", status="DELIVERED", payment_status="PAID",
                total=18.0, created_at=now - timedelta(days=20),
            ),
        ]
        rows += [
            SupportTicket(business_id=troubled.id, status="OPEN", created_at=now - timedelta(days=d), comments=[])
            for d in (1, 2, 3)
        ]
        rows += [
            Order(
                business_id=healthy.id, type="PICKUP", status="PICKED_UP", payment_status="PAID",
                total=10.0, created_at=now - timedelta(days=d),
            )
            for d in (1, 2, 3, 4)
        ]
        db_session.add_all(rows)
        await db_session.commit()

        report = await CXAnalyticsService(db_session).build_report("30d", now=now)
        at_risk = report.at_risk

        assert [b.name for b in at_risk.businesses] == ["Troubled", "Quiet"]
        assert at_risk.businesses[0].risk_score == 90
        assert at_risk.businesses[0].last_feedback_rating == 2
        assert at_risk.businesses[0].support_tickets_count == 3
        assert at_risk.businesses[1].risk_score == 35
        assert at_risk.businesses[1].reasons == ["Low order activity", "No recent orders"]
