"""
API tests: auth, routing and error mapping
"""
import pytest
from datetime import datetime, timedelta


API = "/api/v1"


@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
class TestStripeSyncEndpoints:
    """Superadmin Stripe reconciliation routes"""

    async def test_requires_token(self, client, make_business):
        business = await make_business()

        response = await client.get(f"{API}/superadmin/businesses/{business.id}/stripe-sync")

        assert response.status_code == 401

    async def test_rejects_invalid_token(self, client, make_business):
        business = await make_business()

        response = await client.get(
            f"{API}/superadmin/businesses/{business.id}/stripe-sync",
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    async def test_requires_superadmin(self, client, headers_for, make_business):
        business = await make_business()
        headers = headers_for(role="BUSINESS_OWNER", business_ids=[business.id])

        response = await client.get(f"{API}/superadmin/businesses/{business.id}/stripe-sync", headers=headers)

        assert response.status_code == 403

    async def test_analyze(self, client, stripe_fake, superadmin_headers, make_business):
        business = await make_business(plan="STARTER", customer_id="cus_1")
        stripe_fake.add_subscription("cus_1", "sub_1", "price_pro_monthly")

        response = await client.get(
            f"{API}/superadmin/businesses/{business.id}/stripe-sync", headers=superadmin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "issues_found"
        assert {i["type"] for i in data["issues"]} == {"missing_subscription", "plan_mismatch"}
        assert data["stripe_subscriptions"][0]["plan"] == "PRO"

    async def test_unknown_business_is_404(self, client, superadmin_headers):
        response = await client.get(f"{API}/superadmin/businesses/nope/stripe-sync", headers=superadmin_headers)

        assert response.status_code == 404

    async def test_fix(self, client, stripe_fake, superadmin_headers, make_business):
        business = await make_business(plan="STARTER", customer_id="cus_1")
        stripe_fake.add_subscription("cus_1", "sub_1", "price_pro_monthly")

        response = await client.post(
            f"{API}/superadmin/businesses/{business.id}/stripe-sync", headers=superadmin_headers
        )

        assert response.status_code == 200
        assert response.json()["fixes_applied"] == 2

    async def test_fix_while_locked_is_409(self, client, stripe_fake, superadmin_headers, make_business):
        business = await make_business(
            plan="STARTER",
            customer_id="cus_1",
            stripe_sync_locked_until=datetime.utcnow() + timedelta(minutes=2),
        )

        response = await client.post(
            f"{API}/superadmin/businesses/{business.id}/stripe-sync", headers=superadmin_headers
        )

        assert response.status_code == 409

    async def test_global_analyze(self, client, superadmin_headers, make_business):
        await make_business(plan="PRO")

        response = await client.get(f"{API}/superadmin/stripe-sync", headers=superadmin_headers)

        assert response.status_code == 200
        assert response.json()["no_stripe_customer"] == 1

    async def test_global_fix_for_selected_businesses(self, client, stripe_fake, superadmin_headers, make_business):
        chosen = await make_business(plan="STARTER", customer_id="cus_1")
        stripe_fake.add_subscription("cus_1", "sub_1", "price_pro_monthly")
        await make_business(plan="STARTER", customer_id="cus_2")
        stripe_fake.add_subscription("cus_2", "sub_2", "price_pro_monthly")

        response = await client.post(
            f"{API}/superadmin/stripe-sync",
            json={"business_ids": [chosen.id]},
            headers=superadmin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_businesses"] == 1
        assert data["total_fixed"] == 1

    async def test_global_fix_without_body(self, client, superadmin_headers):
        response = await client.post(f"{API}/superadmin/stripe-sync", headers=superadmin_headers)

        assert response.status_code == 200
        assert response.json()["total_businesses"] == 0


@pytest.mark.asyncio
class TestAnalyticsEndpoint:
    """Per-business analytics route"""

    async def test_member_can_read(self, client, headers_for, make_business):
        business = await make_business()
        headers = headers_for(role="BUSINESS_OWNER", business_ids=[business.id])

        response = await client.get(
            f"{API}/businesses/{business.id}/analytics",
            params={"startDate": "2026-03-01", "endDate": "2026-03-07"},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["overview"]["total_views"] == 0
        assert len(data["traffic"]["trends"]) == 7
        assert data["period"]["end_date"].startswith("2026-03-07T23:59:59")

    async def test_other_business_forbidden(self, client, headers_for, make_business):
        business = await make_business()
        headers = headers_for(role="BUSINESS_OWNER", business_ids=["someone-else"])

        response = await client.get(f"{API}/businesses/{business.id}/analytics", headers=headers)

        assert response.status_code == 403

    async def test_invalid_date(self, client, superadmin_headers, make_business):
        business = await make_business()

        response = await client.get(
            f"{API}/businesses/{business.id}/analytics",
            params={"startDate": "yesterday", "endDate": "2026-03-07"},
            headers=superadmin_headers,
        )

        assert response.status_code == 400

    async def test_inverted_window(self, client, superadmin_headers, make_business):
        business = await make_business()

        response = await client.get(
            f"{API}/businesses/{business.id}/analytics",
            params={"startDate": "2026-03-10", "endDate": "2026-03-01"},
            headers=superadmin_headers,
        )

        assert response.status_code == 400

    async def test_utc_timestamps_accepted(self, client, superadmin_headers, make_business):
        business = await make_business()

        response = await client.get(
            f"{API}/businesses/{business.id}/analytics",
            params={"startDate": "2026-03-01T00:00:00Z", "endDate": "2026-03-02T00:00:00Z"},
            headers=superadmin_headers,
        )

        assert response.status_code == 200
        assert len(response.json()["traffic"]["trends"]) == 2

    async def test_unknown_business_is_404(self, client, superadmin_headers):
        response = await client.get(f"{API}/businesses/nope/analytics", headers=superadmin_headers)

        assert response.status_code == 404


@pytest.mark.asyncio
class TestCXEndpoint:

    async def test_report(self, client, superadmin_headers, make_business):
        await make_business()

        response = await client.get(f"{API}/superadmin/analytics/cx", params={"range": "7d"}, headers=superadmin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["range"] == "7d"
        assert data["churn"]["data_source"] == "stripe_enhanced"
        assert data["nps"]["score"] is None

    async def test_requires_superadmin(self, client, headers_for):
        headers = headers_for(role="BUSINESS_OWNER")

        response = await client.get(f"{API}/superadmin/analytics/cx", headers=headers)

        assert response.status_code == 403
