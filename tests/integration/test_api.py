"""
Integration Tests - HTTP API
"""
from datetime import timedelta

import pytest

from shop_analytics.analytics.filters import DEFAULTS, utc_now

BASE = "/api/v1/admin/analytics"


@pytest.fixture
async def catalog(factory):
    shoes = await factory.category("Shoes")
    apparel = await factory.category("Apparel")
    runner = await factory.product("Runner", primary=shoes)
    tee = await factory.product("Tee", primary=apparel, listed_in=[apparel, shoes])
    return {"shoes": shoes, "apparel": apparel, "runner": runner, "tee": tee}


@pytest.fixture
async def sales(factory, catalog):
    # Routes resolve windows against the wall clock
    now = utc_now()
    await factory.order("12.50", "paid", now - timedelta(minutes=5), items=[
        {"product": catalog["runner"], "quantity": 1, "line_total": "12.50"},
    ])
    await factory.order("22.50", "shipped", now - timedelta(minutes=10), items=[
        {"product": catalog["tee"], "quantity": 2, "line_total": "22.50"},
    ])
    await factory.order("80.00", "cancelled", now - timedelta(minutes=15), items=[
        {"product": catalog["tee"], "quantity": 8, "line_total": "80.00"},
    ])


class TestTimeseriesEndpoint:
    """Tests for GET /timeseries"""

    async def test_defaults(self, api_client, sales):
        response = await api_client.get(f"{BASE}/timeseries")

        assert response.status_code == 200
        body = response.json()
        assert body["filters"] == {**DEFAULTS, "scope_id": None}
        assert body["statuses_included"] == ["paid", "shipped"]
        assert sum(p["revenue_cents"] for p in body["series"]) == 3500
        assert sum(p["units"] for p in body["series"]) == 3

    async def test_category_units(self, api_client, sales, catalog):
        response = await api_client.get(
            f"{BASE}/timeseries",
            params={
                "scope": "category",
                "scope_id": catalog["apparel"].id,
                "metric": "units",
                "granularity": "year",
                "range": "7d",
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert [p["value"] for p in body["series"]] == [2]
        assert body["filters"]["scope_id"] == catalog["apparel"].id

    async def test_unknown_values_fall_back(self, api_client, sales):
        response = await api_client.get(
            f"{BASE}/timeseries",
            params={"scope": "galaxy", "metric": "profit", "granularity": "hourly", "range": "5y"},
        )

        assert response.status_code == 200
        assert response.json()["filters"] == {**DEFAULTS, "scope_id": None}

    async def test_invalid_scope_id(self, api_client):
        response = await api_client.get(f"{BASE}/timeseries", params={"scope": "product", "scope_id": 0})

        assert response.status_code == 422


class TestBootstrapEndpoint:
    """Tests for GET /bootstrap"""

    async def test_bootstrap(self, api_client, sales):
        response = await api_client.get(f"{BASE}/bootstrap")

        assert response.status_code == 200
        body = response.json()
        assert [c["name"] for c in body["categories"]] == ["Apparel", "Shoes"]
        assert body["defaults"] == DEFAULTS
        assert body["options"]["scopes"] == ["overall", "category", "product"]
        assert body["options"]["ranges"] == ["7d", "15d", "30d", "60d", "90d", "180d", "360d"]
        assert sum(p["value"] for p in body["series"]) == 3500


class TestCategoryProductsEndpoint:
    """Tests for GET /category-products"""

    async def test_all(self, api_client, catalog):
        response = await api_client.get(f"{BASE}/category-products")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["products"]] == ["Runner", "Tee"]

    async def test_filtered(self, api_client, catalog):
        response = await api_client.get(
            f"{BASE}/category-products", params={"category_id": catalog["apparel"].id}
        )

        assert response.json()["products"] == [{"id": catalog["tee"].id, "name": "Tee"}]

    async def test_unknown_category(self, api_client, catalog):
        response = await api_client.get(f"{BASE}/category-products", params={"category_id": 4242})

        assert response.status_code == 422
        assert response.json()["detail"] == "The selected category is invalid."


class TestDashboardEndpoint:
    """Tests for GET /api/v1/admin/dashboard/metrics"""

    async def test_metrics(self, api_client, sales):
        response = await api_client.get(
            "/api/v1/admin/dashboard/metrics", params={"range": "30d", "granularity": "day"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["filters"] == {"range": "30d", "granularity": "day"}
        assert body["kpis"]["revenue_cents"] == 3500
        assert body["kpis"]["orders"] == 2
        assert body["kpis"]["aov_cents"] == 1750


class TestMiscEndpoints:
    """Tests for service endpoints"""

    async def test_liveness(self, api_client):
        response = await api_client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    async def test_info(self, api_client):
        response = await api_client.get("/api/v1/info")

        assert response.json()["name"] == "shop-analytics"

    async def test_security_headers(self, api_client):
        response = await api_client.get("/api/v1/health/live")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers
