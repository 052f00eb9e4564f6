"""
Admin Dashboard API Endpoints
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from shop_analytics.analytics.dashboard import (
    DEFAULT_DASHBOARD_GRANULARITY,
    DEFAULT_DASHBOARD_RANGE,
    DashboardMetricsService,
)
from shop_analytics.analytics.filters import utc_now
from shop_analytics.serving.api.dependencies import get_dashboard_service

router = APIRouter()


class DashboardKpis(BaseModel):
    revenue_cents: int
    orders: int
    units: int
    aov_cents: int


class RevenuePoint(BaseModel):
    period: str
    revenue_cents: int
    orders: int
    units: int


class ProductPerformance(BaseModel):
    product_id: Optional[int]
    name: str
    units: int
    revenue_cents: int


class CategoryPeriod(BaseModel):
    """Revenue in cents per category name for one period"""
    period: str
    categories: Dict[str, int]


class CategoryDrilldown(BaseModel):
    category: str
    units: int
    revenue_cents: int
    products: List[ProductPerformance]


class DashboardResponse(BaseModel):
    """Dashboard metrics envelope"""
    filters: Dict[str, str]
    statuses_included: List[str]
    kpis: DashboardKpis
    revenue_over_time: List[RevenuePoint]
    top_products: List[ProductPerformance]
    category_performance: List[CategoryPeriod]
    category_drilldown: List[CategoryDrilldown]


@router.get("/metrics", response_model=DashboardResponse)
async def get_dashboard_metrics(
    range: str = Query(DEFAULT_DASHBOARD_RANGE),
    granularity: str = Query(DEFAULT_DASHBOARD_GRANULARITY.value),
    service: DashboardMetricsService = Depends(get_dashboard_service),
) -> DashboardResponse:
    """KPIs, revenue over time, top products and category breakdowns."""
    payload = await service.build(range, granularity, utc_now())
    return DashboardResponse(**payload)
