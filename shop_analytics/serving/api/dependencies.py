"""
Shared FastAPI dependencies for the analytics routes.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shop_analytics.analytics.dashboard import DashboardMetricsService
from shop_analytics.analytics.query_builder import RevenueColumns
from shop_analytics.analytics.service import AnalyticsService
from shop_analytics.database.connection import get_db_dependency
from shop_analytics.serving.cache import CacheManager, analytics_cache, dashboard_cache


def get_revenue_columns(request: Request) -> RevenueColumns:
    """Revenue columns resolved during application startup."""
    revenue_columns = getattr(request.app.state, "revenue_columns", None)
    if revenue_columns is None:
        raise RuntimeError("Revenue columns not resolved. Database initialization failed at startup.")
    return revenue_columns


def get_analytics_cache() -> CacheManager:
    return analytics_cache


def get_dashboard_cache() -> CacheManager:
    return dashboard_cache


def get_analytics_service(
    db: AsyncSession = Depends(get_db_dependency),
    cache: CacheManager = Depends(get_analytics_cache),
    revenue_columns: RevenueColumns = Depends(get_revenue_columns),
) -> AnalyticsService:
    return AnalyticsService(db, cache, revenue_columns)


def get_dashboard_service(
    db: AsyncSession = Depends(get_db_dependency),
    cache: CacheManager = Depends(get_dashboard_cache),
    revenue_columns: RevenueColumns = Depends(get_revenue_columns),
) -> DashboardMetricsService:
    return DashboardMetricsService(db, cache, revenue_columns)
