"""
Admin Analytics Service

Drives the normalize -> cache -> aggregate pipeline and shapes the JSON
envelopes served to the admin dashboard.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shop_analytics.analytics.aggregator import SalesAggregator, SeriesPoint, timestamp_version
from shop_analytics.analytics.filters import (
    DEFAULTS,
    OPTIONS,
    Metric,
    TimeseriesFilters,
    normalize_filters,
)
from shop_analytics.analytics.query_builder import PeriodDialect, RevenueColumns
from shop_analytics.database.models import SALES_STATUSES, Category, Product, category_product
from shop_analytics.serving.cache import CacheManager

logger = structlog.get_logger(__name__)


def metric_value(point: SeriesPoint, metric: Metric) -> int:
    """Pick the numeric field a metric refers to."""
    if metric is Metric.UNITS:
        return point.units
    if metric is Metric.ORDERS:
        return point.orders
    return point.revenue_cents


class AnalyticsService:
    """
    Sales analytics for the admin back office.

    Example:
        service = AnalyticsService(db, analytics_cache, revenue_columns)
        payload = await service.timeseries("category", 3, "units", "week", "30d", now)
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheManager,
        revenue_columns: RevenueColumns,
        dialect: Optional[PeriodDialect] = None,
    ):
        self.session = session
        self.cache = cache
        self.aggregator = SalesAggregator(session, revenue_columns, dialect)

    async def timeseries(
        self,
        scope: Any,
        scope_id: Optional[int],
        metric: Any,
        granularity: Any,
        range_: Any,
        now: datetime,
    ) -> Dict[str, Any]:
        """
        Revenue / orders / units series for a scope.

        Unknown filter values fall back to their defaults. The result is
        cached until the in-scope orders or order items change.

        Returns:
            ``{filters, statuses_included, series}``
        """
        filters = normalize_filters(scope, scope_id, metric, granularity, range_, now)

        async def version() -> str:
            return await self.aggregator.version_token(
                filters.scope, filters.scope_id, filters.window
            )

        async def compute() -> Dict[str, Any]:
            return await self._build_timeseries(filters)

        return await self.cache.compute_if_stale(filters.cache_key, version, compute)

    async def _build_timeseries(self, filters: TimeseriesFilters) -> Dict[str, Any]:
        points = await self.aggregator.series(filters)

        series = []
        for point in points:
            row = point.to_dict()
            row["value"] = metric_value(point, filters.metric)
            series.append(row)

        logger.info(
            "Timeseries computed",
            **filters.to_dict(),
            points=len(series),
        )

        return {
            "filters": filters.to_dict(),
            "statuses_included": list(SALES_STATUSES),
            "series": series,
        }

    async def bootstrap(self, now: datetime) -> Dict[str, Any]:
        """
        Initial payload of the analytics page.

        Categories, defaults, option lists and the default series, cached
        until a category changes.
        """
        async def version() -> str:
            latest = (await self.session.execute(select(func.max(Category.updated_at)))).scalar_one_or_none()
            return timestamp_version(latest)

        async def compute() -> Dict[str, Any]:
            categories = await self.session.execute(
                select(Category.id, Category.name).order_by(Category.name)
            )
            timeseries = await self.timeseries(
                scope=DEFAULTS["scope"],
                scope_id=None,
                metric=DEFAULTS["metric"],
                granularity=DEFAULTS["granularity"],
                range_=DEFAULTS["range"],
                now=now,
            )
            return {
                "categories": [
                    {"id": int(row.id), "name": str(row.name)} for row in categories.all()
                ],
                "defaults": dict(DEFAULTS),
                "options": {key: list(values) for key, values in OPTIONS.items()},
                "series": timeseries["series"],
            }

        return await self.cache.compute_if_stale("bootstrap", version, compute)

    async def products_for_category(self, category_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Products for the product selector, sorted by name.

        Args:
            category_id: Only products linked to this category; all products
                when omitted
        """
        async def compute() -> List[Dict[str, Any]]:
            stmt = select(Product.id, Product.name).order_by(Product.name)
            if category_id is not None:
                stmt = stmt.join(
                    category_product, category_product.c.product_id == Product.id
                ).where(category_product.c.category_id == category_id)

            result = await self.session.execute(stmt)
            return [{"id": int(row.id), "name": str(row.name)} for row in result.all()]

        key = f"category_products:{'all' if category_id is None else category_id}"
        return await self.cache.get_or_set(key, compute)

    async def category_exists(self, category_id: int) -> bool:
        result = await self.session.execute(
            select(Category.id).where(Category.id == category_id)
        )
        return result.first() is not None
