"""
Sales Aggregator

Runs the grouped revenue / orders / units queries behind the analytics
timeseries. Only orders in a revenue-counted status (paid, shipped) created
inside the requested window contribute.

Two query shapes:
- overall: orders grouped by period, with units summed from order items
  and merged in by period key
- scoped:  order items joined to orders (and products for category
  attribution), counting distinct orders per period
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from shop_analytics.analytics.filters import DateWindow, Scope, TimeseriesFilters
from shop_analytics.analytics.query_builder import (
    Granularity,
    PeriodDialect,
    RevenueColumns,
    order_items,
    orders,
    period_expression,
    products,
    revenue_to_cents,
)
from shop_analytics.database.models import SALES_STATUSES

logger = structlog.get_logger(__name__)

NO_VERSION = "none"

_period = literal_column("period")


@dataclass
class SeriesPoint:
    """One period bucket of a sales series"""
    period: str
    revenue_cents: int
    orders: int
    units: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def timestamp_version(value: Any) -> str:
    """Format a timestamp as a sortable ``YYYYMMDDHHMMSS`` token."""
    if value is None:
        return NO_VERSION
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%Y%m%d%H%M%S")


def max_version(*values: Any) -> str:
    """Lexicographically greatest timestamp token, ``none`` if all missing."""
    versions = [v for v in map(timestamp_version, values) if v != NO_VERSION]
    return max(versions) if versions else NO_VERSION


class SalesAggregator:
    """
    Grouped sales queries for one database session.

    Example:
        aggregator = SalesAggregator(db, revenue_columns, PeriodDialect.TO_CHAR)
        points = await aggregator.series(filters)
    """

    def __init__(
        self,
        session: AsyncSession,
        revenue_columns: RevenueColumns,
        dialect: Optional[PeriodDialect] = None,
    ):
        self.session = session
        self.revenue_columns = revenue_columns
        self.dialect = dialect or PeriodDialect.for_dialect_name(
            session.get_bind().dialect.name
        )

    # -------------------------------------------------------------------------
    # Query fragments
    # -------------------------------------------------------------------------

    @staticmethod
    def _in_scope_orders(stmt: Select, window: DateWindow) -> Select:
        return stmt.where(
            orders.c.status.in_(SALES_STATUSES),
            orders.c.created_at.between(window.start, window.end),
        )

    @staticmethod
    def _items_from():
        return order_items.join(orders, orders.c.id == order_items.c.order_id)

    @staticmethod
    def _apply_dimension(stmt: Select, scope: Scope, scope_id: Optional[int]) -> Select:
        # A missing id means no dimension filter for either scope
        if scope_id is None:
            return stmt
        if scope is Scope.CATEGORY:
            return stmt.where(products.c.primary_category_id == scope_id)
        if scope is Scope.PRODUCT:
            return stmt.where(order_items.c.product_id == scope_id)
        return stmt

    def _scoped_items_from(self):
        return self._items_from().outerjoin(
            products, products.c.id == order_items.c.product_id
        )

    # -------------------------------------------------------------------------
    # Series
    # -------------------------------------------------------------------------

    async def series(self, filters: TimeseriesFilters) -> List[SeriesPoint]:
        """Series for normalized filters, dispatching on scope."""
        if filters.scope is Scope.OVERALL:
            return await self.overall_series(filters.granularity, filters.window)
        return await self.scoped_series(
            filters.scope, filters.scope_id, filters.granularity, filters.window
        )

    async def overall_series(
        self,
        granularity: Granularity,
        window: DateWindow,
    ) -> List[SeriesPoint]:
        """
        Revenue and order counts from the orders table, units from order items.

        Periods come from the orders query; a period without matching items
        gets ``units = 0``.
        """
        period = period_expression(granularity, self.dialect)
        in_cents = self.revenue_columns.orders_in_cents

        order_stmt = self._in_scope_orders(
            select(
                period,
                func.sum(self.revenue_columns.orders_amount()).label("revenue_total"),
                func.count().label("orders_count"),
            ).select_from(orders),
            window,
        ).group_by(_period).order_by(_period)

        units_stmt = self._in_scope_orders(
            select(
                period,
                func.sum(order_items.c.quantity).label("units_count"),
            ).select_from(self._items_from()),
            window,
        ).group_by(_period)

        order_rows = (await self.session.execute(order_stmt)).all()
        units_by_period = {
            str(row.period): int(row.units_count or 0)
            for row in (await self.session.execute(units_stmt)).all()
        }

        points = [
            SeriesPoint(
                period=str(row.period or ""),
                revenue_cents=revenue_to_cents(row.revenue_total, in_cents),
                orders=int(row.orders_count or 0),
                units=units_by_period.get(str(row.period or ""), 0),
            )
            for row in order_rows
        ]

        logger.debug(
            "Overall series computed",
            granularity=granularity.value,
            points=len(points),
        )
        return points

    async def scoped_series(
        self,
        scope: Scope,
        scope_id: Optional[int],
        granularity: Granularity,
        window: DateWindow,
    ) -> List[SeriesPoint]:
        """
        Series sourced from order items for a category or product.

        Category attribution uses the product's primary category. Orders are
        counted distinctly since one order may hold several matching items.
        """
        period = period_expression(granularity, self.dialect)
        in_cents = self.revenue_columns.order_items_in_cents

        stmt = self._in_scope_orders(
            select(
                period,
                func.sum(self.revenue_columns.order_items_amount()).label("revenue_total"),
                func.sum(order_items.c.quantity).label("units_count"),
                func.count(func.distinct(orders.c.id)).label("orders_count"),
            ).select_from(self._scoped_items_from()),
            window,
        )
        stmt = self._apply_dimension(stmt, scope, scope_id).group_by(_period).order_by(_period)

        points = [
            SeriesPoint(
                period=str(row.period or ""),
                revenue_cents=revenue_to_cents(row.revenue_total, in_cents),
                orders=int(row.orders_count or 0),
                units=int(row.units_count or 0),
            )
            for row in (await self.session.execute(stmt)).all()
        ]

        logger.debug(
            "Scoped series computed",
            scope=scope.value,
            scope_id=scope_id,
            granularity=granularity.value,
            points=len(points),
        )
        return points

    # -------------------------------------------------------------------------
    # Freshness
    # -------------------------------------------------------------------------

    async def version_token(
        self,
        scope: Scope,
        scope_id: Optional[int],
        window: DateWindow,
    ) -> str:
        """
        Summarize the freshness of the data behind a series.

        ``<in-scope order count>:<latest updated_at>`` where the timestamp is
        the greater of the in-scope orders and of the order items scoped
        exactly like the series.
        """
        count_stmt = self._in_scope_orders(
            select(func.count()).select_from(orders), window
        )
        latest_order_stmt = self._in_scope_orders(
            select(func.max(orders.c.updated_at)).select_from(orders), window
        )
        latest_item_stmt = self._apply_dimension(
            self._in_scope_orders(
                select(func.max(order_items.c.updated_at)).select_from(self._scoped_items_from()),
                window,
            ),
            scope,
            scope_id,
        )

        orders_count = (await self.session.execute(count_stmt)).scalar_one()
        latest_order = (await self.session.execute(latest_order_stmt)).scalar_one_or_none()
        latest_item = (await self.session.execute(latest_item_stmt)).scalar_one_or_none()

        return f"{orders_count}:{max_version(latest_order, latest_item)}"
