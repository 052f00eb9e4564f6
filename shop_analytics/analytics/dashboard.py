"""
Admin Dashboard Metrics

KPIs, revenue over time, top products and category breakdowns for the admin
dashboard. In-scope orders and their items are loaded once and aggregated in
memory with polars.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import polars as pl
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shop_analytics.analytics.aggregator import timestamp_version
from shop_analytics.analytics.filters import DateWindow
from shop_analytics.analytics.query_builder import (
    Granularity,
    RevenueColumns,
    categories,
    order_items,
    orders,
    period_label,
    products,
    revenue_to_cents,
)
from shop_analytics.database.models import SALES_STATUSES
from shop_analytics.serving.cache import CacheManager

logger = structlog.get_logger(__name__)

DASHBOARD_RANGES = ("30d", "90d", "12m", "ytd")
DASHBOARD_GRANULARITIES = (
    Granularity.DAY,
    Granularity.MONTH,
    Granularity.YEAR,
    Granularity.SEASON,
)
DEFAULT_DASHBOARD_RANGE = "90d"
DEFAULT_DASHBOARD_GRANULARITY = Granularity.MONTH

UNCATEGORIZED = "Uncategorized"
TOP_LIMIT = 10

ORDER_SCHEMA = {
    "order_id": pl.Int64,
    "period": pl.Utf8,
    "revenue_cents": pl.Int64,
}

ITEM_SCHEMA = {
    "order_id": pl.Int64,
    "product_key": pl.Utf8,
    "product_id": pl.Int64,
    "name": pl.Utf8,
    "category": pl.Utf8,
    "quantity": pl.Int64,
    "revenue_cents": pl.Int64,
}


def resolve_dashboard_range(value: Any, now: datetime) -> Tuple[str, datetime, datetime]:
    """
    Map a dashboard range token to ``(token, start, end)``.

    ``12m`` starts on the first day of the month eleven months back and
    ``ytd`` on January 1st. Unknown tokens resolve to ``90d``.
    """
    if value == "30d":
        return "30d", now - timedelta(days=29), now
    if value == "12m":
        year, month = divmod(now.year * 12 + now.month - 1 - 11, 12)
        return "12m", now.replace(year=year, month=month + 1, day=1), now
    if value == "ytd":
        return "ytd", now.replace(month=1, day=1), now
    return DEFAULT_DASHBOARD_RANGE, now - timedelta(days=89), now


def normalize_dashboard_granularity(value: Any) -> Granularity:
    granularity = Granularity.coerce(value, DEFAULT_DASHBOARD_GRANULARITY)
    if granularity not in DASHBOARD_GRANULARITIES:
        return DEFAULT_DASHBOARD_GRANULARITY
    return granularity


def _product_rows(frame: pl.DataFrame) -> List[Dict[str, Any]]:
    return [
        {
            "product_id": row["product_id"],
            "name": row["name"],
            "units": row["units"],
            "revenue_cents": row["revenue_cents"],
        }
        for row in frame.iter_rows(named=True)
    ]


def build_metrics(
    orders_df: pl.DataFrame,
    items_df: pl.DataFrame,
    range_: str,
    granularity: Granularity,
) -> Dict[str, Any]:
    """
    Aggregate loaded orders and items into the dashboard payload.

    Args:
        orders_df: One row per order (``ORDER_SCHEMA``)
        items_df: One row per order item (``ITEM_SCHEMA``)
        range_: Normalized range token, echoed back
        granularity: Normalized granularity, echoed back
    """
    total_orders = orders_df.height
    total_revenue = int(orders_df["revenue_cents"].sum() or 0)
    total_units = int(items_df["quantity"].sum() or 0)

    units_per_order = items_df.group_by("order_id").agg(
        pl.col("quantity").sum().alias("units")
    )

    timeline = (
        orders_df.join(units_per_order, on="order_id", how="left")
        .with_columns(pl.col("units").fill_null(0))
        .group_by("period")
        .agg(
            pl.col("revenue_cents").sum(),
            pl.col("order_id").count().alias("orders"),
            pl.col("units").sum(),
        )
        .sort("period")
    )

    product_totals = (
        items_df.group_by(["category", "product_key"], maintain_order=True)
        .agg(
            pl.col("product_id").first(),
            pl.col("name").first(),
            pl.col("quantity").sum().alias("units"),
            pl.col("revenue_cents").sum(),
        )
    )

    top_products = (
        items_df.group_by("product_key", maintain_order=True)
        .agg(
            pl.col("product_id").first(),
            pl.col("name").first(),
            pl.col("quantity").sum().alias("units"),
            pl.col("revenue_cents").sum(),
        )
        .sort("revenue_cents", descending=True, maintain_order=True)
        .head(TOP_LIMIT)
    )

    per_period_category = (
        items_df.join(orders_df.select(["order_id", "period"]), on="order_id", how="inner")
        .group_by(["period", "category"], maintain_order=True)
        .agg(pl.col("revenue_cents").sum())
        .sort("period", maintain_order=True)
    )
    category_performance: Dict[str, Dict[str, int]] = {}
    for row in per_period_category.iter_rows(named=True):
        category_performance.setdefault(row["period"], {})[row["category"]] = row["revenue_cents"]

    category_totals = (
        items_df.group_by("category", maintain_order=True)
        .agg(
            pl.col("quantity").sum().alias("units"),
            pl.col("revenue_cents").sum(),
        )
        .sort("revenue_cents", descending=True, maintain_order=True)
    )
    drilldown = []
    for row in category_totals.iter_rows(named=True):
        category_products = (
            product_totals.filter(pl.col("category") == row["category"])
            .sort("revenue_cents", descending=True, maintain_order=True)
            .head(TOP_LIMIT)
        )
        drilldown.append({
            "category": row["category"],
            "units": row["units"],
            "revenue_cents": row["revenue_cents"],
            "products": _product_rows(category_products),
        })

    return {
        "filters": {"range": range_, "granularity": granularity.value},
        "statuses_included": list(SALES_STATUSES),
        "kpis": {
            "revenue_cents": total_revenue,
            "orders": total_orders,
            "units": total_units,
            "aov_cents": total_revenue // total_orders if total_orders > 0 else 0,
        },
        "revenue_over_time": timeline.select(
            ["period", "revenue_cents", "orders", "units"]
        ).to_dicts(),
        "top_products": _product_rows(top_products),
        "category_performance": [
            {"period": period, "categories": values}
            for period, values in category_performance.items()
        ],
        "category_drilldown": drilldown,
    }


class DashboardMetricsService:
    """Dashboard metrics over revenue-counted orders."""

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheManager,
        revenue_columns: RevenueColumns,
    ):
        self.session = session
        self.cache = cache
        self.revenue_columns = revenue_columns

    def _in_scope(self, stmt, window: DateWindow):
        return stmt.where(
            orders.c.status.in_(SALES_STATUSES),
            orders.c.created_at.between(window.start, window.end),
        )

    async def build(self, range_: Any, granularity: Any, now: datetime) -> Dict[str, Any]:
        """
        Dashboard payload, cached until the in-scope orders change.

        Returns:
            ``{filters, statuses_included, kpis, revenue_over_time,
            top_products, category_performance, category_drilldown}``
        """
        token, start, end = resolve_dashboard_range(range_, now)
        normalized_granularity = normalize_dashboard_granularity(granularity)
        window = DateWindow.between(start, end)

        async def version() -> str:
            stmt = self._in_scope(
                select(func.count(), func.max(orders.c.updated_at)).select_from(orders),
                window,
            )
            count, latest = (await self.session.execute(stmt)).one()
            return f"{count}:{timestamp_version(latest)}"

        async def compute() -> Dict[str, Any]:
            orders_df, items_df = await self.load(window, normalized_granularity)
            payload = build_metrics(orders_df, items_df, token, normalized_granularity)
            logger.info(
                "Dashboard metrics computed",
                range=token,
                granularity=normalized_granularity.value,
                orders=payload["kpis"]["orders"],
            )
            return payload

        return await self.cache.compute_if_stale(
            f"{token}:{normalized_granularity.value}", version, compute
        )

    async def load(
        self,
        window: DateWindow,
        granularity: Granularity,
    ) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """Load in-scope orders and their items as DataFrames."""
        order_stmt = self._in_scope(
            select(
                orders.c.id,
                orders.c.created_at,
                self.revenue_columns.orders_amount().label("amount"),
            ),
            window,
        ).order_by(orders.c.created_at, orders.c.id)

        item_stmt = self._in_scope(
            select(
                order_items.c.order_id,
                order_items.c.product_id,
                order_items.c.product_name,
                order_items.c.quantity,
                self.revenue_columns.order_items_amount().label("amount"),
                categories.c.name.label("category_name"),
            ).select_from(
                order_items.join(orders, orders.c.id == order_items.c.order_id)
                .outerjoin(products, products.c.id == order_items.c.product_id)
                .outerjoin(categories, categories.c.id == products.c.primary_category_id)
            ),
            window,
        ).order_by(order_items.c.order_id, order_items.c.id)

        order_rows = (await self.session.execute(order_stmt)).all()
        item_rows = (await self.session.execute(item_stmt)).all()

        orders_df = pl.DataFrame(
            {
                "order_id": [row.id for row in order_rows],
                "period": [period_label(_as_datetime(row.created_at), granularity) for row in order_rows],
                "revenue_cents": [
                    revenue_to_cents(row.amount, self.revenue_columns.orders_in_cents)
                    for row in order_rows
                ],
            },
            schema=ORDER_SCHEMA,
        )

        items_df = pl.DataFrame(
            {
                "order_id": [row.order_id for row in item_rows],
                "product_key": [_product_key(row.product_id, row.product_name) for row in item_rows],
                "product_id": [row.product_id for row in item_rows],
                "name": [str(row.product_name) for row in item_rows],
                "category": [row.category_name or UNCATEGORIZED for row in item_rows],
                "quantity": [int(row.quantity) for row in item_rows],
                "revenue_cents": [
                    revenue_to_cents(row.amount, self.revenue_columns.order_items_in_cents)
                    for row in item_rows
                ],
            },
            schema=ITEM_SCHEMA,
        )

        return orders_df, items_df


def _product_key(product_id: Optional[int], name: str) -> str:
    # Deleted products are grouped by their snapshot name
    return f"product-{product_id}" if product_id is not None else f"name-{name}"


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value
