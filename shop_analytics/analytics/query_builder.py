"""
Sales Query Builder

Translates logical granularities into period-bucketing SQL for the active
database dialect and resolves which monetary columns the storefront schema
carries.

Two schema generations exist in the wild:
- cents:   orders.total_cents / order_items.line_total_cents (integers)
- decimal: orders.total / order_items.line_total (currency amounts)

The generation is resolved once at startup into an immutable
``RevenueColumns`` value that is handed to the aggregator.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional, Set

import structlog
from sqlalchemy import DateTime, Integer, Numeric, String, cast, func, inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql import ColumnElement, column, table

from shop_analytics.config import AnalyticsSettings

logger = structlog.get_logger(__name__)


# =============================================================================
# TABLE CLAUSES
# =============================================================================

# Lightweight clauses: only the columns a query references are rendered, so
# the same statements run against either monetary generation.
orders = table(
    "orders",
    column("id", Integer),
    column("status", String),
    column("created_at", DateTime),
    column("updated_at", DateTime),
    column("total", Numeric(10, 2)),
    column("total_cents", Integer),
)

order_items = table(
    "order_items",
    column("id", Integer),
    column("order_id", Integer),
    column("product_id", Integer),
    column("product_name", String),
    column("quantity", Integer),
    column("updated_at", DateTime),
    column("line_total", Numeric(10, 2)),
    column("line_total_cents", Integer),
)

products = table(
    "products",
    column("id", Integer),
    column("name", String),
    column("primary_category_id", Integer),
)

categories = table(
    "categories",
    column("id", Integer),
    column("name", String),
)


# =============================================================================
# GRANULARITY
# =============================================================================

class Granularity(str, Enum):
    """Time-bucket size of a series"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    SEASON = "season"
    YEAR = "year"

    @classmethod
    def coerce(cls, value: Any, default: "Granularity") -> "Granularity":
        """Return the matching member, or ``default`` for anything unknown."""
        try:
            return cls(value)
        except ValueError:
            return default


class PeriodDialect(str, Enum):
    """Date formatting capability of the database"""
    STRFTIME = "strftime"       # SQLite
    DATE_FORMAT = "date_format"  # MySQL / MariaDB
    TO_CHAR = "to_char"          # PostgreSQL

    @classmethod
    def for_dialect_name(cls, name: str) -> "PeriodDialect":
        if name == "sqlite":
            return cls.STRFTIME
        if name == "postgresql":
            return cls.TO_CHAR
        return cls.DATE_FORMAT


def period_expression(
    granularity: Any,
    dialect: PeriodDialect,
    created_at: Optional[ColumnElement] = None,
) -> ColumnElement:
    """
    Build the period key expression over an order's creation timestamp.

    Keys sort lexicographically in time order:
    day ``YYYY-MM-DD``, week ``YYYY-Www``, month ``YYYY-MM``,
    season ``YYYY-Qn``, year ``YYYY``. Unknown granularities bucket by month.

    Args:
        granularity: Granularity (or its string value)
        dialect: Formatting capability of the target database
        created_at: Timestamp column, ``orders.created_at`` by default

    Returns:
        Expression labelled ``period``
    """
    col = created_at if created_at is not None else orders.c.created_at
    granularity = Granularity.coerce(granularity, Granularity.MONTH)

    if dialect is PeriodDialect.STRFTIME:
        year = func.strftime("%Y", col)
        expressions = {
            Granularity.DAY: func.strftime("%Y-%m-%d", col),
            Granularity.WEEK: func.printf(
                "%s-W%02d", year, cast(func.strftime("%W", col), Integer), type_=String
            ),
            Granularity.MONTH: func.strftime("%Y-%m", col),
            Granularity.SEASON: func.printf(
                "%s-Q%d", year, (cast(func.strftime("%m", col), Integer) + 2) // 3, type_=String
            ),
            Granularity.YEAR: year,
        }
    elif dialect is PeriodDialect.TO_CHAR:
        expressions = {
            Granularity.DAY: func.to_char(col, "YYYY-MM-DD"),
            Granularity.WEEK: func.to_char(col, 'IYYY-"W"IW'),
            Granularity.MONTH: func.to_char(col, "YYYY-MM"),
            Granularity.SEASON: func.to_char(col, 'YYYY-"Q"Q'),
            Granularity.YEAR: func.to_char(col, "YYYY"),
        }
    else:
        expressions = {
            Granularity.DAY: func.date_format(col, "%Y-%m-%d"),
            Granularity.WEEK: func.date_format(col, "%x-W%v"),
            Granularity.MONTH: func.date_format(col, "%Y-%m"),
            Granularity.SEASON: func.concat(func.year(col), "-Q", func.quarter(col)),
            Granularity.YEAR: func.date_format(col, "%Y"),
        }

    return expressions[granularity].label("period")


def period_label(at: datetime, granularity: Any) -> str:
    """Python counterpart of ``period_expression`` for in-memory bucketing."""
    granularity = Granularity.coerce(granularity, Granularity.MONTH)

    if granularity is Granularity.DAY:
        return at.strftime("%Y-%m-%d")
    if granularity is Granularity.WEEK:
        iso_year, iso_week, _ = at.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity is Granularity.SEASON:
        return f"{at.year}-Q{(at.month - 1) // 3 + 1}"
    if granularity is Granularity.YEAR:
        return at.strftime("%Y")
    return at.strftime("%Y-%m")


# =============================================================================
# REVENUE COLUMNS
# =============================================================================

@dataclass(frozen=True)
class RevenueColumns:
    """Which monetary generation each table uses."""
    orders_in_cents: bool = False
    order_items_in_cents: bool = False

    def orders_amount(self) -> ColumnElement:
        return orders.c.total_cents if self.orders_in_cents else orders.c.total

    def order_items_amount(self) -> ColumnElement:
        return order_items.c.line_total_cents if self.order_items_in_cents else order_items.c.line_total


def _mode_to_flag(mode: str, present: Set[str], cents_column: str) -> bool:
    if mode == "cents":
        return True
    if mode == "decimal":
        return False
    return cents_column in present


async def resolve_revenue_columns(
    engine: AsyncEngine,
    config: AnalyticsSettings,
) -> RevenueColumns:
    """
    Resolve the monetary generation once for the lifetime of the process.

    Explicit ``cents`` / ``decimal`` settings win; ``auto`` inspects the
    table columns.
    """
    modes = (config.orders_revenue_column, config.order_items_revenue_column)
    columns: Dict[str, Set[str]] = {"orders": set(), "order_items": set()}

    if "auto" in modes:
        def _inspect(sync_conn) -> Dict[str, Set[str]]:
            inspector = inspect(sync_conn)
            return {
                name: {col["name"] for col in inspector.get_columns(name)}
                for name in ("orders", "order_items")
                if inspector.has_table(name)
            }

        async with engine.connect() as conn:
            columns.update(await conn.run_sync(_inspect))

    resolved = RevenueColumns(
        orders_in_cents=_mode_to_flag(modes[0], columns["orders"], "total_cents"),
        order_items_in_cents=_mode_to_flag(modes[1], columns["order_items"], "line_total_cents"),
    )

    logger.info(
        "Revenue columns resolved",
        orders_in_cents=resolved.orders_in_cents,
        order_items_in_cents=resolved.order_items_in_cents,
        orders_mode=modes[0],
        order_items_mode=modes[1],
    )
    return resolved


# =============================================================================
# CENTS CONVERSION
# =============================================================================

def _round_half_away(value: Decimal) -> int:
    # ROUND_HALF_UP rounds ties away from zero
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(amount: Any) -> int:
    """Convert a currency amount to integer cents, ``round(amount * 100)``."""
    if amount is None:
        return 0
    return _round_half_away(Decimal(str(amount)) * 100)


def revenue_to_cents(raw: Any, in_cents: bool) -> int:
    """Normalize a revenue sum; cents sums are rounded but never re-scaled."""
    if raw is None:
        return 0
    if in_cents:
        return _round_half_away(Decimal(str(raw)))
    return to_cents(raw)
