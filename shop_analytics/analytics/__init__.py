"""
Sales Analytics Module
"""
from .aggregator import SalesAggregator, SeriesPoint
from .dashboard import DashboardMetricsService
from .filters import Metric, Scope, TimeseriesFilters, normalize_filters
from .query_builder import Granularity, PeriodDialect, RevenueColumns, resolve_revenue_columns
from .service import AnalyticsService

__all__ = [
    "AnalyticsService",
    "DashboardMetricsService",
    "SalesAggregator",
    "SeriesPoint",
    "Granularity",
    "PeriodDialect",
    "RevenueColumns",
    "resolve_revenue_columns",
    "Metric",
    "Scope",
    "TimeseriesFilters",
    "normalize_filters",
]
