"""
Analytics Filter Normalization

Caller-supplied filters are whitelisted: anything unrecognised silently falls
back to a default instead of raising, so the reporting endpoints stay
permissive.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from shop_analytics.analytics.query_builder import Granularity


class Scope(str, Enum):
    """Dimension a series is computed along"""
    OVERALL = "overall"
    CATEGORY = "category"
    PRODUCT = "product"


class Metric(str, Enum):
    """Numeric field exposed as a series point's ``value``"""
    REVENUE = "revenue"
    UNITS = "units"
    ORDERS = "orders"


RANGE_DAYS: Dict[str, int] = {
    "7d": 7,
    "15d": 15,
    "30d": 30,
    "60d": 60,
    "90d": 90,
    "180d": 180,
    "360d": 360,
}

DEFAULT_SCOPE = Scope.OVERALL
DEFAULT_METRIC = Metric.REVENUE
DEFAULT_GRANULARITY = Granularity.DAY
DEFAULT_RANGE = "90d"

DEFAULTS: Dict[str, str] = {
    "scope": DEFAULT_SCOPE.value,
    "metric": DEFAULT_METRIC.value,
    "granularity": DEFAULT_GRANULARITY.value,
    "range": DEFAULT_RANGE,
}

OPTIONS: Dict[str, list] = {
    "scopes": [s.value for s in Scope],
    "metrics": [m.value for m in Metric],
    "granularities": [g.value for g in Granularity],
    "ranges": list(RANGE_DAYS),
}


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(at: datetime) -> datetime:
    return at.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(at: datetime) -> datetime:
    return at.replace(hour=23, minute=59, second=59, microsecond=999999)


@dataclass(frozen=True)
class DateWindow:
    """Inclusive creation-time window, widened to whole days."""
    start: datetime
    end: datetime

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "DateWindow":
        return cls(start=start_of_day(start), end=end_of_day(end))

    @property
    def days(self) -> int:
        return (self.end.date() - self.start.date()).days + 1


def normalize_scope(value: Any) -> Scope:
    try:
        return Scope(value)
    except ValueError:
        return DEFAULT_SCOPE


def normalize_metric(value: Any) -> Metric:
    try:
        return Metric(value)
    except ValueError:
        return DEFAULT_METRIC


def normalize_granularity(value: Any) -> Granularity:
    return Granularity.coerce(value, DEFAULT_GRANULARITY)


def resolve_range(value: Any, now: datetime) -> Tuple[str, datetime, datetime]:
    """
    Map a range token to ``(token, start, end)``.

    The window ends at ``now`` and starts ``N - 1`` days earlier so it covers
    exactly N calendar days. Unknown tokens resolve to ``90d``.
    """
    token = value if value in RANGE_DAYS else DEFAULT_RANGE
    return token, now - timedelta(days=RANGE_DAYS[token] - 1), now


@dataclass(frozen=True)
class TimeseriesFilters:
    """Normalized timeseries request"""
    scope: Scope
    scope_id: Optional[int]
    metric: Metric
    granularity: Granularity
    range: str
    window: DateWindow

    @property
    def cache_key(self) -> str:
        scope_id = "none" if self.scope_id is None else self.scope_id
        return (
            f"timeseries:{self.scope.value}:{scope_id}:{self.metric.value}"
            f":{self.granularity.value}:{self.range}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "scope_id": self.scope_id,
            "metric": self.metric.value,
            "granularity": self.granularity.value,
            "range": self.range,
        }


def normalize_filters(
    scope: Any,
    scope_id: Optional[int],
    metric: Any,
    granularity: Any,
    range_: Any,
    now: datetime,
) -> TimeseriesFilters:
    """Normalize raw timeseries parameters."""
    normalized_scope = normalize_scope(scope)
    token, start, end = resolve_range(range_, now)

    return TimeseriesFilters(
        scope=normalized_scope,
        scope_id=None if normalized_scope is Scope.OVERALL else scope_id,
        metric=normalize_metric(metric),
        granularity=normalize_granularity(granularity),
        range=token,
        window=DateWindow.between(start, end),
    )
