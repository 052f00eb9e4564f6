"""
Admin Analytics API Endpoints

Sales timeseries for the admin analytics page. Access control runs upstream
of these routes.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
import structlog

from shop_analytics.analytics.filters import DEFAULTS, utc_now
from shop_analytics.analytics.service import AnalyticsService
from shop_analytics.serving.api.dependencies import get_analytics_service

router = APIRouter()
logger = structlog.get_logger(__name__)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class SeriesPointOut(BaseModel):
    """One period of a sales series"""
    period: str
    revenue_cents: int
    orders: int
    units: int
    value: int


class TimeseriesFiltersOut(BaseModel):
    """Normalized filters echoed back"""
    scope: str
    scope_id: Optional[int]
    metric: str
    granularity: str
    range: str


class TimeseriesResponse(BaseModel):
    """Timeseries envelope"""
    filters: TimeseriesFiltersOut
    statuses_included: List[str]
    series: List[SeriesPointOut]


class CategoryOut(BaseModel):
    id: int
    name: str


class ProductOut(BaseModel):
    id: int
    name: str


class AnalyticsOptions(BaseModel):
    """Valid filter values"""
    scopes: List[str]
    metrics: List[str]
    granularities: List[str]
    ranges: List[str]


class BootstrapResponse(BaseModel):
    """Initial analytics page payload"""
    categories: List[CategoryOut]
    defaults: Dict[str, str]
    options: AnalyticsOptions
    series: List[SeriesPointOut]


class CategoryProductsResponse(BaseModel):
    products: List[ProductOut]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/bootstrap", response_model=BootstrapResponse)
async def get_bootstrap(
    service: AnalyticsService = Depends(get_analytics_service),
) -> BootstrapResponse:
    """Categories, defaults, option lists and the default series."""
    payload = await service.bootstrap(utc_now())
    return BootstrapResponse(**payload)


@router.get("/category-products", response_model=CategoryProductsResponse)
async def get_category_products(
    category_id: Optional[int] = Query(None, ge=1),
    service: AnalyticsService = Depends(get_analytics_service),
) -> CategoryProductsResponse:
    """Products for the selector, optionally limited to one category."""
    if category_id is not None and not await service.category_exists(category_id):
        raise HTTPException(status_code=422, detail="The selected category is invalid.")

    products = await service.products_for_category(category_id)
    return CategoryProductsResponse(products=products)


@router.get("/timeseries", response_model=TimeseriesResponse)
async def get_timeseries(
    scope: str = Query(DEFAULTS["scope"]),
    scope_id: Optional[int] = Query(None, ge=1),
    metric: str = Query(DEFAULTS["metric"]),
    granularity: str = Query(DEFAULTS["granularity"]),
    range: str = Query(DEFAULTS["range"]),
    service: AnalyticsService = Depends(get_analytics_service),
) -> TimeseriesResponse:
    """
    Sales series for a scope.

    Unknown scope, metric, granularity or range values fall back to their
    defaults rather than failing the request.
    """
    logger.info(
        "get_timeseries called",
        scope=scope,
        scope_id=scope_id,
        metric=metric,
        granularity=granularity,
        range=range,
    )

    payload = await service.timeseries(
        scope=scope,
        scope_id=scope_id,
        metric=metric,
        granularity=granularity,
        range_=range,
        now=utc_now(),
    )
    return TimeseriesResponse(**payload)
