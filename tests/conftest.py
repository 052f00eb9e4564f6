"""
Test Suite Configuration
"""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    insert,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shop_analytics.analytics.query_builder import RevenueColumns
from shop_analytics.config import Settings
from shop_analytics.database.connection import get_db_dependency
from shop_analytics.database.models import Base, Category, Order, OrderItem, Product, category_product
from shop_analytics.serving.api.dependencies import get_analytics_cache, get_dashboard_cache
from shop_analytics.serving.api.main import create_api_app
from shop_analytics.serving.cache import CacheManager

NOW = datetime(2025, 3, 15, 12, 0, 0)


def _memory_engine() -> AsyncEngine:
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the decimal storefront schema"""
    engine = _memory_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """In-memory Redis"""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def test_cache(redis_client) -> CacheManager:
    return CacheManager("test_analytics", default_ttl=600, client=redis_client)


# =============================================================================
# DATA FACTORY
# =============================================================================

class SalesFactory:
    """
    Inserts storefront rows for a test.

    Timestamps are always explicit so version tokens are deterministic.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def category(self, name: str, updated_at: Optional[datetime] = None) -> Category:
        stamp = updated_at or NOW - timedelta(days=30)
        category = Category(
            name=name,
            slug=f"{name.lower()}-{uuid.uuid4().hex[:6]}",
            created_at=stamp,
            updated_at=stamp,
        )
        self.session.add(category)
        await self.session.flush()
        return category

    async def product(
        self,
        name: str,
        primary: Optional[Category] = None,
        listed_in: Optional[List[Category]] = None,
        price: str = "10.00",
    ) -> Product:
        product = Product(
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
            price=Decimal(price),
            primary_category_id=primary.id if primary is not None else None,
        )
        self.session.add(product)
        await self.session.flush()

        links = listed_in if listed_in is not None else ([primary] if primary is not None else [])
        for category in links:
            await self.session.execute(
                insert(category_product).values(category_id=category.id, product_id=product.id)
            )
        return product

    async def order(
        self,
        total: str,
        status: str = "paid",
        created_at: datetime = NOW,
        updated_at: Optional[datetime] = None,
        items: Optional[List[Dict]] = None,
    ) -> Order:
        """
        Create an order and its lines.

        Each item is a dict with ``product`` (or ``None``), ``quantity``,
        ``line_total`` and optionally ``name`` and ``updated_at``.
        """
        stamp = updated_at or created_at
        order = Order(
            public_id=str(uuid.uuid4()),
            status=status,
            email="buyer@example.com",
            customer_name="Test Buyer",
            subtotal=Decimal(total),
            total=Decimal(total),
            placed_at=created_at,
            created_at=created_at,
            updated_at=stamp,
        )
        self.session.add(order)
        await self.session.flush()

        for item in items or []:
            product = item.get("product")
            quantity = item["quantity"]
            line_total = Decimal(item["line_total"])
            self.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id if product is not None else None,
                product_name=item.get("name") or (product.name if product is not None else "Deleted product"),
                quantity=quantity,
                unit_price=line_total / quantity,
                line_total=line_total,
                created_at=created_at,
                updated_at=item.get("updated_at", stamp),
            ))

        await self.session.commit()
        return order


@pytest.fixture
def factory(test_db) -> SalesFactory:
    return SalesFactory(test_db)


# =============================================================================
# CENTS SCHEMA
# =============================================================================

cents_metadata = MetaData()

Table(
    "categories",
    cents_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("updated_at", DateTime),
)

Table(
    "products",
    cents_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("primary_category_id", Integer),
)

Table(
    "orders",
    cents_metadata,
    Column("id", Integer, primary_key=True),
    Column("status", String(20), nullable=False),
    Column("total_cents", Integer, nullable=False),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

Table(
    "order_items",
    cents_metadata,
    Column("id", Integer, primary_key=True),
    Column("order_id", Integer, nullable=False),
    Column("product_id", Integer),
    Column("product_name", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("line_total_cents", Integer, nullable=False),
    Column("updated_at", DateTime),
)


@pytest.fixture
async def cents_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine over the older schema generation storing integer cents"""
    engine = _memory_engine()

    async with engine.begin() as conn:
        await conn.run_sync(cents_metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def cents_db(cents_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(bind=cents_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# API
# =============================================================================

@pytest.fixture
async def api_client(test_db, redis_client) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app wired to the test database and Redis"""
    app = create_api_app()
    app.state.revenue_columns = RevenueColumns()

    async def _db_override():
        yield test_db

    app.dependency_overrides[get_db_dependency] = _db_override
    app.dependency_overrides[get_analytics_cache] = lambda: CacheManager(
        "test_analytics", default_ttl=600, client=redis_client
    )
    app.dependency_overrides[get_dashboard_cache] = lambda: CacheManager(
        "test_dashboard", default_ttl=600, client=redis_client
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
