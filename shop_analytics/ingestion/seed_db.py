"""
Demo Data Seeder

Fills an empty storefront database with Faker-generated categories,
products and orders spread over the last year so the analytics pages have
something to show.

    python -m shop_analytics.ingestion.seed_db
"""

import asyncio
import random
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import List

import structlog
from faker import Faker
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shop_analytics.analytics.filters import utc_now
from shop_analytics.config.logging import configure_logging
from shop_analytics.database.connection import close_database, get_db, init_database
from shop_analytics.database.models import (
    Base,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    Product,
)

logger = structlog.get_logger(__name__)

CATEGORY_NAMES = ["Shoes", "T-Shirts", "Hoodies", "Accessories", "Bags", "Outerwear"]

ORDER_STATUSES = [
    (OrderStatus.PAID.value, 0.45),
    (OrderStatus.SHIPPED.value, 0.35),
    (OrderStatus.PENDING.value, 0.12),
    (OrderStatus.CANCELLED.value, 0.08),
]


def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


async def seed_catalog(db: AsyncSession, fake: Faker, products_per_category: int = 8) -> List[Product]:
    """Create categories and products, each product with a primary category."""
    categories = [Category(name=name, slug=name.lower()) for name in CATEGORY_NAMES]
    db.add_all(categories)

    products = []
    for category in categories:
        for _ in range(products_per_category):
            name = f"{fake.color_name()} {category.name.rstrip('s')} {fake.unique.word().title()}"
            product = Product(
                name=name,
                slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
                price=_money(random.uniform(9, 180)),
                stock=random.randint(0, 250),
                primary_category=category,
            )
            # Some products are also listed under a second category
            extra = random.choice(categories)
            product.categories = [category] if extra is category else [category, extra]
            products.append(product)

    db.add_all(products)
    await db.flush()
    logger.info("Catalog seeded", categories=len(categories), products=len(products))
    return products


async def seed_orders(
    db: AsyncSession,
    fake: Faker,
    products: List[Product],
    count: int = 600,
    days: int = 365,
) -> int:
    """Create orders with one to four lines each, spread over ``days``."""
    now = utc_now()
    statuses, weights = zip(*ORDER_STATUSES)

    for _ in range(count):
        created_at = now - timedelta(
            days=random.randint(0, days - 1),
            seconds=random.randint(0, 86399),
        )
        order = Order(
            public_id=str(uuid.uuid4()),
            status=random.choices(statuses, weights=weights)[0],
            email=fake.email(),
            customer_name=fake.name(),
            placed_at=created_at,
            created_at=created_at,
            updated_at=created_at,
        )

        subtotal = Decimal("0")
        for product in random.sample(products, k=random.randint(1, 4)):
            quantity = random.randint(1, 3)
            line_total = product.price * quantity
            subtotal += line_total
            order.items.append(OrderItem(
                product=product,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.price,
                line_total=line_total,
                created_at=created_at,
                updated_at=created_at,
            ))

        order.subtotal = subtotal
        order.shipping_total = Decimal("0") if subtotal >= 50 else Decimal("4.90")
        order.total = order.subtotal + order.shipping_total
        db.add(order)

    await db.flush()
    logger.info("Orders seeded", orders=count)
    return count


async def seed_demo_data(orders: int = 600, seed: int = 42) -> None:
    """Create the schema if needed and seed demo data into an empty database."""
    random.seed(seed)
    Faker.seed(seed)
    fake = Faker()

    engine = await init_database()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_db() as db:
        existing = (await db.execute(select(func.count()).select_from(Order))).scalar_one()
        if existing:
            logger.warning("Database already has orders, skipping seed", orders=existing)
            return

        products = await seed_catalog(db, fake)
        await seed_orders(db, fake, products, count=orders)

    logger.info("Database seeding completed successfully")


async def main() -> None:
    configure_logging()
    try:
        await seed_demo_data()
    finally:
        await close_database()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
