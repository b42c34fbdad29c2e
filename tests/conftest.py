# tests/conftest.py

import os

# Must be set before tableserve builds its engine and settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV_MODE"] = "development"
os.environ["FEEDBACK_EXPORT_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tableserve.core.config import get_settings
from tableserve.database import Base
from tableserve.models import Order, OrderStatus, OrderType
from tableserve.services.feedback import (
    FeedbackPropagator,
    FeedbackRecord,
    InMemoryOrderStore,
    OrderRecord,
)

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

ZONE_PHONE = "7826482736"


def make_order(id: Any, **overrides) -> OrderRecord:
    """OrderRecord with sensible defaults for a completed single order."""
    fields = {
        "id": id,
        "order_number": f"ORD{id}".upper(),
        "order_type": "single",
        "status": "completed",
        "customer_phone": ZONE_PHONE,
        "customer_name": "Test Customer",
    }
    fields.update(overrides)
    return OrderRecord(**fields)


def rated(rating: int, comment: str = "", minutes_ago: int = 0, is_public: bool = False) -> FeedbackRecord:
    return FeedbackRecord(
        rating=rating,
        comment=comment,
        submitted_at=FIXED_NOW - timedelta(minutes=minutes_ago),
        is_public=is_public,
    )


@pytest.fixture
def clock():
    """Deterministic clock that advances one second per call."""
    ticks = {"n": 0}

    def _now() -> datetime:
        ticks["n"] += 1
        return FIXED_NOW + timedelta(seconds=ticks["n"])

    return _now


@pytest.fixture
def zone_orders() -> list[OrderRecord]:
    """Zone order ZN16FGV with two completed, unrated shop orders."""
    return [
        make_order(
            "mockId123",
            order_number="ZN16FGV",
            order_type="zone_main",
            status="ready",
            child_order_ids=["child1", "child2"],
            zone_id="zone-16",
        ),
        make_order(
            "child1",
            order_number="FGV16XYZ",
            order_type="zone_shop",
            zone_id="zone-16",
            shop_id="shop-1",
            shop_name="Pizza Palace",
            parent_order_id="mockId123",
        ),
        make_order(
            "child2",
            order_number="FGV16ABC",
            order_type="zone_shop",
            zone_id="zone-16",
            shop_id="shop-2",
            shop_name="Curry House",
            parent_order_id="mockId123",
        ),
    ]


@pytest.fixture
def zone_store(zone_orders) -> InMemoryOrderStore:
    return InMemoryOrderStore(zone_orders)


@pytest.fixture
def propagator(zone_store, clock) -> FeedbackPropagator:
    return FeedbackPropagator(zone_store, clock=clock)


@pytest.fixture
def settings_override(monkeypatch, tmp_path):
    """Point file storage at tmp_path; settings are reloaded from the environment."""
    monkeypatch.setenv("DATA_DIRECTORY", str(tmp_path))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def db_session():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    """Session factory over an SQLite file, so separate sessions use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def seed_orders(session: AsyncSession, *orders: Order) -> list[int]:
    """Insert ORM orders and detach them so later reads hit the database."""
    session.add_all(orders)
    await session.commit()
    ids = [order.id for order in orders]
    session.expunge_all()
    return ids


def orm_order(order_number: str, **overrides) -> Order:
    fields = {
        "order_number": order_number,
        "order_type": OrderType.SINGLE,
        "status": OrderStatus.COMPLETED,
        "customer_phone": "(782) 648-2736",
        "customer_name": "Test Customer",
        "child_order_ids": [],
    }
    fields.update(overrides)
    return Order(**fields)
