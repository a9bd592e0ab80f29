"""Test configuration and fixtures"""

import uuid
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import settings
from app.core.timeutils import Clock, DAY_NAMES, to_utc
from app.database import Base, get_db
from app.main import app
from app.models.business import Business, OpeningHours
from app.models.menu import Item
from app.models.order import Order, OrderItem, OrderStatusHistory
from app.schemas.tools import DispatchContext
from app.tools.dispatch import FunctionDispatch
from app.tools.router import get_clock

TIMEZONE = "Asia/Beirut"
CUSTOMER = "+96170111222"

settings.notify_staff_on_order = False


def local(value: str) -> datetime:
    """Business-local ISO wall time to naive UTC"""
    return to_utc(datetime.fromisoformat(value), ZoneInfo(TIMEZONE))


class FixedClock(Clock):
    """Clock pinned to an instant, moved explicitly by tests"""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def set_local(self, value: str):
        self.instant = local(value)

    def advance(self, **kwargs):
        self.instant += timedelta(**kwargs)


async def set_hours(
    db,
    owner_id,
    day,
    open_time=None,
    close_time=None,
    last_order=0,
    is_closed=False,
    owner_type="business",
):
    """Create or replace the opening hours row for one day"""
    result = await db.execute(
        select(OpeningHours).where(
            OpeningHours.owner_type == owner_type,
            OpeningHours.owner_id == owner_id,
            OpeningHours.day_of_week == day,
        )
    )
    hours = result.scalars().first()
    if hours is None:
        hours = OpeningHours(owner_type=owner_type, owner_id=owner_id, day_of_week=day)
        db.add(hours)
    hours.is_closed = is_closed
    hours.open_time = open_time
    hours.close_time = close_time
    hours.last_order_before_closing_minutes = last_order
    await db.commit()
    return hours


async def book(db, business, item, scheduled_for, quantity=1, status="accepted", customer="+96170999888"):
    """Existing scheduled order holding capacity for an item"""
    order = Order(
        business_id=business.id,
        branch_id=business.id,
        cart_id=uuid.uuid4(),
        customer_identifier=customer,
        subtotal_cents=item.price_cents * quantity,
        total_cents=item.price_cents * quantity,
        delivery_type="takeaway",
        scheduled_for=scheduled_for,
        status=status,
        items=[
            OrderItem(
                item_id=item.id,
                name=item.name,
                unit_price_cents=item.price_cents,
                quantity=quantity,
            )
        ],
        history=[OrderStatusHistory(status=status, changed_by="system")],
    )
    db.add(order)
    await db.commit()
    return order


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so each session gets its own connection"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    """Monday 19 October 2026, 12:00 in Beirut"""
    return FixedClock(local("2026-10-19T12:00"))


@pytest.fixture
async def test_business(test_db):
    """Business open 09:00-22:00 Monday to Saturday, closed Sunday"""
    business = Business(
        name="Test Bistro",
        timezone=TIMEZONE,
        allow_scheduled_orders=True,
        delivery_price_cents=300,
        currency_symbol="$",
        latitude=33.8938,
        longitude=35.5018,
        delivery_radius_km=5,
    )
    test_db.add(business)
    await test_db.flush()

    for day in DAY_NAMES:
        if day == "sunday":
            test_db.add(OpeningHours(owner_type="business", owner_id=business.id, day_of_week=day, is_closed=True))
        else:
            test_db.add(
                OpeningHours(
                    owner_type="business",
                    owner_id=business.id,
                    day_of_week=day,
                    is_closed=False,
                    open_time=time(9, 0),
                    close_time=time(22, 0),
                    last_order_before_closing_minutes=0,
                )
            )

    await test_db.commit()
    return business


@pytest.fixture
async def test_menu_items(test_db, test_business):
    """Create test menu items, keyed by name"""
    items = [
        Item(business_id=test_business.id, name="Margherita Pizza", price_cents=1000, category="Pizza"),
        Item(business_id=test_business.id, name="Caesar Salad", price_cents=750, category="Salads"),
        Item(
            business_id=test_business.id,
            name="Seasonal Soup",
            price_cents=600,
            category="Soups",
            is_available=False,
        ),
        Item(
            business_id=test_business.id,
            name="Chef's Table",
            price_cents=20000,
            category="Experiences",
            is_schedulable=True,
            min_schedule_hours=3,
            duration_minutes=120,
            quantity=1,
        ),
        Item(
            business_id=test_business.id,
            name="Party Platter",
            price_cents=5000,
            category="Catering",
            is_schedulable=True,
            available_from=time(12, 0),
            available_to=time(18, 0),
            days_available=["friday", "saturday"],
        ),
        Item(
            business_id=test_business.id,
            name="Catering Tray",
            price_cents=8000,
            category="Catering",
            is_schedulable=True,
            allow_concurrent_bookings=True,
        ),
    ]

    for item in items:
        test_db.add(item)

    await test_db.commit()
    return {item.name: item for item in items}


@pytest.fixture
def run(session_factory, clock, test_business, test_menu_items):
    """Execute a function in its own session, like one webhook request"""
    async def _run(name, arguments=None, customer=CUSTOMER, **context):
        async with session_factory() as db:
            dispatch = FunctionDispatch(db, clock)
            ctx = DispatchContext(
                business_id=context.pop("business_id", test_business.id),
                customer_identifier=customer,
                **context,
            )
            return await dispatch.execute(name, arguments or {}, ctx)

    return _run


@pytest.fixture
def commit(session_factory, clock, test_business):
    """Commit the customer's cart into an order in its own session"""
    async def _commit(customer=CUSTOMER, cart_id=None, **context):
        async with session_factory() as db:
            dispatch = FunctionDispatch(db, clock)
            ctx = DispatchContext(business_id=test_business.id, customer_identifier=customer, **context)
            return await dispatch.commit_order(ctx, cart_id=cart_id, order_source="whatsapp")

    return _commit


@pytest.fixture
async def client(session_factory, clock):
    """Create test client with overridden database and clock"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
