import os

# Config refuses to load without a token; tests never talk to Telegram
os.environ.setdefault("BOT_TOKEN", "123456:test-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio
from datetime import date
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from rentalpro.database.core import Base, enable_sqlite_foreign_keys
from rentalpro.database import models


@pytest_asyncio.fixture
async def async_session():
    # Use in-memory SQLite for tests
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def rental_property(async_session):
    prop = models.Property(name="Nhà trọ Hòa Bình", address="12 Lê Lợi", city="TP.HCM", district="Quận 1")
    async_session.add(prop)
    await async_session.commit()
    return prop


async def _add_room(session, prop, room_number="101", rent=3_000_000, status="available", deposit=3_000_000):
    room = models.Room(
        property_id=prop.id,
        room_number=room_number,
        rent_amount=rent,
        deposit_amount=deposit,
        status=status,
        utilities=[],
        images=[],
    )
    session.add(room)
    await session.commit()
    return room


async def _add_tenant(session, full_name="Nguyễn Văn An", phone="0901234567"):
    tenant = models.Tenant(full_name=full_name, phone=phone)
    session.add(tenant)
    await session.commit()
    return tenant


@pytest_asyncio.fixture
async def room(async_session, rental_property):
    return await _add_room(async_session, rental_property)


@pytest_asyncio.fixture
async def tenant(async_session):
    return await _add_tenant(async_session)


@pytest_asyncio.fixture
async def occupied_room(async_session, room, tenant):
    contract = models.RentalContract(
        room_id=room.id,
        tenant_id=tenant.id,
        start_date=date(2025, 1, 1),
        monthly_rent=3_000_000,
        deposit_amount=3_000_000,
        renewal_count=0,
        status="active",
    )
    room.status = "occupied"
    async_session.add(contract)
    await async_session.commit()
    return room


@pytest_asyncio.fixture
async def make_room(async_session, rental_property):
    async def factory(room_number="102", **kwargs):
        prop = kwargs.pop("prop", rental_property)
        return await _add_room(async_session, prop, room_number, **kwargs)
    return factory


@pytest_asyncio.fixture
async def make_tenant(async_session):
    async def factory(full_name="Trần Thị Bình", phone="0912345678"):
        return await _add_tenant(async_session, full_name, phone)
    return factory
