"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.models.bank_account import BankAccount
from backend.app.models.contact import Contact
from backend.app.models.enums import BalanceType

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Engine per test so every test gets a clean database on its own event loop
@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def client(session_factory):
    """Async client for testing, wired to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


class LedgerSeeder:
    """Creates committed ledger rows for a test."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def contact(self, balance="0", balance_type=BalanceType.NONE, name="Acme Traders") -> Contact:
        contact = Contact(name=name, balance_amount=Decimal(balance), balance_type=balance_type)
        return await self._save(contact)

    async def bank_account(self, balance="0", name="Main Account") -> BankAccount:
        account = BankAccount(account_name=name, current_balance=Decimal(balance))
        return await self._save(account)

    async def obligation(self, model, contact: Contact, total, paid="0", on=date(2026, 1, 15), reference=None):
        row = model(
            contact_id=contact.id,
            reference=reference,
            date=on,
            total_amount=Decimal(total),
            paid_amount=Decimal(paid),
        )
        return await self._save(row)

    async def _save(self, row):
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return row


@pytest.fixture
def seed(db_session):
    return LedgerSeeder(db_session)
