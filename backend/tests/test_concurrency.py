"""
Concurrency tests.

Two payments against the same contact must serialize: the second one reads
what the first committed. Runs on a file-backed SQLite database so each
session has its own connection.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.app.core.exceptions import PaymentValidationError
from backend.app.db.session import Base
from backend.app.domain.payments.reconciliation import PaymentCommand, ReconciliationService
from backend.app.domain.payments.types import AllocationRequest, CURRENT_BALANCE_REF, TransactionRef
from backend.app.models.bank_account import BankAccount
from backend.app.models.contact import Contact
from backend.app.models.enums import BalanceType, SourceType
from backend.app.models.sale import Sale
from backend.app.core.config import settings
from backend.app.services.ledger_locking import lock_rows, set_lock_timeout


@pytest.fixture
async def file_sessions(tmp_path):
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await file_engine.dispose()


async def seed_contact(factory, balance):
    async with factory() as session:
        contact = Contact(name="Shared Customer", balance_amount=Decimal(balance), balance_type=BalanceType.RECEIVABLE)
        bank = BankAccount(account_name="Main Account", current_balance=Decimal("0"))
        session.add_all([contact, bank])
        await session.commit()
        return contact.id, bank.id


async def settle(factory, contact_id, bank_id, amount):
    async with factory() as session:
        return await ReconciliationService(session).create_payment(PaymentCommand(
            contact_id=contact_id,
            bank_account_id=bank_id,
            date=date(2026, 5, 4),
            allocations=[AllocationRequest(CURRENT_BALANCE_REF, Decimal(amount))],
        ))


async def read_balances(factory, contact_id, bank_id):
    async with factory() as session:
        contact = await session.get(Contact, contact_id)
        bank = await session.get(BankAccount, bank_id)
        return contact.balance_amount, contact.balance_type, bank.current_balance


@pytest.mark.asyncio
async def test_concurrent_creates_both_apply(file_sessions):
    contact_id, bank_id = await seed_contact(file_sessions, "1000")

    await asyncio.gather(
        settle(file_sessions, contact_id, bank_id, "400"),
        settle(file_sessions, contact_id, bank_id, "400"),
    )

    amount, balance_type, bank_balance = await read_balances(file_sessions, contact_id, bank_id)
    assert amount == Decimal("200")
    assert balance_type == BalanceType.RECEIVABLE
    assert bank_balance == Decimal("800")


@pytest.mark.asyncio
async def test_second_create_sees_first_commit(file_sessions):
    contact_id, bank_id = await seed_contact(file_sessions, "1000")

    results = await asyncio.gather(
        settle(file_sessions, contact_id, bank_id, "600"),
        settle(file_sessions, contact_id, bank_id, "600"),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], PaymentValidationError)
    assert failures[0].rule == "OverAllocation"
    assert failures[0].details["ceiling"] == "400.00"

    amount, _, bank_balance = await read_balances(file_sessions, contact_id, bank_id)
    assert amount == Decimal("400")
    assert bank_balance == Decimal("600")


@pytest.mark.asyncio
async def test_locks_taken_in_fixed_order(engine, db_session, seed):
    contact = await seed.contact("100", BalanceType.RECEIVABLE)
    bank = await seed.bank_account()
    sale = await seed.obligation(Sale, contact, "50")
    service = ReconciliationService(db_session)
    created = await service.create_payment(PaymentCommand(
        contact_id=contact.id,
        bank_account_id=bank.id,
        date=date(2026, 5, 4),
        allocations=[AllocationRequest(TransactionRef(SourceType.SALE, sale.id), Decimal("50"))],
    ))

    statements = []

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def capture(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("UPDATE"):
            statements.append(statement.split()[1].strip('"'))

    try:
        await service.delete_payment(created.payment.id)
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", capture)

    lock_phase = statements[:4]
    assert lock_phase == ["payments", "contacts", "bank_accounts", "sales"]


@pytest.mark.asyncio
async def test_row_lock_is_select_for_update_on_postgresql(mocker):
    result = mocker.MagicMock()
    result.scalars.return_value = []
    db = mocker.MagicMock()
    db.bind.dialect.name = "postgresql"
    db.execute = mocker.AsyncMock(return_value=result)

    await lock_rows(db, Contact, [2, 1, 2])

    assert db.execute.await_count == 1
    sql = str(db.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE" in sql
    assert "ORDER BY contacts.id" in sql


@pytest.mark.asyncio
async def test_lock_timeout_set_per_transaction_on_postgresql(mocker):
    db = mocker.MagicMock()
    db.bind.dialect.name = "postgresql"
    db.execute = mocker.AsyncMock()

    await set_lock_timeout(db)

    assert str(db.execute.await_args.args[0]) == f"SET LOCAL lock_timeout = {settings.lock_timeout_ms}"
