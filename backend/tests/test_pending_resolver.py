"""
Pending transaction listing tests.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.payments.pending_resolver import PendingTransactionResolver
from backend.app.models.enums import BalanceType, SourceType
from backend.app.models.expense import Expense
from backend.app.models.income import Income
from backend.app.models.purchase import Purchase
from backend.app.models.sale import Sale


@pytest.mark.asyncio
async def test_current_balance_listed_first(db_session, seed):
    contact = await seed.contact("250", BalanceType.RECEIVABLE)
    await seed.obligation(Sale, contact, "100")

    items = await PendingTransactionResolver(db_session).resolve(contact.id)

    assert [item.ref.source_type for item in items] == [SourceType.CURRENT_BALANCE, SourceType.SALE]
    current = items[0]
    assert current.ref.source_id is None
    assert current.pending_amount == Decimal("250")
    assert current.balance_type == BalanceType.RECEIVABLE


@pytest.mark.asyncio
async def test_settled_contact_has_no_current_balance_item(db_session, seed):
    contact = await seed.contact()

    assert await PendingTransactionResolver(db_session).resolve(contact.id) == []


@pytest.mark.asyncio
async def test_polarity_and_order_by_source(db_session, seed):
    contact = await seed.contact()
    income = await seed.obligation(Income, contact, "40")
    expense = await seed.obligation(Expense, contact, "30")
    purchase = await seed.obligation(Purchase, contact, "20")
    late_sale = await seed.obligation(Sale, contact, "10", on=date(2026, 3, 1))
    early_sale = await seed.obligation(Sale, contact, "15", on=date(2026, 2, 1))

    items = await PendingTransactionResolver(db_session).resolve(contact.id)

    assert [(item.ref.source_type, item.ref.source_id) for item in items] == [
        (SourceType.SALE, early_sale.id),
        (SourceType.SALE, late_sale.id),
        (SourceType.PURCHASE, purchase.id),
        (SourceType.EXPENSE, expense.id),
        (SourceType.INCOME, income.id),
    ]
    assert [item.balance_type for item in items] == [
        BalanceType.RECEIVABLE,
        BalanceType.RECEIVABLE,
        BalanceType.PAYABLE,
        BalanceType.PAYABLE,
        BalanceType.RECEIVABLE,
    ]


@pytest.mark.asyncio
async def test_excludes_paid_deleted_and_other_contacts(db_session, seed):
    contact = await seed.contact()
    other = await seed.contact(name="Other Ltd")
    partly_paid = await seed.obligation(Sale, contact, "100", paid="60")
    await seed.obligation(Sale, contact, "100", paid="100")
    await seed.obligation(Sale, other, "100")
    deleted = await seed.obligation(Purchase, contact, "80")
    deleted.deleted_at = datetime.now(timezone.utc)
    await db_session.commit()

    items = await PendingTransactionResolver(db_session).resolve(contact.id)

    assert len(items) == 1
    assert items[0].ref.source_id == partly_paid.id
    assert items[0].pending_amount == Decimal("40")


@pytest.mark.asyncio
async def test_resolve_is_repeatable(db_session, seed):
    contact = await seed.contact("75", BalanceType.PAYABLE)
    await seed.obligation(Purchase, contact, "75")
    resolver = PendingTransactionResolver(db_session)

    assert await resolver.resolve(contact.id) == await resolver.resolve(contact.id)


@pytest.mark.asyncio
async def test_iter_pending_is_lazy(db_session, seed):
    contact = await seed.contact("5", BalanceType.RECEIVABLE)
    await seed.obligation(Sale, contact, "10")

    stream = PendingTransactionResolver(db_session).iter_pending(contact.id)
    first = await stream.__anext__()
    await stream.aclose()

    assert first.ref.is_current_balance


@pytest.mark.asyncio
async def test_unknown_contact(db_session):
    with pytest.raises(ResourceNotFoundError):
        await PendingTransactionResolver(db_session).resolve(999)
