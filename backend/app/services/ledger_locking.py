"""
Row locking for the ledger tables.

Every payment operation locks the rows it will mutate before reading any
balance, always in the same order to avoid deadlocks:

    payment -> contacts -> bank accounts -> obligations

Within each table rows are locked by ascending id.
"""

from typing import Dict, Iterable

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.domain.payments.sources import SOURCE_MODELS, SOURCE_ORDER
from backend.app.domain.payments.types import TransactionRef
from backend.app.models.bank_account import BankAccount
from backend.app.models.contact import Contact
from backend.app.models.payment import Payment


def dialect_name(db: AsyncSession) -> str:
    return db.bind.dialect.name if db.bind is not None else ""


async def set_lock_timeout(db: AsyncSession) -> None:
    """
    Bound lock waits for the current transaction.

    PostgreSQL only; SQLite waits on its own busy timeout.
    """
    if dialect_name(db) == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = {int(settings.lock_timeout_ms)}"))


async def lock_rows(db: AsyncSession, model, ids: Iterable[int]) -> Dict[int, object]:
    """
    Exclusively lock rows of one table and return them freshly loaded.

    Args:
        db: Database session (inside the operation's transaction)
        model: Mapped class to lock
        ids: Primary keys to lock

    Returns:
        Mapping of id -> row for the rows that exist
    """
    ids = sorted(set(i for i in ids if i is not None))
    if not ids:
        return {}

    if dialect_name(db) == "sqlite":
        # No row locks on SQLite: a no-op write takes the database write lock
        await db.execute(
            update(model)
            .where(model.id.in_(ids))
            .values(id=model.id)
            .execution_options(synchronize_session=False)
        )

    result = await db.execute(
        select(model)
        .where(model.id.in_(ids))
        .order_by(model.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {row.id: row for row in result.scalars()}


async def lock_payment(db: AsyncSession, payment_id: int):
    rows = await lock_rows(db, Payment, [payment_id])
    return rows.get(payment_id)


async def lock_contacts(db: AsyncSession, contact_ids: Iterable[int]) -> Dict[int, Contact]:
    return await lock_rows(db, Contact, contact_ids)


async def lock_bank_accounts(db: AsyncSession, bank_account_ids: Iterable[int]) -> Dict[int, BankAccount]:
    return await lock_rows(db, BankAccount, bank_account_ids)


async def lock_obligations(db: AsyncSession, refs: Iterable[TransactionRef]) -> Dict[TransactionRef, object]:
    """
    Lock the obligation rows behind a set of references.

    The current-balance reference has no row and is skipped. Deleted rows
    are still returned; callers decide whether they may receive new money.
    """
    refs = set(refs)
    locked: Dict[TransactionRef, object] = {}
    for source_type in SOURCE_ORDER:
        ids = [ref.source_id for ref in refs if ref.source_type == source_type]
        rows = await lock_rows(db, SOURCE_MODELS[source_type], ids)
        for row_id, row in rows.items():
            locked[TransactionRef(source_type, row_id)] = row
    return locked
