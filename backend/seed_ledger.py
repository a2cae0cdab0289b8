"""
Database seeding script for a demo ledger.

Creates one customer, one supplier, a bank account and a few open
obligations so the payment endpoints have something to settle.
Run this script after the database is set up (tables are created on startup).
"""

import asyncio
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.bank_account import BankAccount
from backend.app.models.contact import Contact
from backend.app.models.enums import BalanceType
from backend.app.models.expense import Expense
from backend.app.models.purchase import Purchase
from backend.app.models.sale import Sale
from sqlalchemy import select


async def seed_ledger():
    """
    Seed a demo ledger.

    Creates:
    - 1 customer with an opening receivable and two sales
    - 1 supplier with an opening payable, a purchase and an expense
    - 1 bank account
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting ledger seeding...")

        result = await db.execute(
            select(Contact).where(Contact.name == "Demo Customer")
        )
        if result.scalar_one_or_none():
            print("ℹ️  Demo ledger already exists, skipping seeding")
            return

        customer = Contact(
            name="Demo Customer",
            email="customer@example.com",
            balance_amount=Decimal("250.00"),
            balance_type=BalanceType.RECEIVABLE
        )
        supplier = Contact(
            name="Demo Supplier",
            email="supplier@example.com",
            balance_amount=Decimal("120.00"),
            balance_type=BalanceType.PAYABLE
        )
        bank = BankAccount(account_name="Main Account", account_type="bank", current_balance=Decimal("5000.00"))
        db.add_all([customer, supplier, bank])
        await db.flush()
        print(f"✅ Created contacts {customer.id} (customer), {supplier.id} (supplier) and bank account {bank.id}")

        db.add_all([
            Sale(contact_id=customer.id, reference="INV-0001", date=date(2026, 1, 10),
                 due_date=date(2026, 2, 10), total_amount=Decimal("1200.00")),
            Sale(contact_id=customer.id, reference="INV-0002", date=date(2026, 2, 3),
                 due_date=date(2026, 3, 3), total_amount=Decimal("450.00"), paid_amount=Decimal("150.00")),
            Purchase(contact_id=supplier.id, reference="BILL-881", date=date(2026, 1, 22),
                     total_amount=Decimal("800.00")),
            Expense(contact_id=supplier.id, reference="Delivery", date=date(2026, 2, 1),
                    total_amount=Decimal("65.50")),
        ])
        print("✅ Created 2 sales, 1 purchase and 1 expense")

        await db.commit()

        print("\n🎉 Ledger seeding completed successfully!")
        print(f"\nTry: GET /v1/contacts/{customer.id}/pending-transactions")


if __name__ == "__main__":
    asyncio.run(seed_ledger())
