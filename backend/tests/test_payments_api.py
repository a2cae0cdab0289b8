"""
Payment and contact ledger API tests.
"""

import logging
import pytest
from decimal import Decimal

from backend.app.core.observability import CorrelationIdFilter, correlation_id_var
from backend.app.models.enums import BalanceType
from backend.app.models.purchase import Purchase
from backend.app.models.sale import Sale
from backend.app.services.audit import AuditAction, get_audit_trail


def payment_body(contact_id, allocations, bank_account_id=None, **extra):
    body = {
        "contact_id": contact_id,
        "bank_account_id": bank_account_id,
        "date": "2026-05-04",
        "allocations": allocations,
    }
    body.update(extra)
    return body


@pytest.mark.asyncio
async def test_create_payment(client, seed, db_session):
    contact = await seed.contact("1000", BalanceType.RECEIVABLE)
    bank = await seed.bank_account()
    sale = await seed.obligation(Sale, contact, "600", reference="INV-1")

    response = await client.post("/v1/payments", json=payment_body(
        contact.id,
        [
            {"source_type": "sale", "source_id": sale.id, "paid_amount": "600.00"},
            {"source_type": "current-balance", "paid_amount": "100.00"},
        ],
        bank_account_id=bank.id,
        adjustment_type="discount",
        adjustment_value="10.00",
        description="May settlement",
    ), headers={"X-Actor": "accountant@acme.test"})

    assert response.status_code == 201
    data = response.json()
    assert data["payment_number"] == f"PY-2026-{data['id']:04d}"
    assert data["payment_type"] == "receipt"
    assert Decimal(data["amount"]) == Decimal("700")
    assert [a["source_type"] for a in data["allocations"]] == ["sale", "current-balance"]
    assert data["allocations"][1]["source_id"] is None

    balance = (await client.get(f"/v1/contacts/{contact.id}/balance")).json()
    assert Decimal(balance["balance_amount"]) == Decimal("290")
    assert balance["balance_type"] == "receivable"

    trail = await get_audit_trail(db_session, entity_type="payment", entity_id=data["id"])
    assert [entry.action for entry in trail] == [AuditAction.PAYMENT_CREATED]
    assert trail[0].actor == "accountant@acme.test"


@pytest.mark.asyncio
async def test_over_allocation_is_a_bad_request(client, seed):
    contact = await seed.contact("100", BalanceType.RECEIVABLE)

    response = await client.post("/v1/payments", json=payment_body(
        contact.id, [{"source_type": "current-balance", "paid_amount": "150"}]
    ))

    assert response.status_code == 400
    data = response.json()
    assert data["error_code"] == "ERR_PAY_003"
    assert data["details"]["rule"] == "OverAllocation"
    assert data["details"]["source_type"] == "current-balance"


@pytest.mark.asyncio
async def test_empty_allocation_is_a_bad_request(client, seed):
    contact = await seed.contact("100", BalanceType.RECEIVABLE)

    response = await client.post("/v1/payments", json=payment_body(contact.id, []))

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PAY_001"


@pytest.mark.asyncio
async def test_request_shape_errors(client, seed):
    contact = await seed.contact("100", BalanceType.RECEIVABLE)
    sale = await seed.obligation(Sale, contact, "100")
    duplicate = {"source_type": "sale", "source_id": sale.id, "paid_amount": "10"}

    responses = [
        await client.post("/v1/payments", json=payment_body(contact.id, [duplicate, duplicate])),
        await client.post("/v1/payments", json=payment_body(
            contact.id, [{"source_type": "sale", "paid_amount": "10"}]
        )),
        await client.post("/v1/payments", json=payment_body(
            contact.id, [{"source_type": "current-balance", "source_id": 1, "paid_amount": "10"}]
        )),
        await client.post("/v1/payments", json=payment_body(
            contact.id, [{"source_type": "invoice", "source_id": 1, "paid_amount": "10"}]
        )),
    ]

    assert [r.status_code for r in responses] == [422, 422, 422, 422]
    assert all(r.json()["error_code"] == "ERR_VALIDATION" for r in responses)


@pytest.mark.asyncio
async def test_unknown_contact_not_found(client):
    response = await client.post("/v1/payments", json=payment_body(
        999, [{"source_type": "current-balance", "paid_amount": "1"}]
    ))

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_update_and_delete_payment(client, seed):
    contact = await seed.contact("500", BalanceType.PAYABLE)
    bank = await seed.bank_account("1000")
    purchase = await seed.obligation(Purchase, contact, "500")
    allocation = {"source_type": "purchase", "source_id": purchase.id, "paid_amount": "500"}

    created = (await client.post(
        "/v1/payments", json=payment_body(contact.id, [allocation], bank_account_id=bank.id)
    )).json()
    assert created["payment_type"] == "payment"

    allocation["paid_amount"] = "200"
    response = await client.put(
        f"/v1/payments/{created['id']}",
        json=payment_body(contact.id, [allocation], bank_account_id=bank.id),
    )
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    assert Decimal(response.json()["amount"]) == Decimal("200")

    pending = (await client.get(f"/v1/contacts/{contact.id}/pending-transactions")).json()
    purchase_item = next(t for t in pending["transactions"] if t["source_type"] == "purchase")
    assert Decimal(purchase_item["pending_amount"]) == Decimal("300")

    response = await client.delete(f"/v1/payments/{created['id']}")
    assert response.status_code == 204

    assert (await client.get(f"/v1/payments/{created['id']}")).status_code == 404
    assert (await client.delete(f"/v1/payments/{created['id']}")).status_code == 404
    balance = (await client.get(f"/v1/contacts/{contact.id}/balance")).json()
    assert Decimal(balance["balance_amount"]) == Decimal("500")
    assert balance["balance_type"] == "payable"


@pytest.mark.asyncio
async def test_list_payments_filters(client, seed):
    first = await seed.contact("1000", BalanceType.RECEIVABLE)
    second = await seed.contact("1000", BalanceType.RECEIVABLE, name="Second Co")
    for contact, amount, description in ((first, "100", "rent"), (first, "200", "goods"), (second, "300", "rent")):
        response = await client.post("/v1/payments", json=payment_body(
            contact.id,
            [{"source_type": "current-balance", "paid_amount": amount}],
            description=description,
        ))
        assert response.status_code == 201

    listing = (await client.get("/v1/payments", params={"contact_id": first.id})).json()
    assert listing["total"] == 2
    assert [Decimal(p["amount"]) for p in listing["payments"]] == [Decimal("200"), Decimal("100")]

    searched = (await client.get("/v1/payments", params={"search": "rent"})).json()
    assert searched["total"] == 2

    paged = (await client.get("/v1/payments", params={"page": 2, "page_size": 2})).json()
    assert paged["total"] == 3
    assert len(paged["payments"]) == 1
    assert paged["page_size"] == 2

    outgoing = (await client.get("/v1/payments", params={"payment_type": "payment"})).json()
    assert outgoing["total"] == 0


@pytest.mark.asyncio
async def test_pending_transactions_for_unknown_contact(client):
    response = await client.get("/v1/contacts/12345/pending-transactions")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_and_correlation_id(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_log_records_carry_correlation_id():
    token = correlation_id_var.set("req-9")
    try:
        record = logging.LogRecord("bookkeeping.payments", logging.INFO, __file__, 1, "Payment committed", None, None)
        CorrelationIdFilter().filter(record)
    finally:
        correlation_id_var.reset(token)

    assert record.correlation_id == "req-9"
