"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import contacts, payments

router = APIRouter()

# Contact ledger views
router.include_router(contacts.router)

# Payment engine
router.include_router(payments.router)
