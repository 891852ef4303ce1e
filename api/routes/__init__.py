"""
API Routes Package

This module consolidates all API routes for the payment hub.
"""

from fastapi import APIRouter

from . import audit
from . import fraud
from . import notifications
from . import platforms
from . import reconciliation
from . import reports
from . import transactions
from . import utm
from . import webhooks

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(platforms.router, prefix="/platforms", tags=["platforms"])
router.include_router(transactions.router, tags=["transactions"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
router.include_router(fraud.router, prefix="/fraud", tags=["fraud"])
router.include_router(
    reconciliation.router, prefix="/reconciliation", tags=["reconciliation"]
)
router.include_router(reports.router, prefix="/reports", tags=["reports"])
router.include_router(
    notifications.router, prefix="/notifications", tags=["notifications"]
)
router.include_router(utm.router, prefix="/utm", tags=["utm"])
router.include_router(audit.router, prefix="/audit", tags=["audit"])

# Export for use in main application
__all__ = ["router"]
