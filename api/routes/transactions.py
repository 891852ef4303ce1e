"""
Payment and transaction routes.
"""

from datetime import datetime
from decimal import Decimal

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.schemas import DeviceInfo, RefundRequest, TransactionOut
from core.audit import AuditService, audit_to_dict
from db.models import TransactionStatus
from db.session import get_db
from payments.fraud import FraudService, check_to_dict
from payments.schemas import PaymentRequest
from payments.service import PaymentPlatformService
from payments.transactions import TransactionService

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/platforms/{platform_id}/payments", response_model=TransactionOut, status_code=201
)
async def process_payment(
    platform_id: str, payment: PaymentRequest, db: Session = Depends(get_db)
):
    """
    Charge a customer through the given platform integration.

    **Request Example:**
    ```json
    {
        "amount": "97.00",
        "currency": "BRL",
        "payment_method": "pix",
        "customer": {"name": "Ana Souza", "email": "ana@example.com"},
        "order_id": "ORD-1001",
        "metadata": {"utm_campaign": "black_friday"}
    }
    ```

    A platform error still records a failed local transaction before the
    request fails with 502.
    """
    service = PaymentPlatformService(db)
    return await run_in_threadpool(service.process_payment, platform_id, payment)


@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    user_id: str | None = None,
    platform_id: str | None = None,
    status: TransactionStatus | None = None,
    order_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return TransactionService(db).list_transactions(
        user_id=user_id,
        platform_id=platform_id,
        status=status,
        order_id=order_id,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        limit=limit,
        offset=offset,
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionOut)
async def get_transaction(
    transaction_id: int, refresh: bool = False, db: Session = Depends(get_db)
):
    """Local transaction; ``refresh=true`` pulls the platform's current copy first."""
    service = PaymentPlatformService(db)
    return await run_in_threadpool(service.get_transaction, transaction_id, refresh)


@router.post("/transactions/{transaction_id}/refund", response_model=TransactionOut)
async def refund_transaction(
    transaction_id: int,
    refund: RefundRequest | None = None,
    db: Session = Depends(get_db),
):
    refund = refund or RefundRequest()
    service = PaymentPlatformService(db)
    return await run_in_threadpool(
        service.refund_transaction, transaction_id, refund.amount, refund.reason
    )


@router.post("/transactions/{transaction_id}/cancel", response_model=TransactionOut)
async def cancel_transaction(transaction_id: int, db: Session = Depends(get_db)):
    service = PaymentPlatformService(db)
    return await run_in_threadpool(service.cancel_transaction, transaction_id)


@router.get("/transactions/{transaction_id}/audit")
def transaction_audit_trail(transaction_id: int, db: Session = Depends(get_db)):
    TransactionService(db).get(transaction_id)
    trail = AuditService(db).get_audit_trail("transaction", transaction_id)
    return [audit_to_dict(entry) for entry in trail]


@router.post("/transactions/{transaction_id}/fraud-check", status_code=201)
def fraud_check(
    transaction_id: int,
    device: DeviceInfo | None = None,
    db: Session = Depends(get_db),
):
    txn = TransactionService(db).get(transaction_id)
    fingerprint = device.model_dump(exclude_none=True) if device else {}
    check = FraudService(db).analyze_transaction(txn, fingerprint)
    return check_to_dict(check)


@router.get("/transactions/{transaction_id}/fraud-checks")
def transaction_fraud_checks(transaction_id: int, db: Session = Depends(get_db)):
    checks = FraudService(db).get_fraud_checks(transaction_id=transaction_id)
    return [check_to_dict(check) for check in checks]
