"""
Reconciliation routes: compare local transactions with the platforms' copies.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.schemas import ReconciliationRun, ResolveRequest
from db.session import get_db
from payments.reconciliation import ReconciliationService, reconciliation_to_dict

router = APIRouter()


@router.post("/run")
async def run_reconciliation(data: ReconciliationRun, db: Session = Depends(get_db)):
    """Reconcile every transaction created in the period, one platform lookup each."""
    if data.end_date < data.start_date:
        raise HTTPException(status_code=422, detail="end_date must not precede start_date")
    return await run_in_threadpool(
        ReconciliationService(db).reconcile_transactions,
        data.start_date,
        data.end_date,
        data.platform_id,
    )


@router.get("/pending")
def pending_reconciliations(
    platform_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    items = ReconciliationService(db).get_pending_reconciliations(platform_id, limit)
    return [reconciliation_to_dict(item) for item in items]


@router.get("/mismatched")
def mismatched_reconciliations(
    platform_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    items = ReconciliationService(db).get_mismatched_reconciliations(platform_id, limit)
    return [reconciliation_to_dict(item) for item in items]


@router.get("/{transaction_id}")
def reconciliation_status(transaction_id: int, db: Session = Depends(get_db)):
    item = ReconciliationService(db).get_reconciliation_status(transaction_id)
    if item is None:
        raise HTTPException(
            status_code=404,
            detail=f"No reconciliation for transaction {transaction_id}",
        )
    return reconciliation_to_dict(item)


@router.post("/{transaction_id}/resolve")
def resolve_discrepancy(
    transaction_id: int, data: ResolveRequest, db: Session = Depends(get_db)
):
    item = ReconciliationService(db).resolve_discrepancy(
        transaction_id, data.resolution, data.updates() or None
    )
    return reconciliation_to_dict(item)
