"""
Platform integration routes: CRUD, status, metrics and provider-side listings.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.schemas import PlatformCreate, PlatformUpdate
from db.session import get_db
from payments.integrations import integration_to_dict
from payments.platform_metrics import PlatformMetricsService, snapshot_to_dict
from payments.reconciliation import ReconciliationService
from payments.registry import available_platforms
from payments.service import PaymentPlatformService
from payments.status import PlatformStatusService, status_record_to_dict
from payments.webhooks import WebhookService, webhook_to_dict

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("")
def list_platforms(
    user_id: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    service = PaymentPlatformService(db)
    return [
        integration_to_dict(integration)
        for integration in service.list_platforms(user_id, active_only)
    ]


@router.get("/available")
def list_available_platforms():
    """Platform types with a registered adapter."""
    return [platform.value for platform in available_platforms()]


@router.post("", status_code=201)
def create_platform(data: PlatformCreate, db: Session = Depends(get_db)):
    """
    Register a payment platform account.

    **Request Example:**
    ```json
    {
        "platform_id": "kiwify-main",
        "name": "Kiwify store",
        "platform_type": "kiwify",
        "settings": {"api_key": "...", "secret_key": "...", "sandbox": true}
    }
    ```

    Missing credentials for the platform type are rejected with 422.
    """
    integration = PaymentPlatformService(db).create_platform(
        platform_id=data.platform_id,
        name=data.name,
        platform_type=data.platform_type,
        settings=data.settings,
        user_id=data.user_id,
        is_active=data.is_active,
    )
    return integration_to_dict(integration)


@router.get("/{platform_id}")
def get_platform(platform_id: str, db: Session = Depends(get_db)):
    return integration_to_dict(PaymentPlatformService(db).get_platform(platform_id))


@router.patch("/{platform_id}")
def update_platform(
    platform_id: str, data: PlatformUpdate, db: Session = Depends(get_db)
):
    integration = PaymentPlatformService(db).update_platform(
        platform_id, name=data.name, settings=data.settings, is_active=data.is_active
    )
    return integration_to_dict(integration)


@router.delete("/{platform_id}", status_code=204)
def delete_platform(platform_id: str, db: Session = Depends(get_db)):
    PaymentPlatformService(db).delete_platform(platform_id)
    return Response(status_code=204)


@router.get("/{platform_id}/status")
async def platform_status(platform_id: str, db: Session = Depends(get_db)):
    """Query the platform's status endpoint (cached per adapter) and store it."""
    record = await run_in_threadpool(PlatformStatusService(db).check_status, platform_id)
    return status_record_to_dict(record)


@router.get("/{platform_id}/health")
async def platform_health(platform_id: str, db: Session = Depends(get_db)):
    healthy = await run_in_threadpool(PlatformStatusService(db).check_health, platform_id)
    return {"platform_id": platform_id, "healthy": healthy}


@router.get("/{platform_id}/metrics")
def platform_metrics(platform_id: str, db: Session = Depends(get_db)):
    PaymentPlatformService(db).get_platform(platform_id)
    snapshot = PlatformMetricsService(db).calculate_metrics(platform_id)
    return snapshot_to_dict(snapshot)


@router.get("/{platform_id}/metrics/history")
def platform_metrics_history(
    platform_id: str,
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
):
    history = PlatformMetricsService(db).get_metrics_history(platform_id, days)
    return [snapshot_to_dict(snapshot) for snapshot in history]


@router.get("/{platform_id}/transactions")
async def platform_transactions(
    platform_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
):
    """Transactions as reported by the platform itself."""
    records = await run_in_threadpool(
        PaymentPlatformService(db).get_transactions, platform_id, start_date, end_date
    )
    return [record.model_dump(mode="json") for record in records]


@router.post("/{platform_id}/sync")
async def sync_platform_transactions(
    platform_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(
        PaymentPlatformService(db).sync_transactions, platform_id, start_date, end_date
    )


@router.get("/{platform_id}/reconciliation/compare")
async def compare_platform(
    platform_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(
        ReconciliationService(db).compare_platform, platform_id, start_date, end_date
    )


@router.get("/{platform_id}/webhooks")
def platform_webhooks(
    platform_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    events = WebhookService(db).get_webhooks(platform_id=platform_id, limit=limit)
    return [webhook_to_dict(event) for event in events]
