"""
Inbound platform webhooks.

Every platform posts to ``/webhooks/{platform_id}``; the signature header name
comes from the platform adapter and the raw body is verified before parsing.
"""

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from db.models import WebhookStatus
from db.session import get_db
from payments.integrations import adapter_for
from payments.webhooks import WebhookService, webhook_to_dict

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/{platform_id}")
async def receive_webhook(
    platform_id: str, request: Request, db: Session = Depends(get_db)
):
    raw_body = await request.body()
    adapter = await run_in_threadpool(adapter_for, db, platform_id)
    signature = request.headers.get(adapter.SIGNATURE_HEADER) or request.headers.get(
        "X-Signature"
    )
    event = await run_in_threadpool(
        WebhookService(db).handle_webhook, platform_id, raw_body, signature
    )
    return {
        "status": "received",
        "webhook_id": event.id,
        "event_type": event.event_type,
        "processed": event.status == WebhookStatus.processed,
    }


@router.get("")
def list_webhooks(
    platform_id: str | None = None,
    status: WebhookStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    events = WebhookService(db).get_webhooks(platform_id, status, limit)
    return [webhook_to_dict(event) for event in events]


@router.post("/events/{webhook_id}/retry")
async def retry_webhook(webhook_id: int, db: Session = Depends(get_db)):
    """Re-run processing for a webhook that previously failed."""
    event = await run_in_threadpool(WebhookService(db).retry_failed_webhook, webhook_id)
    return webhook_to_dict(event)
