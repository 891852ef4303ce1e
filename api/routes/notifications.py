"""
Notification template and delivery routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.schemas import NotificationSend, TemplateCreate, TemplateUpdate
from db.models import NotificationType
from db.session import get_db
from payments.notifications import (
    NotificationService,
    notification_to_dict,
    template_to_dict,
)

router = APIRouter()


@router.get("/templates")
def list_templates(type: NotificationType | None = None, db: Session = Depends(get_db)):
    return [template_to_dict(t) for t in NotificationService(db).list_templates(type)]


@router.post("/templates", status_code=201)
def create_template(data: TemplateCreate, db: Session = Depends(get_db)):
    """
    Create a message template.

    Placeholders use ``{{name}}`` syntax, e.g.
    ``"Payment of {{amount}} {{currency}} received from {{customer_name}}"``.
    """
    template = NotificationService(db).create_template(**data.model_dump())
    return template_to_dict(template)


@router.patch("/templates/{template_id}")
def update_template(
    template_id: int, data: TemplateUpdate, db: Session = Depends(get_db)
):
    template = NotificationService(db).update_template(
        template_id, **data.model_dump(exclude_none=True)
    )
    return template_to_dict(template)


@router.delete("/templates/{template_id}", status_code=204)
def delete_template(template_id: int, db: Session = Depends(get_db)):
    NotificationService(db).delete_template(template_id)
    return Response(status_code=204)


@router.post("/send", status_code=201)
async def send_notification(data: NotificationSend, db: Session = Depends(get_db)):
    """Send on one channel, or on every enabled channel when none is given."""
    service = NotificationService(db)
    if data.channel:
        sent = [
            await run_in_threadpool(
                lambda: service.send_notification(
                    data.type,
                    data.channel,
                    data.data,
                    user_id=data.user_id,
                    recipient=data.recipient,
                )
            )
        ]
    else:
        sent = await run_in_threadpool(
            lambda: service.notify(
                data.type, data.data, user_id=data.user_id, recipient=data.recipient
            )
        )
    return [notification_to_dict(n) for n in sent]


@router.get("")
def list_notifications(
    type: NotificationType | None = None,
    user_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    service = NotificationService(db)
    if user_id:
        notifications = service.get_notifications_by_user(user_id, limit)
        if type:
            notifications = [n for n in notifications if n.type == type]
    elif type:
        notifications = service.get_notifications_by_type(type, limit)
    else:
        raise HTTPException(status_code=422, detail="Filter by type or user_id")
    return [notification_to_dict(n) for n in notifications]


@router.get("/failed")
def failed_notifications(
    limit: int = Query(100, ge=1, le=500), db: Session = Depends(get_db)
):
    return [
        notification_to_dict(n)
        for n in NotificationService(db).get_failed_notifications(limit)
    ]


@router.post("/{notification_id}/retry")
async def retry_notification(notification_id: int, db: Session = Depends(get_db)):
    notification = await run_in_threadpool(
        NotificationService(db).retry_failed_notification, notification_id
    )
    return notification_to_dict(notification)
