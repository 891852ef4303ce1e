"""
Audit log query and export routes.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from core.audit import AuditService, audit_to_dict
from db.models import AuditAction
from db.session import get_db

router = APIRouter()


@router.get("/recent")
def recent_actions(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    return [audit_to_dict(entry) for entry in AuditService(db).get_recent_actions(limit)]


@router.get("/search")
def search_audit_logs(
    action: AuditAction | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    platform_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    text: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    entries = AuditService(db).search(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        platform_id=platform_id,
        start_date=start_date,
        end_date=end_date,
        text=text,
        limit=limit,
    )
    return [audit_to_dict(entry) for entry in entries]


@router.get("/export")
def export_audit_logs(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    format: Literal["json", "csv"] = "json",
    db: Session = Depends(get_db),
):
    """Download the audit log as JSON or CSV."""
    content = AuditService(db).export_audit_logs(start_date, end_date, format)
    media_type = "text/csv" if format == "csv" else "application/json"
    return PlainTextResponse(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="audit_logs.{format}"'},
    )
