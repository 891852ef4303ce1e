"""
Audit Module

This module provides:
- ``AuditService`` for recording and querying payment, platform and webhook
  actions in the audit_logs table
- ``AuditMiddleware`` which records every successful mutating /api request
"""

import csv
import io
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from fastapi import Request, Response
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging import BusinessEvents
from db.models import AuditAction, AuditLog

log = structlog.get_logger(__name__)

EXPORT_FIELDS = (
    "id",
    "action",
    "entity_type",
    "entity_id",
    "user_id",
    "platform_id",
    "changes",
    "metadata",
    "ip_address",
    "user_agent",
    "created_at",
)


def audit_to_dict(entry: AuditLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "action": entry.action.value,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "user_id": entry.user_id,
        "platform_id": entry.platform_id,
        "changes": entry.changes or {},
        "metadata": entry.meta or {},
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


class AuditService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        changes: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
        platform_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            user_id=user_id,
            platform_id=platform_id,
            changes=changes or {},
            meta=metadata or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        self.db.commit()
        log.info(
            BusinessEvents.AUDIT_RECORDED,
            action=action.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            platform_id=platform_id,
            user_id=user_id,
        )
        return entry

    def _query(self, *conditions, limit: int | None = None) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def get_audit_trail(self, entity_type: str, entity_id: Any) -> list[AuditLog]:
        return self._query(
            AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id)
        )

    def get_user_actions(self, user_id: str, limit: int = 100) -> list[AuditLog]:
        return self._query(AuditLog.user_id == user_id, limit=limit)

    def get_platform_actions(self, platform_id: str, limit: int = 100) -> list[AuditLog]:
        return self._query(AuditLog.platform_id == platform_id, limit=limit)

    def get_recent_actions(self, limit: int = 50) -> list[AuditLog]:
        return self._query(limit=limit)

    def get_actions_by_type(
        self, action: AuditAction, limit: int = 100
    ) -> list[AuditLog]:
        return self._query(AuditLog.action == action, limit=limit)

    def search(
        self,
        *,
        action: AuditAction | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        platform_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        text: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        conditions = []
        if action:
            conditions.append(AuditLog.action == action)
        if entity_type:
            conditions.append(AuditLog.entity_type == entity_type)
        if entity_id:
            conditions.append(AuditLog.entity_id == entity_id)
        if user_id:
            conditions.append(AuditLog.user_id == user_id)
        if platform_id:
            conditions.append(AuditLog.platform_id == platform_id)
        if start_date:
            conditions.append(AuditLog.created_at >= start_date)
        if end_date:
            conditions.append(AuditLog.created_at <= end_date)
        if text:
            pattern = f"%{text}%"
            conditions.append(
                or_(AuditLog.entity_id.ilike(pattern), AuditLog.entity_type.ilike(pattern))
            )
        return self._query(*conditions, limit=limit)

    def export_audit_logs(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        format: str = "json",
    ) -> str:
        entries = [
            audit_to_dict(entry)
            for entry in self.search(start_date=start_date, end_date=end_date, limit=0)
        ]
        if format == "json":
            return json.dumps(entries, indent=2, default=str)
        if format == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
            writer.writeheader()
            for entry in entries:
                writer.writerow(
                    {
                        **entry,
                        "changes": json.dumps(entry["changes"], default=str),
                        "metadata": json.dumps(entry["metadata"], default=str),
                    }
                )
            return buffer.getvalue()
        raise ValueError(f"Unsupported export format: {format}")

    def cleanup_old_audit_logs(self, days: int = 365) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        result = self.db.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
        self.db.commit()
        log.info("audit.cleanup", days=days, deleted=result.rowcount)
        return result.rowcount


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware to audit mutating /api requests with 2xx/3xx responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if request.method in ("POST", "PUT", "PATCH", "DELETE") and request.url.path.startswith("/api"):
            try:
                # grab the route's session if it exists, else skip audit
                db: Session | None = getattr(request.state, "db", None)
                if not db:
                    return response

                if 200 <= response.status_code < 400:
                    db.add(
                        AuditLog(
                            action=AuditAction.api_request,
                            entity_type="api",
                            entity_id=request.url.path,
                            user_id=request.headers.get("X-User-Id"),
                            changes={},
                            meta={
                                "method": request.method,
                                "path": request.url.path,
                                "status": response.status_code,
                            },
                            ip_address=request.client.host if request.client else None,
                            user_agent=request.headers.get("user-agent"),
                        )
                    )
                    db.commit()
            except Exception as e:
                log.error("audit.session_failed", path=request.url.path, error=str(e))

        return response
