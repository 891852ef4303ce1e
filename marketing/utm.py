"""
UTM link builder and click tracking.
"""

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models import UtmLink
from payments.exceptions import PaymentHubError, PaymentValidationError

log = structlog.get_logger(__name__)

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


class UtmLinkNotFoundError(PaymentHubError):
    pass


def build_utm_url(
    base_url: str,
    source: str,
    medium: str,
    campaign: str,
    term: str | None = None,
    content: str | None = None,
) -> str:
    """Merge utm_* parameters into ``base_url``, keeping its other query args."""
    parts = urlsplit(base_url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise PaymentValidationError(f"Invalid base URL: {base_url!r}")
    for label, value in (("source", source), ("medium", medium), ("campaign", campaign)):
        if not value or not value.strip():
            raise PaymentValidationError(f"UTM {label} is required")

    utm = {
        "utm_source": source.strip(),
        "utm_medium": medium.strip(),
        "utm_campaign": campaign.strip(),
        "utm_term": term.strip() if term else None,
        "utm_content": content.strip() if content else None,
    }
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in UTM_KEYS
    ]
    query.extend((key, value) for key, value in utm.items() if value)
    return urlunsplit(parts._replace(query=urlencode(query)))


def utm_to_dict(link: UtmLink) -> dict[str, Any]:
    return {
        "id": link.id,
        "user_id": link.user_id,
        "base_url": link.base_url,
        "url": link.url,
        "source": link.source,
        "medium": link.medium,
        "campaign": link.campaign,
        "term": link.term,
        "content": link.content,
        "clicks": link.clicks,
        "created_at": link.created_at.isoformat() if link.created_at else None,
    }


class UtmLinkService:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        base_url: str,
        source: str,
        medium: str,
        campaign: str,
        term: str | None = None,
        content: str | None = None,
        user_id: str | None = None,
    ) -> UtmLink:
        link = UtmLink(
            user_id=user_id,
            base_url=base_url,
            url=build_utm_url(base_url, source, medium, campaign, term, content),
            source=source.strip(),
            medium=medium.strip(),
            campaign=campaign.strip(),
            term=term,
            content=content,
            clicks=0,
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        log.info("utm.link_created", link_id=link.id, campaign=link.campaign, user_id=user_id)
        return link

    def get(self, link_id: int) -> UtmLink:
        link = self.db.get(UtmLink, link_id)
        if link is None:
            raise UtmLinkNotFoundError(f"UTM link {link_id} not found")
        return link

    def list_links(self, user_id: str | None = None, limit: int = 100) -> list[UtmLink]:
        stmt = select(UtmLink)
        if user_id:
            stmt = stmt.where(UtmLink.user_id == user_id)
        return list(self.db.scalars(stmt.order_by(UtmLink.id.desc()).limit(limit)))

    def delete(self, link_id: int) -> None:
        self.db.delete(self.get(link_id))
        self.db.commit()

    def increment_clicks(self, link_id: int) -> UtmLink:
        # Incremented in SQL, not read-modify-write
        result = self.db.execute(
            update(UtmLink)
            .where(UtmLink.id == link_id)
            .values(clicks=func.coalesce(UtmLink.clicks, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            raise UtmLinkNotFoundError(f"UTM link {link_id} not found")
        link = self.get(link_id)
        self.db.refresh(link)
        return link

    def _top(self, column, user_id: str | None) -> list[dict[str, Any]]:
        clicks = func.sum(UtmLink.clicks).label("clicks")
        stmt = select(column, clicks).group_by(column)
        if user_id:
            stmt = stmt.where(UtmLink.user_id == user_id)
        rows = self.db.execute(stmt.order_by(clicks.desc(), column).limit(5)).all()
        return [{"name": name, "clicks": int(total or 0)} for name, total in rows]

    def stats(self, user_id: str | None = None) -> dict[str, Any]:
        stmt = select(func.count(UtmLink.id), func.coalesce(func.sum(UtmLink.clicks), 0))
        if user_id:
            stmt = stmt.where(UtmLink.user_id == user_id)
        total_links, total_clicks = self.db.execute(stmt).one()
        return {
            "total_links": total_links,
            "total_clicks": int(total_clicks),
            "top_sources": self._top(UtmLink.source, user_id),
            "top_campaigns": self._top(UtmLink.campaign, user_id),
        }
