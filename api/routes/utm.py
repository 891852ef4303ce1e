"""
UTM campaign link routes.
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from api.schemas import UtmCreate
from db.session import get_db
from marketing.utm import UtmLinkService, utm_to_dict

router = APIRouter()


@router.post("", status_code=201)
def create_link(data: UtmCreate, db: Session = Depends(get_db)):
    """
    Build and store a tagged campaign URL.

    **Request Example:**
    ```json
    {
        "base_url": "https://shop.example.com/offer?ref=email",
        "source": "newsletter",
        "medium": "email",
        "campaign": "black_friday"
    }
    ```
    """
    link = UtmLinkService(db).create(**data.model_dump())
    return utm_to_dict(link)


@router.get("")
def list_links(
    user_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [utm_to_dict(link) for link in UtmLinkService(db).list_links(user_id, limit)]


@router.get("/stats")
def link_stats(user_id: str | None = None, db: Session = Depends(get_db)):
    return UtmLinkService(db).stats(user_id)


@router.get("/{link_id}")
def get_link(link_id: int, db: Session = Depends(get_db)):
    return utm_to_dict(UtmLinkService(db).get(link_id))


@router.post("/{link_id}/click")
def record_click(link_id: int, db: Session = Depends(get_db)):
    return utm_to_dict(UtmLinkService(db).increment_clicks(link_id))


@router.delete("/{link_id}", status_code=204)
def delete_link(link_id: int, db: Session = Depends(get_db)):
    UtmLinkService(db).delete(link_id)
    return Response(status_code=204)
