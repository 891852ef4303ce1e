"""
Report generation routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.schemas import ReportCreate
from db.session import get_db
from payments.exceptions import ReportError
from payments.reports import ReportService, report_to_dict

router = APIRouter()


@router.post("", status_code=201)
def create_report(data: ReportCreate, db: Session = Depends(get_db)):
    """
    Generate a report file and record it.

    **Request Example:**
    ```json
    {"report_type": "transactions", "format": "csv", "platform_id": "kiwify-main"}
    ```
    """
    report = ReportService(db).generate_report(
        data.report_type, data.format, data.filters(), data.user_id
    )
    return report_to_dict(report)


@router.get("")
def list_reports(
    user_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return [report_to_dict(report) for report in ReportService(db).list_reports(user_id, limit)]


@router.get("/{report_id}")
def get_report(report_id: int, db: Session = Depends(get_db)):
    try:
        report = ReportService(db).get_report(report_id)
    except ReportError:
        raise HTTPException(status_code=404, detail="Report not found")
    return report_to_dict(report)
