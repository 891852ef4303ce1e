"""
Fraud rule management and reporting routes.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from api.schemas import FraudRuleCreate, FraudRuleUpdate
from db.session import get_db
from payments.fraud import FraudService, check_to_dict, rule_to_dict

router = APIRouter()


@router.get("/rules")
def list_rules(enabled_only: bool = False, db: Session = Depends(get_db)):
    return [rule_to_dict(rule) for rule in FraudService(db).list_rules(enabled_only)]


@router.post("/rules", status_code=201)
def create_rule(data: FraudRuleCreate, db: Session = Depends(get_db)):
    """
    Create a scoring rule.

    **Request Example:**
    ```json
    {
        "name": "High value order",
        "rule_type": "transaction",
        "conditions": {"amount_threshold": 5000},
        "score": 40,
        "action": "review"
    }
    ```
    """
    rule = FraudService(db).create_rule(**data.model_dump())
    return rule_to_dict(rule)


@router.get("/rules/{rule_id}")
def get_rule(rule_id: int, db: Session = Depends(get_db)):
    return rule_to_dict(FraudService(db).get_rule(rule_id))


@router.patch("/rules/{rule_id}")
def update_rule(rule_id: int, data: FraudRuleUpdate, db: Session = Depends(get_db)):
    rule = FraudService(db).update_rule(rule_id, **data.model_dump(exclude_none=True))
    return rule_to_dict(rule)


@router.delete("/rules/{rule_id}", status_code=204)
def delete_rule(rule_id: int, db: Session = Depends(get_db)):
    FraudService(db).delete_rule(rule_id)
    return Response(status_code=204)


@router.get("/report")
def fraud_report(
    start_date: datetime,
    end_date: datetime,
    platform_id: str | None = None,
    db: Session = Depends(get_db),
):
    return FraudService(db).generate_fraud_report(start_date, end_date, platform_id)


@router.get("/checks")
def list_checks(
    user_id: str | None = None,
    platform_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    checks = FraudService(db).get_fraud_checks(
        user_id=user_id,
        platform_id=platform_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return [check_to_dict(check) for check in checks]
