from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.security import verify_admin_key
from app.db.models import Complaint, ComplaintEscalation
from app.db.session import get_db
from app.schemas.escalation import (
    EscalationRecordResponse,
    EscalationRuleActiveRequest,
    EscalationRuleCreateRequest,
    EscalationRuleResponse,
)
from app.services.rule_store import RuleStore

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(verify_admin_key)])


@router.get("/escalation-rules", response_model=list[EscalationRuleResponse])
def list_rules(include_inactive: bool = True, db: Session = Depends(get_db)) -> list[EscalationRuleResponse]:
    rules = RuleStore(db).list_rules(include_inactive=include_inactive)
    return [EscalationRuleResponse.model_validate(rule) for rule in rules]


@router.post("/escalation-rules", response_model=EscalationRuleResponse, status_code=201)
def create_rule(payload: EscalationRuleCreateRequest, db: Session = Depends(get_db)) -> EscalationRuleResponse:
    rule = RuleStore(db).create_rule(
        escalation_level=payload.escalation_level,
        conditions=payload.conditions,
        updated_by=payload.updated_by,
        from_department_id=payload.from_department_id,
        from_location_id=payload.from_location_id,
        to_department_id=payload.to_department_id,
        to_location_id=payload.to_location_id,
        is_active=payload.is_active,
    )
    return EscalationRuleResponse.model_validate(rule)


@router.post("/escalation-rules/{rule_id}/active", response_model=EscalationRuleResponse)
def set_rule_active(
    rule_id: int, payload: EscalationRuleActiveRequest, db: Session = Depends(get_db)
) -> EscalationRuleResponse:
    rule = RuleStore(db).set_active(rule_id, payload.is_active, payload.updated_by)
    if rule is None:
        raise HTTPException(status_code=404, detail="Escalation rule not found")
    return EscalationRuleResponse.model_validate(rule)


@router.get("/complaints/{complaint_id}/escalations", response_model=list[EscalationRecordResponse])
def complaint_escalations(complaint_id: int, db: Session = Depends(get_db)) -> list[EscalationRecordResponse]:
    if db.get(Complaint, complaint_id) is None:
        raise HTTPException(status_code=404, detail="Complaint not found")
    records = db.scalars(
        select(ComplaintEscalation)
        .where(ComplaintEscalation.complaint_id == complaint_id)
        .order_by(ComplaintEscalation.created_at.asc(), ComplaintEscalation.id.asc())
    ).all()
    return [EscalationRecordResponse.model_validate(record) for record in records]
