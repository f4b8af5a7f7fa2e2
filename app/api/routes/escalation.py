from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.errors import CycleInProgressError
from app.core.security import verify_admin_key
from app.db.session import get_db
from app.schemas.escalation import EscalationOutcomeResponse, ProcessEscalationsResponse
from app.services.escalation_service import EscalationService

router = APIRouter(prefix="/v1/escalations", tags=["escalation"], dependencies=[Depends(verify_admin_key)])


@router.post("/process", response_model=ProcessEscalationsResponse)
def process_escalations(request: Request, db: Session = Depends(get_db)) -> ProcessEscalationsResponse:
    service = EscalationService(
        db,
        threshold_resolver=getattr(request.app.state, "threshold_resolver", None),
        notifier=getattr(request.app.state, "notifier", None),
    )
    try:
        outcomes = service.process_escalations()
    except CycleInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    return ProcessEscalationsResponse(
        processed=len(outcomes),
        escalated=sum(1 for outcome in outcomes if outcome.escalated),
        dry_run=service.dry_run,
        results=[EscalationOutcomeResponse(**outcome.as_dict()) for outcome in outcomes],
    )
