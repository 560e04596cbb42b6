from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor, Capability
from logistics.schemas import DirectIssueCreate, DirectIssueRead, IssuanceRead, IssuanceStatus
from logistics.services.issuance import DirectIssuer, IssuanceJournal, Recipient

router = APIRouter(prefix="/issuances", tags=["issuances"])


@router.post("", response_model=DirectIssueRead, status_code=201)
def issue_direct(
        data: DirectIssueCreate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    t = DirectIssuer(session).issue(
        actor,
        data.item_name,
        data.quantity,
        Recipient(name=data.issued_to),
        data.purpose,
        remarks=data.remarks,
        unit=data.unit,
    )
    return {"issuance": t.entity, "stock": t.stock.advisory()}


@router.get("", response_model=list[IssuanceRead])
def list_issuances(
        item_id: Optional[int] = Query(None, ge=1, description="Filter by stock item id"),
        recipient_user_id: Optional[int] = Query(None, ge=1, description="Filter by recipient user id"),
        status: Optional[IssuanceStatus] = Query(None, description="Filter by status"),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    # plain users only see their own issuances
    if not (actor.can(Capability.FULFILL) or actor.can(Capability.APPROVE)):
        recipient_user_id = actor.id
    return IssuanceJournal(session).search(
        item_id=item_id,
        recipient_user_id=recipient_user_id,
        status=status,
        limit=limit,
        offset=offset,
    )
