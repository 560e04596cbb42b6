from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor, Capability
from logistics.schemas import AuditLogRead, ReportRead
from logistics.services.audit import AuditTrail
from logistics.services.reports import ReportBuilder

router = APIRouter(tags=["admin"])


@router.get("/audit-logs", response_model=list[AuditLogRead])
def list_audit_logs(
        actor_id: Optional[int] = Query(None, ge=1, description="Filter by acting user id"),
        action: Optional[str] = Query(None, description="Action prefix, e.g. request or repair.assess"),
        entity_type: Optional[str] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Viewing system logs", Capability.ADMINISTER)
    return AuditTrail(session).search(actor_id=actor_id, action=action, entity_type=entity_type,
                                      limit=limit, offset=offset)


@router.get("/reports", response_model=ReportRead)
def get_report(
        start: Optional[datetime] = Query(None, description="Defaults to 30 days before end"),
        end: Optional[datetime] = Query(None, description="Defaults to now"),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return ReportBuilder(session).summary(actor, start, end)
