from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor
from logistics.schemas import (
    RepairAdvanceRead,
    RepairAssessmentRead,
    RepairRequestCreate,
    RepairRequestRead,
    RepairStatus,
    RepairWorkStatus,
    StatusChange,
    UnderRepairRead,
)
from logistics.services.repairs import RepairService

router = APIRouter(tags=["repairs"])


@router.post("/repair-requests", response_model=RepairRequestRead, status_code=201)
def create_repair_request(
        data: RepairRequestCreate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RepairService(session).create(actor, data).entity


@router.get("/repair-requests", response_model=list[RepairRequestRead])
def list_repair_requests(
        status: Optional[RepairStatus] = Query(None),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RepairService(session).search(actor, status)


@router.delete("/repair-requests/{repair_request_id}")
def delete_repair_request(
        repair_request_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    RepairService(session).delete(actor, repair_request_id)
    return {"ok": True, "deleted": repair_request_id}


@router.put("/repair-requests/{repair_request_id}/status", response_model=RepairAssessmentRead)
def assess_repair_request(
        repair_request_id: int,
        body: StatusChange,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    t = RepairService(session).assess(actor, repair_request_id, body.status, remark=body.remark)
    return {
        "entity_type": t.entity_type,
        "entity_id": t.entity_id,
        "from_status": t.before,
        "to_status": t.after,
        "repair_request": t.entity,
        "under_repair": t.related,
    }


@router.get("/under-repair", response_model=list[UnderRepairRead])
def list_under_repair(
        status: Optional[RepairWorkStatus] = Query(None),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RepairService(session).under_repair(actor, status)


@router.patch("/under-repair/{under_repair_id}/status", response_model=RepairAdvanceRead)
def advance_repair_work(
        under_repair_id: int,
        body: StatusChange,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    t = RepairService(session).advance(actor, under_repair_id, body.status, remarks=body.remark)
    return {
        "entity_type": t.entity_type,
        "entity_id": t.entity_id,
        "from_status": t.before,
        "to_status": t.after,
        "under_repair": t.entity,
    }
