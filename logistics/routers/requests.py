from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor, Capability
from logistics.schemas import (
    RequestCreate,
    RequestEdit,
    RequestRead,
    RequestStatus,
    RequestTransitionRead,
    StatusChange,
)
from logistics.services.requests import RequestService

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=RequestRead, status_code=201)
def create_request(
        data: RequestCreate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RequestService(session).create(actor, data).entity


@router.get("", response_model=list[RequestRead])
def list_requests(
        status: Optional[RequestStatus] = Query(None, description="Filter by status"),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RequestService(session).search(actor, status)


@router.get("/mine", response_model=list[RequestRead])
def my_requests(
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RequestService(session).mine(actor)


@router.get("/{request_id}", response_model=RequestRead)
def get_request(
        request_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    service = RequestService(session)
    request = service.get(request_id)
    if request.requested_by != actor.id:
        actor.require("Viewing requests of others", Capability.APPROVE, Capability.FULFILL)
    return request


@router.patch("/{request_id}", response_model=RequestRead)
def edit_request(
        request_id: int,
        body: RequestEdit,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return RequestService(session).edit(actor, request_id, body).entity


@router.put("/{request_id}/status", response_model=RequestTransitionRead)
def change_request_status(
        request_id: int,
        body: StatusChange,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    t = RequestService(session).transition(
        actor, request_id, body.status, remark=body.remark, quantity=body.quantity
    )
    return {
        "entity_type": t.entity_type,
        "entity_id": t.entity_id,
        "from_status": t.before,
        "to_status": t.after,
        "request": t.entity,
        "issuance": t.related,
        "stock": t.stock.advisory() if t.stock else None,
    }
