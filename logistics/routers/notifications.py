from fastapi import APIRouter, Depends
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor
from logistics.schemas import NotificationRead
from logistics.services.notifications import Notifier

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def my_notifications(
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return Notifier(session).inbox(actor.id)


@router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
        notification_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return Notifier(session).mark_read(notification_id, actor.id)


@router.post("/mark-all-read")
def mark_all_read(
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return {"ok": True, "updated": Notifier(session).mark_all_read(actor.id)}
