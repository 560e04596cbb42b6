"""Audit trail for mutating core operations.

Operations return a :class:`Transition`; the :func:`audited` decorator turns
it into an ``AuditLog`` row once the operation has committed. Audit writes
never fail the operation they describe.
"""

import functools
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from logistics.logging_config import LogContext, get_logger
from logistics.models import AuditLog
from logistics.roles import Actor

logger = get_logger("audit")


@dataclass
class Transition:
    actor: Actor
    entity_type: str
    entity_id: int
    before: Optional[str]
    after: Optional[str]
    entity: Any = None
    # side products: issuance, work item, stock change
    related: Any = None
    stock: Any = None
    details: dict = field(default_factory=dict)


class AuditTrail:
    def __init__(self, session: Session):
        self.session = session

    def record(self, action: str, transition: Transition) -> Optional[AuditLog]:
        entry = AuditLog(
            actor_id=transition.actor.id,
            action=action,
            entity_type=transition.entity_type,
            entity_id=transition.entity_id,
            before=transition.before,
            after=transition.after,
            details=json.dumps(transition.details, default=str) if transition.details else None,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("audit_write_failed", extra={"action": action,
                                                          "entity_type": transition.entity_type,
                                                          "entity_id": transition.entity_id})
            return None
        return entry

    def search(
        self,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLog]:
        """Newest first. ``action`` matches a prefix, so "request" finds every request.* row."""
        stmt = select(AuditLog)
        if actor_id is not None:
            stmt = stmt.where(AuditLog.actor_id == actor_id)
        if action:
            stmt = stmt.where(AuditLog.action.startswith(action))
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        return list(self.session.exec(stmt.offset(offset).limit(limit)).all())


def _find_actor(args: tuple, kwargs: dict) -> Optional[Actor]:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Actor):
            return value
    return None


def _reload(session: Session, transition: Transition) -> None:
    # a failed notify or audit write rolls back and expires objects; reload before returning
    stock_item = getattr(transition.stock, "item", None)
    for obj in (transition.entity, transition.related, stock_item):
        if obj is not None:
            session.refresh(obj)


def audited(action: str):
    """Record the Transition returned by a service method under ``action``.

    The wrapped method must live on an object with a ``session`` attribute.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            actor = _find_actor(args, kwargs)
            with LogContext.bind(actor_id=str(actor.id) if actor else None):
                transition = func(self, *args, **kwargs)
                logger.info(
                    action,
                    extra={
                        "entity_type": transition.entity_type,
                        "entity_id": transition.entity_id,
                        "before": transition.before,
                        "after": transition.after,
                    },
                )
                AuditTrail(self.session).record(action, transition)
                _reload(self.session, transition)
            return transition

        return wrapper

    return decorator
