"""Repair requests: assessment, then tracked execution.

Assessment (Capability.APPROVE) moves a RepairRequest from pending to
approved or rejected. Approval creates exactly one UnderRepairItem, a
snapshot of the request, in the same commit. Execution (EXECUTE_REPAIR)
then walks the UnderRepairItem:

    pending -> in_progress -> completed
    pending -> cancelled

Completing the work also completes the RepairRequest.
"""

from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from logistics.error import InvalidTransition, NotFound
from logistics.logging_config import get_logger
from logistics.models import RepairRequest, UnderRepairItem, utcnow
from logistics.roles import Actor, Capability, Role
from logistics.schemas import RepairRequestCreate, RepairStatus, RepairWorkStatus
from logistics.services.audit import Transition, audited
from logistics.services.notifications import Notifier
from logistics.services.requests import outcome_message, parse_status

logger = get_logger("repairs")

ASSESSMENT_TARGETS = {RepairStatus.APPROVED, RepairStatus.REJECTED}

WORK_TRANSITIONS: dict[RepairWorkStatus, set[RepairWorkStatus]] = {
    RepairWorkStatus.PENDING: {RepairWorkStatus.IN_PROGRESS, RepairWorkStatus.CANCELLED},
    RepairWorkStatus.IN_PROGRESS: {RepairWorkStatus.COMPLETED},
}


class RepairService:
    def __init__(self, session: Session, notifier: Optional[Notifier] = None):
        self.session = session
        self.notifier = notifier or Notifier(session)

    # ---- reads ----

    def get(self, repair_request_id: int) -> RepairRequest:
        repair = self.session.get(RepairRequest, repair_request_id)
        if repair is None:
            raise NotFound("repair_request", repair_request_id)
        return repair

    def get_work(self, under_repair_id: int) -> UnderRepairItem:
        work = self.session.get(UnderRepairItem, under_repair_id)
        if work is None:
            raise NotFound("under_repair_item", under_repair_id)
        return work

    def search(self, actor: Actor, status: Optional[RepairStatus] = None) -> list[RepairRequest]:
        actor.require("Viewing repair requests", Capability.APPROVE, Capability.EXECUTE_REPAIR)
        stmt = select(RepairRequest)
        if status is not None:
            stmt = stmt.where(RepairRequest.status == status.value)
        stmt = stmt.order_by(RepairRequest.created_at.desc(), RepairRequest.id.desc())
        return list(self.session.exec(stmt).all())

    def under_repair(self, actor: Actor, status: Optional[RepairWorkStatus] = None) -> list[UnderRepairItem]:
        actor.require("Viewing items under repair", Capability.APPROVE, Capability.EXECUTE_REPAIR)
        stmt = select(UnderRepairItem)
        if status is not None:
            stmt = stmt.where(UnderRepairItem.status == status.value)
        stmt = stmt.order_by(UnderRepairItem.created_at.desc(), UnderRepairItem.id.desc())
        return list(self.session.exec(stmt).all())

    # ---- intake ----

    @audited("repair.create")
    def create(self, actor: Actor, data: RepairRequestCreate) -> Transition:
        repair = RepairRequest(
            location=data.location.strip(),
            priority=data.priority.value,
            photo=data.photo,
            description=data.description,
            requested_by=actor.id,
        )
        self.session.add(repair)
        self.session.commit()
        self.session.refresh(repair)

        self.notifier.notify_roles(
            [Role.ADMIN],
            f"New {repair.priority} priority repair request at {repair.location}",
        )
        return Transition(actor, "repair_request", repair.id, None, repair.status, entity=repair)

    @audited("repair.delete")
    def delete(self, actor: Actor, repair_request_id: int) -> Transition:
        """Withdraw a repair request that has not been assessed yet."""
        repair = self.get(repair_request_id)
        if repair.status != RepairStatus.PENDING.value:
            raise InvalidTransition("repair_request", repair.status, "deleted")
        actor.require("Deleting repair requests", Capability.APPROVE)

        result = self.session.exec(
            delete(RepairRequest).where(RepairRequest.id == repair.id,
                                        RepairRequest.status == RepairStatus.PENDING.value)
        )
        if result.rowcount == 0:
            self.session.rollback()
            actual = self.session.exec(
                select(RepairRequest.status).where(RepairRequest.id == repair.id)
            ).first()
            raise InvalidTransition("repair_request", actual or "missing", "deleted")
        self.session.commit()
        return Transition(actor, "repair_request", repair.id, RepairStatus.PENDING.value, None,
                          details={"location": repair.location})

    # ---- phase 1: assessment ----

    @audited("repair.assess")
    def assess(
        self,
        actor: Actor,
        repair_request_id: int,
        target_status,
        remark: Optional[str] = None,
    ) -> Transition:
        target = parse_status(target_status, RepairStatus)
        repair = self.get(repair_request_id)
        if repair.status != RepairStatus.PENDING.value or target not in ASSESSMENT_TARGETS:
            raise InvalidTransition("repair_request", repair.status, target.value)
        actor.require("Assessing repair requests", Capability.APPROVE)
        remark = (remark or "").strip() or None

        values = {"status": target.value, "updated_at": utcnow()}
        if remark:
            values["admin_remark"] = remark

        work = None
        try:
            self._claim(RepairRequest, "repair_request", repair.id, RepairStatus.PENDING.value,
                        target.value, values)
            if target == RepairStatus.APPROVED:
                work = UnderRepairItem(
                    repair_request_id=repair.id,
                    location=repair.location,
                    priority=repair.priority,
                    photo=repair.photo,
                    requested_by=repair.requested_by,
                )
                self.session.add(work)
            self.session.commit()
        except InvalidTransition:
            self.session.rollback()
            raise
        except IntegrityError:
            # another approval already created the work item
            self.session.rollback()
            raise InvalidTransition("repair_request", RepairStatus.APPROVED.value, target.value)

        self.session.refresh(repair)
        if work is not None:
            self.session.refresh(work)

        self.notifier.notify(
            repair.requested_by,
            outcome_message(f"repair request for {repair.location}", target.value, remark),
        )
        return Transition(actor, "repair_request", repair.id, RepairStatus.PENDING.value,
                          target.value, entity=repair, related=work)

    # ---- phase 2: execution ----

    @audited("repair.advance")
    def advance(
        self,
        actor: Actor,
        under_repair_id: int,
        target_status,
        remarks: Optional[str] = None,
    ) -> Transition:
        target = parse_status(target_status, RepairWorkStatus)
        work = self.get_work(under_repair_id)
        current = RepairWorkStatus(work.status)
        if target not in WORK_TRANSITIONS.get(current, set()):
            raise InvalidTransition("under_repair_item", current.value, target.value)
        actor.require("Updating repair work", Capability.EXECUTE_REPAIR)
        remarks = (remarks or "").strip() or None

        values = {"status": target.value, "updated_at": utcnow()}
        if remarks:
            values["remarks"] = remarks

        try:
            self._claim(UnderRepairItem, "under_repair_item", work.id, current.value,
                        target.value, values)
            if target == RepairWorkStatus.COMPLETED:
                self.session.exec(
                    update(RepairRequest)
                    .where(RepairRequest.id == work.repair_request_id,
                           RepairRequest.status == RepairStatus.APPROVED.value)
                    .values(status=RepairStatus.COMPLETED.value, updated_at=utcnow())
                )
            self.session.commit()
        except InvalidTransition:
            self.session.rollback()
            raise
        self.session.refresh(work)

        label = target.value.replace("_", " ")
        message = f"Repair work at {work.location} is now {label}"
        if remarks:
            message += f": {remarks}"
        self.notifier.notify(work.requested_by, message)
        self.notifier.notify_roles([Role.ADMIN], f"Repair work at {work.location} moved to {label}")

        return Transition(actor, "under_repair_item", work.id, current.value, target.value,
                          entity=work)

    def _claim(self, model, entity_type: str, entity_id: int, current: str, target: str,
               values: dict) -> None:
        stmt = (
            update(model)
            .where(model.id == entity_id, model.status == current)
            .values(**values)
        )
        if self.session.exec(stmt).rowcount == 0:
            actual = self.session.exec(select(model.status).where(model.id == entity_id)).first()
            raise InvalidTransition(entity_type, actual or "missing", target)
