"""Item request lifecycle.

    pending --approve--> approved --complete--> completed
    pending --reject---> rejected

Approving or rejecting needs Capability.APPROVE, completing needs
Capability.FULFILL. Completion deducts stock, journals the issuance and
closes earlier in-use issuances for the same item and requester, all in one
transaction (see StockTransaction). Status changes are conditional updates
on the current status, so two racing transitions cannot both apply.
"""

from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from logistics.config import Settings, get_settings
from logistics.error import Forbidden, InvalidTransition, NotFound, ValidationError
from logistics.logging_config import get_logger
from logistics.models import ItemRequest, utcnow
from logistics.roles import Actor, Capability
from logistics.schemas import IssuanceStatus, RequestCreate, RequestEdit, RequestStatus
from logistics.services.audit import Transition, audited
from logistics.services.inventory import InventoryLedger, StockTransaction, check_quantity
from logistics.services.issuance import IssuanceJournal, Recipient
from logistics.services.notifications import Notifier

logger = get_logger("requests")

ENTITY = "request"

REQUEST_TRANSITIONS: dict[tuple[RequestStatus, RequestStatus], Capability] = {
    (RequestStatus.PENDING, RequestStatus.APPROVED): Capability.APPROVE,
    (RequestStatus.PENDING, RequestStatus.REJECTED): Capability.APPROVE,
    (RequestStatus.APPROVED, RequestStatus.COMPLETED): Capability.FULFILL,
}

ACTION_NAMES = {
    Capability.APPROVE: "Approving or rejecting requests",
    Capability.FULFILL: "Completing requests",
}


def parse_status(value, enum_cls, field: str = "status"):
    try:
        return enum_cls((value or "").strip().lower()) if isinstance(value, str) else enum_cls(value)
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(field, f"Invalid {field} '{value}', expected one of: {allowed}")


def outcome_message(subject: str, status: str, remark: Optional[str]) -> str:
    message = f"Your {subject} has been {status}"
    if remark:
        message += f": {remark}"
    return message


class RequestService:
    def __init__(
        self,
        session: Session,
        ledger: Optional[InventoryLedger] = None,
        journal: Optional[IssuanceJournal] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.ledger = ledger or InventoryLedger(session)
        self.journal = journal or IssuanceJournal(session)
        self.notifier = notifier or Notifier(session, self.settings)

    # ---- reads ----

    def get(self, request_id: int) -> ItemRequest:
        request = self.session.get(ItemRequest, request_id)
        if request is None:
            raise NotFound(ENTITY, request_id)
        return request

    def mine(self, actor: Actor) -> list[ItemRequest]:
        stmt = (
            select(ItemRequest)
            .where(ItemRequest.requested_by == actor.id)
            .order_by(ItemRequest.created_at.desc(), ItemRequest.id.desc())
        )
        return list(self.session.exec(stmt).all())

    def search(self, actor: Actor, status: Optional[RequestStatus] = None) -> list[ItemRequest]:
        actor.require("Viewing all requests", Capability.APPROVE, Capability.FULFILL)
        stmt = select(ItemRequest)
        if status is not None:
            stmt = stmt.where(ItemRequest.status == status.value)
        stmt = stmt.order_by(ItemRequest.created_at.desc(), ItemRequest.id.desc())
        return list(self.session.exec(stmt).all())

    # ---- intake ----

    @audited("request.create")
    def create(self, actor: Actor, data: RequestCreate) -> Transition:
        request = ItemRequest(
            item_name=data.item_name.strip(),
            quantity=check_quantity(data.quantity),
            unit=data.unit,
            purpose=data.purpose,
            priority=data.priority.value,
            requested_by=actor.id,
        )
        self.session.add(request)
        self.session.commit()
        self.session.refresh(request)
        return Transition(actor, ENTITY, request.id, None, request.status, entity=request)

    @audited("request.edit")
    def edit(self, actor: Actor, request_id: int, data: RequestEdit) -> Transition:
        request = self.get(request_id)
        if request.requested_by != actor.id:
            raise Forbidden("Editing a request", role=actor.role.value, allowed_roles=["requester"])
        if request.status != RequestStatus.PENDING.value:
            raise InvalidTransition(ENTITY, request.status, "edited")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "quantity" in changes:
            changes["quantity"] = check_quantity(changes["quantity"])
        if "priority" in changes:
            changes["priority"] = changes["priority"].value
        changes["updated_at"] = utcnow()

        try:
            self._claim(request.id, RequestStatus.PENDING, RequestStatus.PENDING, changes)
            self.session.commit()
        except InvalidTransition:
            self.session.rollback()
            raise
        self.session.refresh(request)
        return Transition(actor, ENTITY, request.id, request.status, request.status,
                          entity=request, details={"changed": sorted(changes)})

    # ---- lifecycle ----

    @audited("request.transition")
    def transition(
        self,
        actor: Actor,
        request_id: int,
        target_status,
        remark: Optional[str] = None,
        quantity=None,
    ) -> Transition:
        target = parse_status(target_status, RequestStatus)
        request = self.get(request_id)
        current = RequestStatus(request.status)

        capability = REQUEST_TRANSITIONS.get((current, target))
        if capability is None:
            raise InvalidTransition(ENTITY, current.value, target.value)
        actor.require(ACTION_NAMES[capability], capability)

        if quantity is not None:
            quantity = check_quantity(quantity)
        remark = (remark or "").strip() or None

        if target == RequestStatus.COMPLETED:
            return self._complete(actor, request, remark, quantity)

        values = {"status": target.value, "updated_at": utcnow()}
        if remark:
            values["admin_remark"] = remark
        if quantity is not None:
            values["quantity"] = quantity

        try:
            self._claim(request.id, current, target, values)
            self.session.commit()
        except InvalidTransition:
            self.session.rollback()
            raise
        self.session.refresh(request)

        self.notifier.notify(
            request.requested_by,
            outcome_message(f"request for {request.item_name}", target.value, remark),
        )
        return Transition(actor, ENTITY, request.id, current.value, target.value, entity=request)

    def _complete(
        self,
        actor: Actor,
        request: ItemRequest,
        remark: Optional[str],
        quantity: Optional[int],
    ) -> Transition:
        # resolve the item before any write
        item = self.ledger.get_by_name(request.item_name)
        quantity = quantity or request.quantity
        recipient = Recipient(user_id=request.requested_by)

        values = {"status": RequestStatus.COMPLETED.value, "updated_at": utcnow(),
                  "quantity": quantity}
        if remark:
            values["admin_remark"] = remark

        with StockTransaction(self.session, "request_completion", item.name) as tx:
            self._claim(request.id, RequestStatus.APPROVED, RequestStatus.COMPLETED, values)
            change = self.ledger.deduct(item.name, quantity, actor.id)
            tx.deducted = True
            issuance = self.journal.record(
                change.item,
                quantity,
                request.unit,
                recipient,
                actor.id,
                request.purpose,
                remark or self.settings.completion_remark,
                IssuanceStatus.COMPLETED,
                request_id=request.id,
            )
            self.journal.supersede(item.id, recipient, IssuanceStatus.IN_USE, IssuanceStatus.COMPLETED)

        self.session.refresh(request)
        self.session.refresh(issuance)
        self.session.refresh(change.item)

        self.notifier.notify(
            request.requested_by,
            outcome_message(
                f"request for {quantity} {request.unit} of {request.item_name}",
                RequestStatus.COMPLETED.value,
                remark,
            ),
        )
        if change.low_stock:
            self.notifier.low_stock(change.item)

        return Transition(
            actor,
            ENTITY,
            request.id,
            RequestStatus.APPROVED.value,
            RequestStatus.COMPLETED.value,
            entity=request,
            related=issuance,
            stock=change,
            details={"item_name": item.name, "quantity": quantity,
                     "remaining": change.item.quantity, "issuance_id": issuance.id},
        )

    def _claim(self, request_id: int, current: RequestStatus, target: RequestStatus, values: dict) -> None:
        stmt = (
            update(ItemRequest)
            .where(ItemRequest.id == request_id, ItemRequest.status == current.value)
            .values(**values)
        )
        if self.session.exec(stmt).rowcount == 0:
            actual = self.session.exec(
                select(ItemRequest.status).where(ItemRequest.id == request_id)
            ).first()
            raise InvalidTransition(ENTITY, actual or "missing", target.value)
