from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from logistics.error import ValidationError
from logistics.logging_config import get_logger
from logistics.models import Issuance, StockItem
from logistics.roles import Actor, Capability
from logistics.schemas import IssuanceStatus
from logistics.services.audit import Transition, audited
from logistics.services.inventory import InventoryLedger, StockTransaction, check_quantity
from logistics.services.notifications import Notifier

logger = get_logger("issuance")


@dataclass(frozen=True)
class Recipient:
    """Who received the stock: a known user or a free-text name, never both."""

    user_id: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self):
        name = (self.name or "").strip()
        if (self.user_id is None) == (not name):
            raise ValidationError("issued_to", "Recipient must be either a user or a name")
        object.__setattr__(self, "name", name or None)

    def condition(self):
        if self.user_id is not None:
            return Issuance.issued_to_user_id == self.user_id
        return Issuance.issued_to_name == self.name


class IssuanceJournal:
    """Append-mostly record of stock handed out. Never commits, never deletes."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        item: StockItem,
        quantity: int,
        unit: str,
        recipient: Recipient,
        issuer_id: int,
        purpose: str,
        remarks: str = "",
        status: IssuanceStatus = IssuanceStatus.IN_USE,
        request_id: Optional[int] = None,
    ) -> Issuance:
        issuance = Issuance(
            item_id=item.id,
            quantity=quantity,
            unit=unit,
            issued_to_user_id=recipient.user_id,
            issued_to_name=recipient.name,
            issued_by=issuer_id,
            purpose=purpose,
            remarks=remarks or "",
            status=status.value,
            request_id=request_id,
        )
        self.session.add(issuance)
        self.session.flush()
        return issuance

    def supersede(
        self,
        item_id: int,
        recipient: Recipient,
        from_status: IssuanceStatus = IssuanceStatus.IN_USE,
        to_status: IssuanceStatus = IssuanceStatus.COMPLETED,
    ) -> int:
        """Move every matching entry from ``from_status`` to ``to_status``."""
        stmt = (
            update(Issuance)
            .where(
                Issuance.item_id == item_id,
                recipient.condition(),
                Issuance.status == from_status.value,
            )
            .values(status=to_status.value)
        )
        count = self.session.exec(stmt).rowcount
        if count:
            logger.info("issuances_superseded", extra={"item_id": item_id, "count": count,
                                                       "to_status": to_status.value})
        return count

    def search(
        self,
        item_id: Optional[int] = None,
        recipient_user_id: Optional[int] = None,
        status: Optional[IssuanceStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Issuance]:
        stmt = select(Issuance)
        if item_id is not None:
            stmt = stmt.where(Issuance.item_id == item_id)
        if recipient_user_id is not None:
            stmt = stmt.where(Issuance.issued_to_user_id == recipient_user_id)
        if status is not None:
            stmt = stmt.where(Issuance.status == status.value)
        stmt = stmt.order_by(Issuance.issued_at.desc(), Issuance.id.desc())
        return list(self.session.exec(stmt.offset(offset).limit(limit)).all())


class DirectIssuer:
    """Issue stock straight to a recipient, with no prior request."""

    def __init__(
        self,
        session: Session,
        ledger: Optional[InventoryLedger] = None,
        journal: Optional[IssuanceJournal] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session = session
        self.ledger = ledger or InventoryLedger(session)
        self.journal = journal or IssuanceJournal(session)
        self.notifier = notifier or Notifier(session)

    @audited("issuance.direct")
    def issue(
        self,
        actor: Actor,
        item_name: str,
        quantity,
        recipient: Recipient,
        purpose: str,
        remarks: Optional[str] = None,
        unit: Optional[str] = None,
    ) -> Transition:
        actor.require("Issuing items", Capability.FULFILL)
        quantity = check_quantity(quantity)
        item = self.ledger.get_by_name(item_name)

        with StockTransaction(self.session, "direct_issue", item.name) as tx:
            change = self.ledger.deduct(item.name, quantity, actor.id)
            tx.deducted = True
            issuance = self.journal.record(
                change.item,
                quantity,
                unit or item.unit,
                recipient,
                actor.id,
                purpose,
                remarks or "",
                IssuanceStatus.IN_USE,
            )

        self.session.refresh(issuance)
        self.session.refresh(change.item)
        if change.low_stock:
            self.notifier.low_stock(change.item)

        return Transition(
            actor=actor,
            entity_type="issuance",
            entity_id=issuance.id,
            before=None,
            after=issuance.status,
            entity=issuance,
            stock=change,
            details={"item_name": item.name, "quantity": quantity,
                     "remaining": change.item.quantity},
        )
