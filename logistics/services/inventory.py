"""Inventory ledger: the only code allowed to change ``StockItem.quantity``.

Decrements are a single conditional UPDATE (``quantity >= requested`` in the
WHERE clause), so concurrent callers on the same item can never jointly
overdraw it. The ledger never commits; callers own the transaction.
"""

import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from logistics.error import (
    DuplicateItem,
    InsufficientStock,
    ItemNotFound,
    NotFound,
    StockInconsistency,
    ValidationError,
)
from logistics.logging_config import get_logger
from logistics.models import StockItem, utcnow
from logistics.schemas import MAX_QUANTITY, StockAdvisory, StockItemCreate, StockItemUpdate, StockSort

logger = get_logger("inventory")

ORDER_BY = {
    StockSort.id_desc: StockItem.id.desc(),
    StockSort.id_asc: StockItem.id.asc(),
    StockSort.name_asc: StockItem.name.asc(),
    StockSort.name_desc: StockItem.name.desc(),
    StockSort.qty_asc: StockItem.quantity.asc(),
    StockSort.qty_desc: StockItem.quantity.desc(),
}


def check_quantity(quantity, field: str = "quantity") -> int:
    """Accept positive whole numbers (``5`` or ``5.0``) up to MAX_QUANTITY.

    Bools, NaN and infinities are rejected.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
        raise ValidationError(field, "Quantity must be a positive number")
    if isinstance(quantity, float) and not math.isfinite(quantity):
        raise ValidationError(field, "Quantity must be a positive number")
    if quantity <= 0 or quantity != int(quantity):
        raise ValidationError(field, "Quantity must be a positive number")
    if quantity > MAX_QUANTITY:
        raise ValidationError(field, f"Quantity must not exceed {MAX_QUANTITY}")
    return int(quantity)


def _stamp(actor_id: Optional[int]) -> dict:
    stamp = {"last_updated": utcnow()}
    if actor_id is not None:
        stamp["updated_by"] = actor_id
    return stamp


@dataclass
class StockChange:
    item: StockItem
    delta: int

    @property
    def low_stock(self) -> bool:
        return self.item.quantity <= self.item.min_quantity

    def advisory(self) -> StockAdvisory:
        return StockAdvisory(
            item_id=self.item.id,
            item_name=self.item.name,
            quantity=self.item.quantity,
            min_quantity=self.item.min_quantity,
            low_stock=self.low_stock,
        )


class InventoryLedger:
    def __init__(self, session: Session):
        self.session = session

    # ---- lookups ----

    def find(self, name: str) -> Optional[StockItem]:
        stmt = select(StockItem).where(StockItem.name == name)
        return self.session.exec(stmt.execution_options(populate_existing=True)).first()

    def get_by_name(self, name: str) -> StockItem:
        item = self.find(name)
        if item is None:
            raise ItemNotFound(name)
        return item

    def get(self, item_id: int) -> StockItem:
        item = self.session.get(StockItem, item_id)
        if item is None:
            raise NotFound("stock_item", item_id)
        return item

    def search(
        self,
        q: Optional[str] = None,
        sort: StockSort = StockSort.name_asc,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[StockItem], int]:
        conds = []
        if q:
            conds.append(or_(StockItem.name.contains(q), StockItem.location.contains(q)))

        count_stmt = select(func.count()).select_from(StockItem)
        items_stmt = select(StockItem)
        if conds:
            count_stmt = count_stmt.where(*conds)
            items_stmt = items_stmt.where(*conds)

        total = self.session.exec(count_stmt).one()
        items = self.session.exec(
            items_stmt.order_by(ORDER_BY[sort]).offset(offset).limit(limit)
        ).all()
        return list(items), total

    # ---- catalogue ----

    def register(self, data: StockItemCreate, actor_id: int) -> StockItem:
        # friendly check first; the unique constraint catches races
        if self.find(data.name) is not None:
            raise DuplicateItem(data.name)

        item = StockItem(
            name=data.name,
            category=data.category,
            quantity=data.quantity,
            min_quantity=data.min_quantity,
            unit=data.unit,
            location=data.location,
            description=data.description,
            updated_by=actor_id,
        )
        self.session.add(item)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateItem(data.name)
        self.session.refresh(item)
        logger.info("stock_registered", extra={"item_id": item.id, "item_name": item.name,
                                               "quantity": item.quantity})
        return item

    def edit(self, item_id: int, data: StockItemUpdate, actor_id: int) -> StockItem:
        item = self.get(item_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "status" in changes:
            changes["status"] = changes["status"].value
        for key, value in changes.items():
            setattr(item, key, value)
        item.last_updated = utcnow()
        item.updated_by = actor_id
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def remove(self, item_id: int, actor_id: int) -> StockItem:
        """Delete a catalogue entry. Issuances keep the id as a plain reference."""
        item = self.get(item_id)
        self.session.delete(item)
        self.session.commit()
        logger.info("stock_removed", extra={"item_id": item_id, "item_name": item.name,
                                            "quantity": item.quantity, "actor_id": actor_id})
        return item

    # ---- quantity ----

    def deduct(self, name: str, quantity: int, actor_id: Optional[int] = None) -> StockChange:
        """Take ``quantity`` units of ``name`` out of stock.

        Raises ItemNotFound or InsufficientStock and leaves the row untouched
        in both cases. Does not commit.
        """
        quantity = check_quantity(quantity)
        stmt = (
            update(StockItem)
            .where(StockItem.name == name, StockItem.quantity >= quantity)
            .values(quantity=StockItem.quantity - quantity, **_stamp(actor_id))
        )
        result = self.session.exec(stmt)
        if result.rowcount == 0:
            item = self.find(name)
            if item is None:
                raise ItemNotFound(name)
            raise InsufficientStock(name, available=item.quantity, requested=quantity)

        change = StockChange(item=self.get_by_name(name), delta=-quantity)
        logger.info("stock_deducted", extra={"item_name": name, "requested": quantity,
                                             "remaining": change.item.quantity})
        if change.low_stock:
            logger.warning("low_stock", extra={"item_name": name,
                                               "quantity": change.item.quantity,
                                               "min_quantity": change.item.min_quantity})
        return change

    def restore(self, name: str, quantity: int, actor_id: Optional[int] = None) -> StockChange:
        """Put ``quantity`` units back (receipts, reversals). Does not commit."""
        quantity = check_quantity(quantity)
        stmt = (
            update(StockItem)
            .where(StockItem.name == name)
            .values(quantity=StockItem.quantity + quantity, **_stamp(actor_id))
        )
        result = self.session.exec(stmt)
        if result.rowcount == 0:
            raise ItemNotFound(name)

        change = StockChange(item=self.get_by_name(name), delta=quantity)
        logger.info("stock_restored", extra={"item_name": name, "added": quantity,
                                             "quantity": change.item.quantity})
        return change


class StockTransaction:
    """One commit for a stock decrement and everything recorded alongside it.

    Any exception rolls the whole unit back. A storage failure once
    ``deducted`` is set is logged at CRITICAL and re-raised as
    StockInconsistency; domain errors pass through unchanged.

        with StockTransaction(session, "direct_issue", name) as tx:
            ledger.deduct(name, 3)
            tx.deducted = True
            journal.record(...)
    """

    def __init__(self, session: Session, operation: str, item_name: str):
        self.session = session
        self.operation = operation
        self.item_name = item_name
        self.deducted = False

    def __enter__(self) -> "StockTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            try:
                self.session.commit()
            except SQLAlchemyError as err:
                self._abort(err)
                raise
            return False

        if isinstance(exc, SQLAlchemyError):
            self._abort(exc)
        else:
            self.session.rollback()
        return False

    def _abort(self, err: SQLAlchemyError) -> None:
        self.session.rollback()
        if not self.deducted:
            return
        logger.critical(
            "stock_inconsistency",
            exc_info=err,
            extra={"operation": self.operation, "item_name": self.item_name},
        )
        raise StockInconsistency(self.operation, self.item_name) from err
