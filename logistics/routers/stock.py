from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor, Capability
from logistics.schemas import (
    StockAdvisory,
    StockItemCreate,
    StockItemRead,
    StockItemUpdate,
    StockListResponse,
    StockReceive,
    StockSort,
)
from logistics.services.inventory import InventoryLedger, StockTransaction

router = APIRouter(prefix="/stock", tags=["stock"])


@router.post("", response_model=StockItemRead, status_code=201)
def register_stock_item(
        data: StockItemCreate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Registering stock", Capability.MANAGE_STOCK)
    return InventoryLedger(session).register(data, actor.id)


@router.get("", response_model=StockListResponse)
def list_stock(
        q: str | None = None,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        sort: StockSort = Query(StockSort.name_asc, description="Sort: id/name/qty + _asc/_desc"),
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Viewing stock", Capability.MANAGE_STOCK, Capability.APPROVE)
    items, total = InventoryLedger(session).search(q=q, sort=sort, limit=limit, offset=offset)
    return {"items": items, "total": total, "limit": limit, "offset": offset, "q": q}


@router.get("/{item_id}", response_model=StockItemRead)
def get_stock_item(
        item_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Viewing stock", Capability.MANAGE_STOCK, Capability.APPROVE)
    return InventoryLedger(session).get(item_id)


@router.patch("/{item_id}", response_model=StockItemRead)
def edit_stock_item(
        item_id: int,
        body: StockItemUpdate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Editing stock", Capability.MANAGE_STOCK)
    return InventoryLedger(session).edit(item_id, body, actor.id)


@router.post("/{item_id}/receive", response_model=StockAdvisory)
def receive_stock(
        item_id: int,
        body: StockReceive,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Receiving stock", Capability.MANAGE_STOCK)
    ledger = InventoryLedger(session)
    item = ledger.get(item_id)
    with StockTransaction(session, "receive", item.name):
        change = ledger.restore(item.name, body.quantity, actor.id)
    session.refresh(change.item)
    return change.advisory()


@router.delete("/{item_id}")
def delete_stock_item(
        item_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Deleting stock", Capability.MANAGE_STOCK)
    InventoryLedger(session).remove(item_id, actor.id)
    return {"ok": True, "deleted": item_id}
