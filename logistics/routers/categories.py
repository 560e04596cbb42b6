from fastapi import APIRouter, Depends
from sqlmodel import Session

from logistics.db import get_session
from logistics.deps import require_actor
from logistics.roles import Actor, Capability
from logistics.schemas import CategoryCreate, CategoryRead, CategoryUpdate
from logistics.services.categories import CategoryCatalogue

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryRead])
def list_categories(
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    return CategoryCatalogue(session).search()


@router.post("", response_model=CategoryRead, status_code=201)
def create_category(
        data: CategoryCreate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Managing categories", Capability.MANAGE_STOCK)
    return CategoryCatalogue(session).create(data)


@router.put("/{category_id}", response_model=CategoryRead)
def update_category(
        category_id: int,
        data: CategoryUpdate,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Managing categories", Capability.MANAGE_STOCK)
    return CategoryCatalogue(session).edit(category_id, data)


@router.delete("/{category_id}")
def delete_category(
        category_id: int,
        session: Session = Depends(get_session),
        actor: Actor = Depends(require_actor),
):
    actor.require("Managing categories", Capability.MANAGE_STOCK)
    CategoryCatalogue(session).remove(category_id)
    return {"ok": True, "deleted": category_id}
