import pytest

from conftest import add_stock, auth
from logistics.error import CategoryInUse, DuplicateCategory, NotFound
from logistics.schemas import CategoryCreate, CategoryUpdate
from logistics.services.categories import CategoryCatalogue


def test_create_and_list_sorted(session):
    catalogue = CategoryCatalogue(session)
    catalogue.create(CategoryCreate(name="weapons"))
    catalogue.create(CategoryCreate(name=" equipment ", description="Field kit"))

    assert [c.name for c in catalogue.search()] == ["equipment", "weapons"]
    with pytest.raises(DuplicateCategory):
        catalogue.create(CategoryCreate(name="weapons"))


def test_category_in_use_cannot_be_deleted(session):
    catalogue = CategoryCatalogue(session)
    category = catalogue.create(CategoryCreate(name="equipment"))
    item = add_stock(session)  # category "equipment"

    with pytest.raises(CategoryInUse) as exc:
        catalogue.remove(category.id)
    assert exc.value.fields == {"category": "equipment", "stock_items": 1}

    session.delete(item)
    session.commit()
    catalogue.remove(category.id)
    with pytest.raises(NotFound):
        catalogue.get(category.id)


def test_rename_moves_stock_items_along(session):
    catalogue = CategoryCatalogue(session)
    category = catalogue.create(CategoryCreate(name="equipment"))
    catalogue.create(CategoryCreate(name="weapons"))
    item = add_stock(session)

    renamed = catalogue.edit(category.id, CategoryUpdate(name="field kit", description="Webbing"))

    assert (renamed.name, renamed.description) == ("field kit", "Webbing")
    session.refresh(item)
    assert item.category == "field kit"
    with pytest.raises(DuplicateCategory):
        catalogue.edit(category.id, CategoryUpdate(name="weapons"))


def test_category_endpoints(client, session, requester, officer):
    r = client.post("/categories", json={"name": "equipment"}, headers=auth(requester))
    assert r.status_code == 403

    r = client.post("/categories", json={"name": "equipment"}, headers=auth(officer))
    assert r.status_code == 201
    category_id = r.json()["id"]
    add_stock(session)

    r = client.delete(f"/categories/{category_id}", headers=auth(officer))
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "CATEGORY_IN_USE"

    r = client.put(f"/categories/{category_id}", json={"name": "kit"}, headers=auth(officer))
    assert r.json()["name"] == "kit"
    assert [c["name"] for c in client.get("/categories", headers=auth(requester)).json()] == ["kit"]


def test_stock_delete_keeps_issuance_history(client, session, officer, requester):
    item = add_stock(session, name="Radio", quantity=6, unit="sets")
    r = client.post("/issuances", json={"item_name": "Radio", "quantity": 2, "issued_to": "Lt. Achieng",
                                        "purpose": "Convoy"}, headers=auth(officer))
    assert r.status_code == 201

    assert client.delete(f"/stock/{item.id}", headers=auth(requester)).status_code == 403
    r = client.delete(f"/stock/{item.id}", headers=auth(officer))
    assert r.json() == {"ok": True, "deleted": item.id}
    assert client.get(f"/stock/{item.id}", headers=auth(officer)).status_code == 404

    r = client.get(f"/issuances?item_id={item.id}", headers=auth(officer))
    assert [i["quantity"] for i in r.json()] == [2]
