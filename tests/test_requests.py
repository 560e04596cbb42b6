import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import actor, add_stock
from logistics.error import (
    Forbidden,
    InsufficientStock,
    InvalidTransition,
    ItemNotFound,
    NotFound,
    StockInconsistency,
    ValidationError,
)
from logistics.models import AuditLog, Issuance, ItemRequest, Notification
from logistics.schemas import RequestCreate, RequestEdit
from logistics.services.issuance import IssuanceJournal, Recipient
from logistics.services.requests import RequestService


def _request(session, requester, item="Rifle", quantity=45, status="pending"):
    req = ItemRequest(
        item_name=item,
        quantity=quantity,
        unit="pcs",
        purpose="Field exercise",
        requested_by=requester.id,
        status=status,
    )
    session.add(req)
    session.commit()
    session.refresh(req)
    return req


def _issuances(session):
    return session.exec(select(Issuance).order_by(Issuance.id)).all()


def test_create_request_starts_pending(session, requester):
    t = RequestService(session).create(
        actor(requester),
        RequestCreate(item_name=" Rifle ", quantity=3, unit="pcs", purpose="Training"),
    )

    assert t.entity.status == "pending"
    assert t.entity.item_name == "Rifle"
    assert t.entity.requested_by == requester.id
    assert t.before is None and t.after == "pending"


def test_admin_approves_and_requester_is_notified(session, requester, admin):
    req = _request(session, requester)

    t = RequestService(session).transition(actor(admin), req.id, "approved", remark="Go ahead")

    assert (t.before, t.after) == ("pending", "approved")
    assert t.entity.status == "approved"
    assert t.entity.admin_remark == "Go ahead"
    note = session.exec(select(Notification).where(Notification.user_id == requester.id)).one()
    assert note.message == "Your request for Rifle has been approved: Go ahead"


def test_admin_rejects(session, requester, admin):
    req = _request(session, requester)

    t = RequestService(session).transition(actor(admin), req.id, "Rejected")

    assert t.entity.status == "rejected"
    assert _issuances(session) == []


def test_status_is_case_insensitive_but_must_be_known(session, requester, admin):
    req = _request(session, requester)
    with pytest.raises(ValidationError):
        RequestService(session).transition(actor(admin), req.id, "shipped")


def test_pending_to_completed_is_invalid(session, requester, officer):
    add_stock(session)
    req = _request(session, requester)

    with pytest.raises(InvalidTransition) as exc:
        RequestService(session).transition(actor(officer), req.id, "completed")

    assert exc.value.fields["current"] == "pending"
    assert exc.value.fields["requested"] == "completed"


def test_terminal_states_do_not_move(session, requester, admin):
    req = _request(session, requester, status="rejected")
    with pytest.raises(InvalidTransition):
        RequestService(session).transition(actor(admin), req.id, "approved")


@pytest.mark.parametrize("who,target", [
    ("officer", "approved"),
    ("requester", "rejected"),
    ("sysadmin", "approved"),
])
def test_only_approvers_decide(session, request, requester, who, target):
    req = _request(session, requester)
    user = request.getfixturevalue(who)

    with pytest.raises(Forbidden) as exc:
        RequestService(session).transition(actor(user), req.id, target)

    assert exc.value.fields["allowed_roles"] == ["Admin"]


def test_only_fulfillers_complete(session, requester, admin):
    add_stock(session)
    req = _request(session, requester, status="approved")

    with pytest.raises(Forbidden) as exc:
        RequestService(session).transition(actor(admin), req.id, "completed")

    assert exc.value.fields == {"role": "Admin", "allowed_roles": ["LogisticsOfficer"]}


def test_missing_request(session, admin):
    with pytest.raises(NotFound):
        RequestService(session).transition(actor(admin), 999, "approved")


def test_completion_deducts_journals_and_flags_low_stock(session, requester, officer):
    item = add_stock(session, quantity=50, min_quantity=10)
    req = _request(session, requester, quantity=45, status="approved")

    t = RequestService(session).transition(actor(officer), req.id, "completed")

    assert t.entity.status == "completed"
    assert t.stock.item.quantity == 5
    assert t.stock.low_stock is True
    session.refresh(item)
    assert item.quantity == 5

    [issuance] = _issuances(session)
    assert issuance.quantity == 45
    assert issuance.status == "completed"
    assert issuance.item_id == item.id
    assert issuance.issued_to_user_id == requester.id
    assert issuance.issued_by == officer.id
    assert issuance.request_id == req.id
    assert issuance.remarks == "Completed by Logistics Officer"
    assert t.related.id == issuance.id


def test_completion_closes_earlier_in_use_issuances(session, requester, officer, admin):
    item = add_stock(session, quantity=50)
    journal = IssuanceJournal(session)
    mine = journal.record(item, 2, "pcs", Recipient(user_id=requester.id), officer.id, "Loan")
    other = journal.record(item, 1, "pcs", Recipient(user_id=admin.id), officer.id, "Loan")
    session.commit()
    req = _request(session, requester, quantity=5, status="approved")

    RequestService(session).transition(actor(officer), req.id, "completed", remark="Handed over")

    session.refresh(mine)
    session.refresh(other)
    assert mine.status == "completed"
    assert other.status == "in-use"
    newest = _issuances(session)[-1]
    assert newest.remarks == "Handed over"
    assert newest.status == "completed"


def test_second_completion_is_rejected_for_insufficient_stock(session, requester, officer):
    item = add_stock(session, quantity=5, min_quantity=10)
    req = _request(session, requester, quantity=10, status="approved")

    with pytest.raises(InsufficientStock) as exc:
        RequestService(session).transition(actor(officer), req.id, "completed")

    assert exc.value.fields["available"] == 5
    assert exc.value.fields["requested"] == 10
    session.refresh(item)
    session.refresh(req)
    assert item.quantity == 5
    assert req.status == "approved"
    assert _issuances(session) == []


def test_completion_of_unknown_item(session, requester, officer):
    req = _request(session, requester, item="Mortar", status="approved")

    with pytest.raises(ItemNotFound):
        RequestService(session).transition(actor(officer), req.id, "completed")

    session.refresh(req)
    assert req.status == "approved"


def test_quantity_override_on_completion(session, requester, officer):
    item = add_stock(session, quantity=50)
    req = _request(session, requester, quantity=45, status="approved")

    t = RequestService(session).transition(actor(officer), req.id, "completed", quantity=20)

    assert t.entity.quantity == 20
    session.refresh(item)
    assert item.quantity == 30
    assert _issuances(session)[0].quantity == 20


def test_completion_cannot_happen_twice(session, requester, officer):
    add_stock(session, quantity=50)
    req = _request(session, requester, quantity=5, status="approved")
    service = RequestService(session)
    service.transition(actor(officer), req.id, "completed")

    with pytest.raises(InvalidTransition):
        service.transition(actor(officer), req.id, "completed")
    assert len(_issuances(session)) == 1


def test_journal_failure_after_deduction_rolls_everything_back(session, requester, officer, monkeypatch):
    item = add_stock(session, quantity=50)
    req = _request(session, requester, quantity=5, status="approved")
    service = RequestService(session)

    def broken_record(*args, **kwargs):
        raise OperationalError("INSERT INTO issuance", {}, Exception("disk full"))

    monkeypatch.setattr(service.journal, "record", broken_record)

    with pytest.raises(StockInconsistency):
        service.transition(actor(officer), req.id, "completed")

    session.refresh(item)
    session.refresh(req)
    assert item.quantity == 50
    assert req.status == "approved"


def test_notification_failure_does_not_undo_transition(session, requester, admin, monkeypatch):
    req = _request(session, requester)

    def broken_notification(**kwargs):
        raise OperationalError("INSERT INTO notification", {}, Exception("locked"))

    monkeypatch.setattr("logistics.services.notifications.Notification", broken_notification)

    t = RequestService(session).transition(actor(admin), req.id, "approved")

    assert t.entity.status == "approved"
    session.refresh(req)
    assert req.status == "approved"


def test_transitions_are_audited(session, requester, admin):
    req = _request(session, requester)

    RequestService(session).transition(actor(admin), req.id, "approved")

    entry = session.exec(select(AuditLog)).one()
    assert entry.action == "request.transition"
    assert entry.entity_type == "request"
    assert entry.entity_id == req.id
    assert (entry.before, entry.after) == ("pending", "approved")
    assert entry.actor_id == admin.id


def test_requester_edits_own_pending_request(session, requester, admin):
    req = _request(session, requester, quantity=3)
    service = RequestService(session)

    t = service.edit(actor(requester), req.id, RequestEdit(quantity=4, priority="urgent"))
    assert t.entity.quantity == 4
    assert t.entity.priority == "urgent"

    with pytest.raises(Forbidden):
        service.edit(actor(admin), req.id, RequestEdit(quantity=1))

    service.transition(actor(admin), req.id, "approved")
    with pytest.raises(InvalidTransition):
        service.edit(actor(requester), req.id, RequestEdit(quantity=1))


def test_listing_all_requests_needs_a_reviewer(session, requester, admin, officer):
    _request(session, requester)
    service = RequestService(session)

    assert len(service.search(actor(admin))) == 1
    assert len(service.search(actor(officer))) == 1
    assert len(service.mine(actor(requester))) == 1
    with pytest.raises(Forbidden):
        service.search(actor(requester))
