"""Read-only summary for administrators: status counts and recent activity."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from logistics.error import ValidationError
from logistics.models import ItemRequest, RepairRequest, StockItem, User, utcnow
from logistics.roles import Actor, Capability
from logistics.schemas import StatusCounts, StockStats

DEFAULT_WINDOW = timedelta(days=30)
ACTIVITY_PER_KIND = 5
ACTIVITY_LIMIT = 10


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReportBuilder:
    def __init__(self, session: Session):
        self.session = session

    def summary(
        self,
        actor: Actor,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict:
        actor.require("Viewing reports", Capability.ADMINISTER, Capability.APPROVE)
        end = as_utc(end) if end else utcnow()
        start = as_utc(start) if start else end - DEFAULT_WINDOW
        if start > end:
            raise ValidationError("start", "start must not be after end")

        return {
            "start": start,
            "end": end,
            "request_stats": self._status_counts(ItemRequest, start, end),
            "stock_stats": self._stock_stats(),
            "repair_stats": self._status_counts(RepairRequest, start, end),
            "recent_activity": self._recent_activity(),
        }

    def _status_counts(self, model, start: datetime, end: datetime) -> StatusCounts:
        rows = self.session.exec(
            select(model.status, func.count())
            .where(model.created_at >= start, model.created_at <= end)
            .group_by(model.status)
        ).all()
        counts = {status: n for status, n in rows}
        return StatusCounts(
            total=sum(counts.values()),
            pending=counts.get("pending", 0),
            approved=counts.get("approved", 0),
            rejected=counts.get("rejected", 0),
            completed=counts.get("completed", 0),
        )

    def _stock_stats(self) -> StockStats:
        total = self.session.exec(select(func.count()).select_from(StockItem)).one()
        low = self.session.exec(
            select(func.count()).select_from(StockItem)
            .where(StockItem.quantity <= StockItem.min_quantity)
        ).one()
        out = self.session.exec(
            select(func.count()).select_from(StockItem).where(StockItem.quantity == 0)
        ).one()
        return StockStats(total=total, low_stock=low, out_of_stock=out)

    def _recent_activity(self) -> list[dict]:
        activity = []

        requests = self.session.exec(
            select(ItemRequest).order_by(ItemRequest.created_at.desc(), ItemRequest.id.desc())
            .limit(ACTIVITY_PER_KIND)
        ).all()
        for r in requests:
            activity.append({"date": r.created_at, "type": "Request",
                             "description": f"{r.item_name} ({r.quantity} {r.unit})",
                             "user_id": r.requested_by})

        items = self.session.exec(
            select(StockItem).order_by(StockItem.last_updated.desc(), StockItem.id.desc())
            .limit(ACTIVITY_PER_KIND)
        ).all()
        for item in items:
            activity.append({"date": item.last_updated, "type": "Stock Update",
                             "description": f"{item.name} - {item.status}",
                             "user_id": item.updated_by})

        repairs = self.session.exec(
            select(RepairRequest).order_by(RepairRequest.created_at.desc(), RepairRequest.id.desc())
            .limit(ACTIVITY_PER_KIND)
        ).all()
        for repair in repairs:
            activity.append({"date": repair.created_at, "type": "Repair",
                             "description": repair.description or repair.location,
                             "user_id": repair.requested_by})

        user_ids = {a["user_id"] for a in activity if a["user_id"] is not None}
        names = {}
        if user_ids:
            names = {u.id: u.name or u.username
                     for u in self.session.exec(select(User).where(User.id.in_(user_ids))).all()}
        for a in activity:
            a["user"] = names.get(a["user_id"], "Unknown")

        activity.sort(key=lambda a: as_utc(a["date"]), reverse=True)
        return activity[:ACTIVITY_LIMIT]
