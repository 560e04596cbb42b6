from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from logistics.config import Settings, get_settings
from logistics.error import NotFound
from logistics.logging_config import get_logger
from logistics.models import Notification, StockItem, User
from logistics.roles import Role

logger = get_logger("notifications")


class Notifier:
    """Fire-and-forget notifications.

    Every write commits on its own and failures are logged, never raised,
    so callers must only notify after their own transaction has committed.
    """

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    def notify(self, user_id: int, message: str) -> Optional[Notification]:
        try:
            notification = Notification(user_id=user_id, message=message)
            self.session.add(notification)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("notification_failed", extra={"user_id": user_id})
            return None
        self.session.refresh(notification)
        return notification

    def notify_roles(self, roles: Iterable[Role], message: str) -> list[Notification]:
        wanted = set(roles)
        try:
            users = self.session.exec(select(User).where(User.is_active == True)).all()  # noqa: E712
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("notification_lookup_failed", extra={"roles": [r.value for r in wanted]})
            return []

        sent = []
        for user in users:
            if Role.parse(user.role) in wanted:
                notification = self.notify(user.id, message)
                if notification is not None:
                    sent.append(notification)
        return sent

    def low_stock(self, item: StockItem) -> list[Notification]:
        if not self.settings.low_stock_notifications:
            return []
        message = (
            f"Low stock alert: {item.name} is down to {item.quantity} {item.unit} "
            f"(minimum {item.min_quantity})"
        )
        return self.notify_roles([Role.LOGISTICS_OFFICER], message)

    # ---- inbox ----

    def inbox(self, user_id: int, limit: Optional[int] = None) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit or self.settings.notification_page_size)
        )
        return list(self.session.exec(stmt).all())

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFound("notification", notification_id)
        notification.read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
            .values(read=True)
        )
        result = self.session.exec(stmt)
        self.session.commit()
        return result.rowcount
