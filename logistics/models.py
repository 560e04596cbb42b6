from typing import Optional
from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp():
    # timezone-aware UTC column
    return Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class User(SQLModel, table=True):
    # local directory of users; identity and login live elsewhere
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    name: str = ""
    role: str = Field(default="User", index=True)
    is_active: bool = True


class StockItem(SQLModel, table=True):
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_stockitem_quantity_nonneg"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    category: str
    quantity: int = Field(default=0)
    min_quantity: int = Field(default=10)
    unit: str
    location: str
    description: Optional[str] = None
    status: str = Field(default="in-stock")  # in-stock / in-use / under-repair / damaged

    last_updated: datetime = timestamp()
    updated_by: Optional[int] = Field(default=None, foreign_key="user.id")


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None

    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class ItemRequest(SQLModel, table=True):
    __tablename__ = "request"

    id: Optional[int] = Field(default=None, primary_key=True)
    item_name: str = Field(index=True)
    quantity: int
    unit: str
    purpose: str
    priority: str = Field(default="normal")
    status: str = Field(default="pending", index=True)

    requested_by: int = Field(foreign_key="user.id", index=True)
    admin_remark: Optional[str] = None

    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class Issuance(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # referenced by id only; deleting a stock item keeps its history
    item_id: int = Field(index=True)
    quantity: int
    unit: str

    # exactly one of: a known user, or a free-text recipient name
    issued_to_user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    issued_to_name: Optional[str] = Field(default=None, index=True)

    issued_by: int = Field(foreign_key="user.id")
    purpose: str
    remarks: str = ""
    status: str = Field(default="in-use", index=True)
    request_id: Optional[int] = Field(default=None, foreign_key="request.id")

    issued_at: datetime = timestamp()


class RepairRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    location: str
    priority: str = Field(default="low")
    photo: Optional[str] = None
    description: Optional[str] = None
    status: str = Field(default="pending", index=True)

    requested_by: int = Field(foreign_key="user.id", index=True)
    admin_remark: Optional[str] = None

    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class UnderRepairItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # at most one work item per repair request
    repair_request_id: int = Field(foreign_key="repairrequest.id", unique=True)

    # snapshot taken at approval
    location: str
    priority: str
    photo: Optional[str] = None
    requested_by: int = Field(foreign_key="user.id")

    status: str = Field(default="pending", index=True)
    remarks: Optional[str] = None

    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    message: str
    read: bool = Field(default=False, index=True)
    created_at: datetime = timestamp()


class AuditLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: int = Field(index=True)
    action: str = Field(index=True)
    entity_type: str
    entity_id: int
    before: Optional[str] = None
    after: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = timestamp()
