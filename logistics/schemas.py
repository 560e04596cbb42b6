from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime

# upper bound for any single stock movement or request
MAX_QUANTITY = 100000


class StockStatus(str, Enum):
    IN_STOCK = "in-stock"
    IN_USE = "in-use"
    UNDER_REPAIR = "under-repair"
    DAMAGED = "damaged"


class RequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class IssuanceStatus(str, Enum):
    IN_USE = "in-use"
    COMPLETED = "completed"
    MAINTENANCE = "maintenance"
    REPAIR = "repair"


class RepairPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RepairStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class RepairWorkStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StockSort(str, Enum):
    id_desc = "id_desc"
    id_asc = "id_asc"
    name_asc = "name_asc"
    name_desc = "name_desc"
    qty_asc = "qty_asc"
    qty_desc = "qty_desc"


# ---- stock ----

class StockItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category: str = Field(..., min_length=1)
    quantity: int = Field(0, ge=0, le=MAX_QUANTITY)
    min_quantity: int = Field(10, ge=0, le=MAX_QUANTITY)
    unit: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    description: Optional[str] = None


class StockItemUpdate(BaseModel):
    # no quantity here: stock only moves through receive and issue
    category: Optional[str] = None
    min_quantity: Optional[int] = Field(None, ge=0, le=MAX_QUANTITY)
    unit: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    status: Optional[StockStatus] = None


class StockReceive(BaseModel):
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY)


class StockItemRead(BaseModel):
    id: int
    name: str
    category: str
    quantity: int
    min_quantity: int
    unit: str
    location: str
    description: Optional[str] = None
    status: StockStatus
    last_updated: datetime
    updated_by: Optional[int] = None


class StockListResponse(BaseModel):
    items: list[StockItemRead]
    total: int
    limit: int
    offset: int
    q: str | None = None


class StockAdvisory(BaseModel):
    item_id: int
    item_name: str
    quantity: int
    min_quantity: int
    low_stock: bool


# ---- requests ----

class RequestCreate(BaseModel):
    item_name: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY)
    unit: str = Field(..., min_length=1)
    purpose: str = Field(..., min_length=1)
    priority: RequestPriority = RequestPriority.NORMAL


class RequestEdit(BaseModel):
    quantity: Optional[int] = Field(None, gt=0, le=MAX_QUANTITY)
    unit: Optional[str] = None
    purpose: Optional[str] = None
    priority: Optional[RequestPriority] = None


class StatusChange(BaseModel):
    status: str
    remark: Optional[str] = None
    quantity: Optional[int] = Field(None, le=MAX_QUANTITY)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "approved", "remark": "OK for field exercise"},
                {"status": "completed", "quantity": 45},
            ]
        }
    }


class RequestRead(BaseModel):
    id: int
    item_name: str
    quantity: int
    unit: str
    purpose: str
    priority: RequestPriority
    status: RequestStatus
    requested_by: int
    admin_remark: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---- issuances ----

class IssuanceRead(BaseModel):
    id: int
    item_id: int
    quantity: int
    unit: str
    issued_to_user_id: Optional[int] = None
    issued_to_name: Optional[str] = None
    issued_by: int
    purpose: str
    remarks: str
    status: IssuanceStatus
    request_id: Optional[int] = None
    issued_at: datetime


class DirectIssueCreate(BaseModel):
    item_name: str = Field(..., min_length=1)
    # positivity is checked by the service so it reports VALIDATION_ERROR
    quantity: float = Field(..., le=MAX_QUANTITY)
    issued_to: str = Field(..., min_length=1)
    purpose: str = Field(..., min_length=1)
    unit: Optional[str] = None
    remarks: Optional[str] = None


class DirectIssueRead(BaseModel):
    issuance: IssuanceRead
    stock: StockAdvisory


# ---- repairs ----

class RepairRequestCreate(BaseModel):
    location: str = Field(..., min_length=1)
    priority: RepairPriority = RepairPriority.LOW
    photo: Optional[str] = None
    description: Optional[str] = None


class RepairRequestRead(BaseModel):
    id: int
    location: str
    priority: RepairPriority
    photo: Optional[str] = None
    description: Optional[str] = None
    status: RepairStatus
    requested_by: int
    admin_remark: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UnderRepairRead(BaseModel):
    id: int
    repair_request_id: int
    location: str
    priority: RepairPriority
    photo: Optional[str] = None
    requested_by: int
    status: RepairWorkStatus
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---- transitions ----

class TransitionRead(BaseModel):
    entity_type: str
    entity_id: int
    from_status: str
    to_status: str


class RequestTransitionRead(TransitionRead):
    request: RequestRead
    issuance: Optional[IssuanceRead] = None
    stock: Optional[StockAdvisory] = None


class RepairAssessmentRead(TransitionRead):
    repair_request: RepairRequestRead
    under_repair: Optional[UnderRepairRead] = None


class RepairAdvanceRead(TransitionRead):
    under_repair: UnderRepairRead


# ---- notifications ----

class NotificationRead(BaseModel):
    id: int
    user_id: int
    message: str
    read: bool
    created_at: datetime


# ---- categories ----

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    description: Optional[str] = None


class CategoryRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---- audit / reports ----

class AuditLogRead(BaseModel):
    id: int
    actor_id: int
    action: str
    entity_type: str
    entity_id: int
    before: Optional[str] = None
    after: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime


class StatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    completed: int = 0


class StockStats(BaseModel):
    total: int
    low_stock: int
    out_of_stock: int


class Activity(BaseModel):
    date: datetime
    type: str
    description: str
    user_id: Optional[int] = None
    user: str = "Unknown"


class ReportRead(BaseModel):
    start: datetime
    end: datetime
    request_stats: StatusCounts
    stock_stats: StockStats
    repair_stats: StatusCounts
    recent_activity: list[Activity]
