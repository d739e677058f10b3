"""Data models for the database layer."""

import json
from dataclasses import asdict, dataclass
from typing import Optional

from workshop_ops.utils.constants import InventoryCategory, JobStatus


@dataclass
class Department:
    id: Optional[int] = None
    name: str = ""
    description: str = ""
    created_at: Optional[str] = None


@dataclass
class Employee:
    id: Optional[int] = None
    name: str = ""
    department_id: Optional[int] = None
    hourly_rate: Optional[float] = None  # None = no defined rate
    is_active: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Supplier:
    id: Optional[int] = None
    name: str = ""
    contact_person: str = ""
    email: str = ""
    phone: str = ""
    estimated_eta_days: int = 0
    min_order_amount: float = 0.0
    is_active: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def greeting_name(self) -> str:
        return self.contact_person or self.name


@dataclass
class InventoryItem:
    id: Optional[int] = None
    item_code: str = ""
    name: str = ""
    category: str = InventoryCategory.COMPONENT.value
    unit: str = "ea"
    current_stock: int = 0
    reorder_level: int = 0
    standard_stock_level: int = 0
    price: float = 0.0
    supplier_id: Optional[int] = None
    unit_weight: float = 0.0
    tare_weight: float = 0.0
    last_counted_session: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def category_enum(self) -> InventoryCategory:
        return InventoryCategory.parse(self.category)

    @property
    def recommended_order_quantity(self) -> int:
        return max(0, self.standard_stock_level - self.current_stock)

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level > 0 and self.current_stock < self.reorder_level

    @property
    def stock_value(self) -> float:
        return self.current_stock * self.price


@dataclass
class Consumable:
    """One line of a job card's processed consumables.

    ``item_id`` is an inventory id for stocked items, or free text for
    ad-hoc entries that never touch inventory.
    """

    item_id: object = None
    quantity: int = 0
    unit_price: Optional[float] = None
    name: str = ""
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Consumable":
        """Accept both stored snake_case and reporting camelCase keys."""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            item_id=pick("item_id", "itemId", "id"),
            quantity=pick("quantity", default=0),
            unit_price=pick("unit_price", "unitPrice", "price"),
            name=pick("name", "itemName", default=""),
            category=pick("category"),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def to_record(self) -> dict:
        return {
            "itemId": self.item_id,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "name": self.name,
            "category": self.category,
        }

    @property
    def inventory_id(self) -> Optional[int]:
        """The integer inventory id, or None for free-text entries."""
        if isinstance(self.item_id, bool):
            return None
        if isinstance(self.item_id, int):
            return self.item_id
        if isinstance(self.item_id, str) and self.item_id.strip().isdigit():
            return int(self.item_id.strip())
        return None


@dataclass
class JobCard:
    id: Optional[int] = None
    job_code: str = ""
    part_id: Optional[int] = None
    part_name: str = ""
    department_id: Optional[int] = None
    employee_id: Optional[int] = None
    status: str = JobStatus.PENDING.value
    quantity: int = 1
    estimated_time: int = 0  # minutes
    description: str = ""
    priority: int = 0
    scheduled_date: Optional[str] = None
    started_at: Optional[str] = None
    paused_at: Optional[str] = None
    completed_at: Optional[str] = None
    total_paused_milliseconds: int = 0
    processed_consumables: str = "[]"  # JSON array of Consumable dicts
    material_cost: Optional[float] = None
    labor_cost: Optional[float] = None
    total_cost: Optional[float] = None
    issue_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def status_enum(self) -> JobStatus:
        return JobStatus.parse(self.status)

    @property
    def consumable_list(self) -> list[Consumable]:
        try:
            raw = json.loads(self.processed_consumables) if self.processed_consumables else []
        except (json.JSONDecodeError, TypeError):
            return []
        return [Consumable.from_dict(c) for c in raw if isinstance(c, dict)]

    def set_consumables(self, consumables: list):
        self.processed_consumables = json.dumps([
            c.to_dict() if isinstance(c, Consumable)
            else Consumable.from_dict(c).to_dict()
            for c in consumables
        ])

    def to_record(self) -> dict:
        """Export under the persisted reporting field names."""
        return {
            "id": self.id,
            "jobId": self.job_code,
            "partId": self.part_id,
            "partName": self.part_name,
            "departmentId": self.department_id,
            "employeeId": self.employee_id,
            "status": self.status,
            "quantity": self.quantity,
            "estimatedTime": self.estimated_time,
            "description": self.description,
            "priority": self.priority,
            "scheduledDate": self.scheduled_date,
            "startedAt": self.started_at,
            "pausedAt": self.paused_at,
            "completedAt": self.completed_at,
            "totalPausedMilliseconds": self.total_paused_milliseconds,
            "processedConsumables": [c.to_record() for c in self.consumable_list],
            "materialCost": self.material_cost,
            "laborCost": self.labor_cost,
            "totalCost": self.total_cost,
            "issueReason": self.issue_reason,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class PurchaseQueueItem:
    id: Optional[int] = None
    item_id: Optional[int] = None
    item_name: str = ""
    item_code: str = ""
    category: str = ""
    current_stock: int = 0
    reorder_level: int = 0
    standard_stock_level: int = 0
    price: float = 0.0
    unit: str = "ea"
    supplier_id: Optional[int] = None
    status: str = "pending"
    queued_at: Optional[str] = None
    order_date: Optional[str] = None
    expected_arrival_date: Optional[str] = None
    ordered_qty: Optional[int] = None
    ordered_from_supplier_id: Optional[int] = None
    ordered_from_supplier_name: Optional[str] = None
    received_qty: Optional[int] = None
    received_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def recommended_order_quantity(self) -> int:
        return max(0, self.standard_stock_level - self.current_stock)

    @property
    def line_total(self) -> float:
        qty = self.ordered_qty if self.ordered_qty is not None else self.recommended_order_quantity
        return qty * self.price


@dataclass
class ActivityLogEntry:
    id: Optional[int] = None
    action: str = ""
    entity_type: str = ""
    entity_id: Optional[int] = None
    entity_label: str = ""
    actor_id: Optional[int] = None
    details: str = "{}"
    created_at: Optional[str] = None

    @property
    def details_dict(self) -> dict:
        try:
            value = json.loads(self.details) if self.details else {}
        except (json.JSONDecodeError, TypeError):
            return {}
        return value if isinstance(value, dict) else {}


def row_to(model, row):
    """Build a dataclass from a row, ignoring columns it does not declare."""
    return model(**{k: row[k] for k in row.keys() if k in model.__dataclass_fields__})
