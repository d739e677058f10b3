"""Application-wide constants."""

from enum import Enum

from workshop_ops.errors import InvalidTransitionError, UnknownCategoryError

APP_NAME = "Workshop-Ops"
APP_VERSION = "1.0.0"


# ── Job statuses ─────────────────────────────────────────────────

class JobStatus(str, Enum):
    """Production pipeline states, persisted as their literal values."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    PAUSED = "Paused"
    AWAITING_QC = "Awaiting QC"
    COMPLETE = "Complete"
    ISSUE = "Issue"
    HALTED = "Halted - Issue"
    ARCHIVED_ISSUE = "Archived - Issue"

    @classmethod
    def parse(cls, value) -> "JobStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidTransitionError(
                f"Unknown job status: {value!r}"
            ) from None

    def __str__(self) -> str:
        return self.value


JOB_STATUSES = [s.value for s in JobStatus]

# Statuses reachable only through a QC decision
QC_OUTCOME_STATUSES = {JobStatus.COMPLETE, JobStatus.ISSUE}

# Statuses from which a job can no longer be settled
SETTLED_STATUSES = {JobStatus.COMPLETE, JobStatus.ARCHIVED_ISSUE}

# Statuses whose duration ends at completed_at
FINISHED_STATUSES = {
    JobStatus.COMPLETE,
    JobStatus.AWAITING_QC,
    JobStatus.ISSUE,
    JobStatus.ARCHIVED_ISSUE,
}

REWORK_PREFIX = "REWORK: "
REWORK_RESOLVED_REASON = "Rework Resolved - Re-queued"


# ── Inventory categories ─────────────────────────────────────────

class InventoryCategory(str, Enum):
    """The four inventory collections an item can live in."""

    COMPONENT = "Component"
    RAW_MATERIAL = "Raw Material"
    WORKSHOP_SUPPLY = "Workshop Supply"
    PRODUCT = "Product"

    @classmethod
    def parse(cls, label) -> "InventoryCategory":
        """Resolve a category label, raising UnknownCategoryError."""
        if isinstance(label, cls):
            return label
        text = str(label or "").strip()
        for category in cls:
            if text.lower() == category.value.lower():
                return category
        raise UnknownCategoryError(label)

    def __str__(self) -> str:
        return self.value


INVENTORY_CATEGORIES = [c.value for c in InventoryCategory]


# ── Purchase queue ───────────────────────────────────────────────

class QueueStatus(str, Enum):
    PENDING = "pending"
    ORDERED = "ordered"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


QUEUE_STATUSES = [s.value for s in QueueStatus]

QUEUE_STATUS_LABELS = {
    QueueStatus.PENDING.value: "Pending",
    QueueStatus.ORDERED.value: "In Transit",
    QueueStatus.COMPLETED.value: "Received",
}


# ── Live collections ─────────────────────────────────────────────

COLLECTION_JOB_CARDS = "job_cards"
COLLECTION_INVENTORY = "inventory_items"
COLLECTION_PURCHASE_QUEUE = "purchase_queue"
COLLECTION_SUPPLIERS = "suppliers"
COLLECTION_EMPLOYEES = "employees"
COLLECTION_ACTIVITY = "activity_log"

# Job card scan prefix used on printed labels
JOB_CARD_QR_PREFIX = "JC:"
