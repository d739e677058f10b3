"""Domain exceptions raised by the repository and the engines."""


class WorkshopError(Exception):
    """Base exception for workshop operations."""


class NotFoundError(WorkshopError, LookupError):
    """A referenced job, inventory item, supplier or queue entry is absent."""

    def __init__(self, entity: str, key):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class JobNotFoundError(NotFoundError):
    """The job card no longer exists."""

    def __init__(self, key):
        super().__init__("Job card", key)


class InvalidQuantityError(WorkshopError, ValueError):
    """A quantity failed validation before any write."""


class UnknownCategoryError(WorkshopError, ValueError):
    """An inventory category label is not one of the known categories."""

    def __init__(self, label):
        self.label = label
        super().__init__(f"Unknown inventory category: {label!r}")


class InvalidTransitionError(WorkshopError, ValueError):
    """A job status change is not allowed from the current state."""


class AlreadySettledError(InvalidTransitionError):
    """The job has already been approved at QC."""


class InsufficientStockError(WorkshopError, ValueError):
    """A stock adjustment would leave a negative balance."""

    def __init__(self, item_id, current: int, delta: int):
        self.item_id = item_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Insufficient stock for item {item_id}: have {current}, "
            f"adjustment {delta}"
        )


class TransactionConflictError(WorkshopError):
    """The store kept rejecting a transaction after bounded retries."""

    def __init__(self, attempts: int, cause: Exception | None = None):
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Transaction failed after {attempts} attempt(s): {cause}. "
            f"Please try again."
        )
