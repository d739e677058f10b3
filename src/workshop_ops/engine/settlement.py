"""QC settlement: the atomic unit that closes out a job card.

Approval stamps completion, prices materials and labor, deducts every
matched consumable from stock and queues replenishment for items whose
stock crossed below their reorder level. Either all of it commits or
none of it does.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

from workshop_ops.config import Config
from workshop_ops.database.models import Consumable, JobCard
from workshop_ops.database.repository import Repository
from workshop_ops.engine.ledger import InventoryLedger, StockMovement
from workshop_ops.engine.purchasing import PurchaseQueueManager
from workshop_ops.errors import AlreadySettledError, JobNotFoundError
from workshop_ops.utils.constants import (
    COLLECTION_INVENTORY,
    COLLECTION_JOB_CARDS,
    COLLECTION_PURCHASE_QUEUE,
    REWORK_PREFIX,
    SETTLED_STATUSES,
    InventoryCategory,
    JobStatus,
)
from workshop_ops.utils.dates import Clock, elapsed_ms, parse_iso, to_iso, utc_now
from workshop_ops.utils.formatters import format_currency

logger = logging.getLogger(__name__)


@dataclass
class ReworkRequest:
    """Send a rejected job straight back to Pending instead of Issue."""

    requeue: bool = True
    new_employee_id: Optional[int] = None


@dataclass
class SettlementResult:
    job: JobCard
    approved: bool
    material_cost: float = 0.0
    labor_cost: float = 0.0
    total_cost: float = 0.0
    movements: list[StockMovement] = field(default_factory=list)
    queued_ids: list[int] = field(default_factory=list)
    finished_goods: Optional[StockMovement] = None


def labor_hours(job: JobCard, now) -> float:
    """Active hours from start to ``now`` less whole paused seconds."""
    started = parse_iso(job.started_at)
    if started is None:
        return 0.0
    active_seconds = (
        elapsed_ms(started, now) / 1000
        - (job.total_paused_milliseconds or 0) // 1000
    )
    return max(0.0, active_seconds / 3600)


class QcSettlementEngine:
    """Applies QC decisions to job cards."""

    def __init__(self, repo: Repository, ledger: InventoryLedger,
                 purchasing: PurchaseQueueManager,
                 clock: Optional[Clock] = None):
        self.repo = repo
        self.ledger = ledger
        self.purchasing = purchasing
        self.clock = clock or utc_now

    def settle(self, job_id: int, approved: bool,
               rejection_reason: Optional[str] = None,
               rework: Optional[ReworkRequest] = None,
               deduct_stock: bool = True,
               actor_id: Optional[int] = None) -> SettlementResult:
        """Apply a QC decision in one transaction, re-run in full on conflict.

        Raises:
            JobNotFoundError: the job no longer exists.
            AlreadySettledError: the job is already Complete or archived.
            TransactionConflictError: the store stayed locked past the
                retry budget; nothing was written.
        """
        def _apply(conn) -> SettlementResult:
            job = self.repo.get_job_card_by_id(job_id, conn)
            if job is None:
                raise JobNotFoundError(job_id)
            if JobStatus.parse(job.status) in SETTLED_STATUSES:
                raise AlreadySettledError(
                    f"Job {job.job_code} is already {job.status}"
                )
            if approved:
                return self._approve(conn, job, deduct_stock, actor_id)
            return self._reject(conn, job, rejection_reason, rework, actor_id)

        result = self.repo.db.run_transaction(_apply)

        collections = [COLLECTION_JOB_CARDS]
        if result.movements or result.finished_goods:
            collections.append(COLLECTION_INVENTORY)
        if result.queued_ids:
            collections.append(COLLECTION_PURCHASE_QUEUE)
        self.repo.notify_changed(*collections)

        if approved:
            logger.info(
                f"QC approved {result.job.job_code}: material "
                f"{format_currency(result.material_cost)} + labor "
                f"{format_currency(result.labor_cost)} = "
                f"{format_currency(result.total_cost)}; "
                f"{len(result.movements)} stock movement(s), "
                f"{len(result.queued_ids)} reorder(s)"
            )
        else:
            logger.info(
                f"QC rejected {result.job.job_code} -> {result.job.status}: "
                f"{result.job.issue_reason}"
            )
        return result

    def approve(self, job_id: int, **kwargs) -> SettlementResult:
        return self.settle(job_id, True, **kwargs)

    def reject(self, job_id: int, reason: str, **kwargs) -> SettlementResult:
        return self.settle(job_id, False, rejection_reason=reason, **kwargs)

    def _close_open_pause(self, conn, job: JobCard, now):
        """Fold a pause still open at settlement into the accumulator."""
        paused_at = parse_iso(job.paused_at)
        if paused_at is not None:
            pause_ms = max(0, elapsed_ms(paused_at, now))
            self.repo.add_paused_milliseconds(job.id, pause_ms, conn)
            job.total_paused_milliseconds = (
                (job.total_paused_milliseconds or 0) + pause_ms
            )
        job.paused_at = None

    # ── Rejection ───────────────────────────────────────────────

    def _reject(self, conn, job: JobCard, reason: Optional[str],
                rework: Optional[ReworkRequest],
                actor_id: Optional[int]) -> SettlementResult:
        now = self.clock()
        now_iso = to_iso(now)
        previous = job.status
        self._close_open_pause(conn, job, now)
        if rework is not None and rework.requeue:
            job.status = JobStatus.PENDING.value
            job.issue_reason = f"{REWORK_PREFIX}{reason or ''}"
            job.completed_at = None
            if rework.new_employee_id is not None:
                job.employee_id = rework.new_employee_id
        else:
            job.status = JobStatus.ISSUE.value
            job.issue_reason = reason

        self.repo.update_job_card(job, conn)
        self.repo.log_activity(
            "qc_rejected", "job_card", job.id, job.job_code, actor_id=actor_id,
            details={"from": previous, "to": job.status, "reason": reason},
            created_at=now_iso, conn=conn,
        )
        return SettlementResult(
            job=self.repo.get_job_card_by_id(job.id, conn), approved=False,
        )

    # ── Approval ────────────────────────────────────────────────

    def _approve(self, conn, job: JobCard, deduct_stock: bool,
                 actor_id: Optional[int]) -> SettlementResult:
        now = self.clock()
        now_iso = to_iso(now)
        previous = job.status
        consumables = job.consumable_list
        self._close_open_pause(conn, job, now)

        # Live items for every consumable that names a real inventory record
        live = {}
        for consumable in consumables:
            item_id = consumable.inventory_id
            if item_id is not None and item_id not in live:
                item = self.repo.get_inventory_item(item_id, conn=conn)
                if item is not None:
                    live[item_id] = item

        material_cost = sum(
            self._unit_price(c, live) * int(c.quantity or 0) for c in consumables
        )

        labor_cost = 0.0
        if job.employee_id is not None:
            employee = self.repo.get_employee_by_id(job.employee_id, conn)
            if employee is not None and employee.hourly_rate is not None:
                labor_cost = labor_hours(job, now) * employee.hourly_rate

        job.status = JobStatus.COMPLETE.value
        job.completed_at = now_iso
        job.material_cost = material_cost
        job.labor_cost = labor_cost
        job.total_cost = material_cost + labor_cost
        self.repo.update_job_card(job, conn)

        movements: list[StockMovement] = []
        queued: list[int] = []
        if deduct_stock:
            for item_id, quantity in self._aggregate(consumables, live).items():
                item = live[item_id]
                movement = self.ledger.deduct(
                    item_id, item.category, quantity, conn=conn, clamp=True
                )
                movements.append(movement)
                if movement.clamped:
                    logger.warning(
                        f"Job {job.job_code} consumed {quantity} of "
                        f"{item.name} but only {movement.before} were in stock"
                    )
                if movement.crossed_below(movement.item.reorder_level):
                    queue_id = self.purchasing.enqueue(movement.item, conn)
                    if queue_id is not None:
                        queued.append(queue_id)

        finished_goods = self._credit_finished_goods(conn, job)

        self.repo.log_activity(
            "qc_approved", "job_card", job.id, job.job_code, actor_id=actor_id,
            details={
                "from": previous,
                "to": job.status,
                "material_cost": material_cost,
                "labor_cost": labor_cost,
                "total_cost": job.total_cost,
                "queued": queued,
            },
            created_at=now_iso, conn=conn,
        )
        return SettlementResult(
            job=self.repo.get_job_card_by_id(job.id, conn),
            approved=True,
            material_cost=material_cost,
            labor_cost=labor_cost,
            total_cost=job.total_cost,
            movements=movements,
            queued_ids=queued,
            finished_goods=finished_goods,
        )

    @staticmethod
    def _unit_price(consumable: Consumable, live: dict) -> float:
        item = live.get(consumable.inventory_id)
        if item is not None:
            return item.price or 0.0
        if consumable.unit_price is not None:
            return float(consumable.unit_price)
        return 0.0

    @staticmethod
    def _aggregate(consumables: list[Consumable], live: dict) -> "OrderedDict[int, int]":
        """Total quantity per matched item, in first-seen order."""
        totals: OrderedDict[int, int] = OrderedDict()
        for consumable in consumables:
            item_id = consumable.inventory_id
            if item_id in live and consumable.quantity:
                totals[item_id] = totals.get(item_id, 0) + int(consumable.quantity)
        return totals

    def _credit_finished_goods(self, conn, job: JobCard) -> Optional[StockMovement]:
        if not Config.CREDIT_FINISHED_GOODS or job.part_id is None:
            return None
        product = self.ledger.store_for(InventoryCategory.PRODUCT).get(job.part_id, conn)
        if product is None:
            return None
        return self.ledger.increment(
            product.id, InventoryCategory.PRODUCT, job.quantity, conn=conn
        )
