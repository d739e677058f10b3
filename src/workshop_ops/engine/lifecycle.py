"""Job card lifecycle: status transitions and time tracking."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from workshop_ops.database.models import Consumable, JobCard
from workshop_ops.database.repository import Repository
from workshop_ops.errors import (
    InvalidQuantityError,
    InvalidTransitionError,
    JobNotFoundError,
)
from workshop_ops.utils.constants import (
    COLLECTION_JOB_CARDS,
    FINISHED_STATUSES,
    QC_OUTCOME_STATUSES,
    REWORK_RESOLVED_REASON,
    JobStatus,
)
from workshop_ops.utils.dates import Clock, elapsed_ms, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass
class JobDuration:
    text: str
    total_minutes: int


def active_milliseconds(job: JobCard) -> Optional[int]:
    """(completed_at - started_at) - paused time, floored at 0.

    None until the job has both started and finished work.
    """
    started = parse_iso(job.started_at)
    completed = parse_iso(job.completed_at)
    if started is None or completed is None:
        return None
    return max(0, elapsed_ms(started, completed) - (job.total_paused_milliseconds or 0))


def calculate_job_duration(job: JobCard, now: Optional[datetime] = None
                           ) -> Optional[JobDuration]:
    """Working time so far, for display on the board."""
    started = parse_iso(job.started_at)
    if started is None:
        return None

    status = JobStatus.parse(job.status)
    if status in FINISHED_STATUSES:
        end = parse_iso(job.completed_at)
    elif status == JobStatus.IN_PROGRESS:
        end = now or utc_now()
    elif status == JobStatus.PAUSED:
        end = parse_iso(job.paused_at)
    else:
        end = None
    if end is None:
        return None

    active = elapsed_ms(started, end) - (job.total_paused_milliseconds or 0)
    if active < 0:
        return None
    total_seconds = active // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return JobDuration(text=f"{minutes}m {seconds}s", total_minutes=minutes)


def validate_consumables(consumables: list[Consumable]):
    for consumable in consumables:
        qty = consumable.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvalidQuantityError(
                f"Consumable {consumable.name or consumable.item_id!r} needs a "
                f"positive whole quantity, got {qty!r}"
            )


class JobLifecycle:
    """Moves job cards through Pending, In Progress, Paused and Awaiting QC.

    Complete and Issue are QC outcomes owned by the settlement engine.
    """

    def __init__(self, repo: Repository, clock: Optional[Clock] = None):
        self.repo = repo
        self.clock = clock or utc_now

    active_milliseconds = staticmethod(active_milliseconds)
    calculate_job_duration = staticmethod(calculate_job_duration)

    # ── Creation ────────────────────────────────────────────────

    def create_job_card(self, job: JobCard) -> int:
        """Submit a new job card. It always starts out Pending."""
        if not (job.part_name or "").strip():
            raise ValueError("Job card part name is required")
        if isinstance(job.quantity, bool) or not isinstance(job.quantity, int) \
                or job.quantity <= 0:
            raise InvalidQuantityError(
                f"Job quantity must be a positive whole number, got {job.quantity!r}"
            )
        consumables = job.consumable_list
        validate_consumables(consumables)
        job.set_consumables(consumables)

        job.status = JobStatus.PENDING.value
        job.started_at = job.paused_at = job.completed_at = None
        job.total_paused_milliseconds = 0
        job.material_cost = job.labor_cost = job.total_cost = None

        def _apply(conn) -> int:
            if not (job.job_code or "").strip():
                job.job_code = self.repo.generate_job_code(self.clock().year, conn)
            job_id = self.repo.create_job_card(job, conn)
            self.repo.log_activity(
                "created", "job_card", job_id, job.job_code,
                details={"part_name": job.part_name, "quantity": job.quantity},
                created_at=to_iso(self.clock()), conn=conn,
            )
            return job_id

        job.id = self.repo.db.run_transaction(_apply)
        self.repo.notify_changed(COLLECTION_JOB_CARDS)
        logger.info(f"Job card {job.job_code} created")
        return job.id

    # ── Transitions ─────────────────────────────────────────────

    def set_status(self, job_id: int, new_status, reason: Optional[str] = None,
                   actor_id: Optional[int] = None) -> JobCard:
        """Move a job to a new status and stamp the matching timestamps."""
        target = JobStatus.parse(new_status)
        if target in QC_OUTCOME_STATUSES:
            raise InvalidTransitionError(
                f"{target.value} is a QC outcome; settle the job instead"
            )

        def _apply(conn) -> JobCard:
            job = self.repo.get_job_card_by_id(job_id, conn)
            if job is None:
                raise JobNotFoundError(job_id)
            previous = JobStatus.parse(job.status)
            if previous in (JobStatus.COMPLETE, JobStatus.ARCHIVED_ISSUE):
                raise InvalidTransitionError(
                    f"Job {job.job_code} is {previous.value} and can no longer change"
                )

            now = self.clock()
            now_iso = to_iso(now)

            # Close any open pause before leaving Paused
            if previous == JobStatus.PAUSED and target != JobStatus.PAUSED:
                paused_at = parse_iso(job.paused_at)
                if paused_at is not None:
                    pause_ms = max(0, elapsed_ms(paused_at, now))
                    self.repo.add_paused_milliseconds(job.id, pause_ms, conn)
                job.paused_at = None

            if target == JobStatus.IN_PROGRESS:
                if not job.started_at:
                    job.started_at = now_iso
            elif target == JobStatus.PAUSED:
                if previous != JobStatus.PAUSED:
                    job.paused_at = now_iso
            elif target == JobStatus.AWAITING_QC:
                job.completed_at = now_iso
            elif target == JobStatus.HALTED:
                job.issue_reason = reason

            job.status = target.value
            self.repo.update_job_card(job, conn)

            notes = (
                f"Halted: {reason}" if target == JobStatus.HALTED and reason
                else f"Status changed to {target.value}"
            )
            self.repo.log_activity(
                "status_changed", "job_card", job.id, job.job_code,
                actor_id=actor_id,
                details={"from": previous.value, "to": target.value, "notes": notes},
                created_at=now_iso, conn=conn,
            )
            return self.repo.get_job_card_by_id(job.id, conn)

        job = self.repo.db.run_transaction(_apply)
        self.repo.notify_changed(COLLECTION_JOB_CARDS)
        logger.info(f"Job {job.job_code} -> {job.status}")
        return job

    def start(self, job_id: int, actor_id: Optional[int] = None) -> JobCard:
        return self.set_status(job_id, JobStatus.IN_PROGRESS, actor_id=actor_id)

    def pause(self, job_id: int, actor_id: Optional[int] = None) -> JobCard:
        return self.set_status(job_id, JobStatus.PAUSED, actor_id=actor_id)

    def submit_for_qc(self, job_id: int, actor_id: Optional[int] = None) -> JobCard:
        return self.set_status(job_id, JobStatus.AWAITING_QC, actor_id=actor_id)

    def halt(self, job_id: int, reason: str,
             actor_id: Optional[int] = None) -> JobCard:
        """Andon halt raised from the floor."""
        return self.set_status(job_id, JobStatus.HALTED, reason, actor_id)

    def _reclassify(self, job_id: int, allowed: set, target: JobStatus,
                    issue_reason: Optional[str], action: str) -> JobCard:
        def _apply(conn) -> JobCard:
            job = self.repo.get_job_card_by_id(job_id, conn)
            if job is None:
                raise JobNotFoundError(job_id)
            if JobStatus.parse(job.status) not in allowed:
                raise InvalidTransitionError(
                    f"Job {job.job_code} is {job.status}; cannot {action}"
                )
            previous = job.status
            job.status = target.value
            if issue_reason is not None:
                job.issue_reason = issue_reason
            if target == JobStatus.PENDING:
                job.completed_at = None
            self.repo.update_job_card(job, conn)
            self.repo.log_activity(
                action, "job_card", job.id, job.job_code,
                details={"from": previous, "to": target.value},
                created_at=to_iso(self.clock()), conn=conn,
            )
            return self.repo.get_job_card_by_id(job.id, conn)

        job = self.repo.db.run_transaction(_apply)
        self.repo.notify_changed(COLLECTION_JOB_CARDS)
        return job

    def archive(self, job_id: int) -> JobCard:
        """File a rejected job away as Archived - Issue."""
        return self._reclassify(
            job_id, {JobStatus.ISSUE}, JobStatus.ARCHIVED_ISSUE, None, "archived",
        )

    def resolve_rework(self, job_id: int) -> JobCard:
        """Send a rejected or halted job back to the board."""
        return self._reclassify(
            job_id, {JobStatus.ISSUE, JobStatus.HALTED}, JobStatus.PENDING,
            REWORK_RESOLVED_REASON, "rework_resolved",
        )

    # ── Board ───────────────────────────────────────────────────

    def update_priorities(self, ordered_job_ids: list[int]):
        self.repo.update_job_priorities(ordered_job_ids)

    def get_awaiting_qc(self) -> list[JobCard]:
        return self.repo.get_all_job_cards(JobStatus.AWAITING_QC.value)

    def find_by_code(self, job_code: str) -> JobCard:
        job = self.repo.get_job_card_by_code(job_code.strip())
        if job is None:
            raise JobNotFoundError(job_code)
        return job
