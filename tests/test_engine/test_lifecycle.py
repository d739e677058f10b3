"""Tests for job card status transitions and time tracking."""

from datetime import timedelta

import pytest

from workshop_ops.config import Config
from workshop_ops.database.models import JobCard
from workshop_ops.engine.lifecycle import (
    active_milliseconds,
    calculate_job_duration,
)
from workshop_ops.errors import (
    InvalidQuantityError,
    InvalidTransitionError,
    JobNotFoundError,
)
from workshop_ops.utils.constants import REWORK_RESOLVED_REASON, JobStatus
from workshop_ops.utils.dates import parse_iso, to_iso


class TestCreateJobCard:
    def test_starts_pending_with_generated_code(self, make_job, repo):
        job = make_job(status="Complete", material_cost=99.0)
        stored = repo.get_job_card_by_id(job.id)
        assert stored.status == "Pending"
        assert stored.material_cost is None
        assert stored.job_code == f"{Config.JOB_CODE_PREFIX}-2026-001"

    def test_keeps_given_code(self, make_job):
        assert make_job(job_code="CUSTOM-7").job_code == "CUSTOM-7"

    def test_logs_creation(self, make_job, repo):
        job = make_job()
        [entry] = repo.get_activity_log(entity_type="job_card", entity_id=job.id)
        assert entry.action == "created"

    def test_requires_part_name(self, lifecycle):
        with pytest.raises(ValueError):
            lifecycle.create_job_card(JobCard(part_name=" "))

    @pytest.mark.parametrize("qty", [0, -2, 1.5])
    def test_rejects_bad_quantity(self, lifecycle, qty):
        with pytest.raises(InvalidQuantityError):
            lifecycle.create_job_card(JobCard(part_name="Hinge", quantity=qty))

    def test_rejects_bad_consumable_quantity(self, make_job):
        with pytest.raises(InvalidQuantityError):
            make_job([{"item_id": 1, "quantity": 0}])


class TestTransitions:
    def test_start_stamps_started_at_once(self, lifecycle, make_job, clock):
        job = make_job()
        first = lifecycle.start(job.id).started_at
        clock.advance(minutes=5)
        lifecycle.pause(job.id)
        clock.advance(minutes=5)
        assert lifecycle.start(job.id).started_at == first

    def test_pause_scenario(self, lifecycle, make_job, clock):
        job = make_job()
        lifecycle.start(job.id)
        clock.advance(minutes=10)
        paused = lifecycle.pause(job.id)
        assert paused.paused_at == to_iso(clock())
        clock.advance(minutes=5)
        resumed = lifecycle.start(job.id)
        assert resumed.paused_at is None
        assert resumed.total_paused_milliseconds == 5 * 60 * 1000
        clock.advance(minutes=50)
        done = lifecycle.submit_for_qc(job.id)
        assert done.status == "Awaiting QC"
        assert active_milliseconds(done) == 60 * 60 * 1000

    def test_repeated_pause_keeps_first_timestamp(self, lifecycle, make_job, clock):
        job = make_job()
        lifecycle.start(job.id)
        first = lifecycle.pause(job.id).paused_at
        clock.advance(minutes=3)
        assert lifecycle.pause(job.id).paused_at == first

    def test_submitting_from_pause_closes_the_pause(self, lifecycle, make_job, clock):
        job = make_job()
        lifecycle.start(job.id)
        clock.advance(minutes=20)
        lifecycle.pause(job.id)
        clock.advance(minutes=7)
        done = lifecycle.submit_for_qc(job.id)
        assert done.total_paused_milliseconds == 7 * 60 * 1000
        assert active_milliseconds(done) == 20 * 60 * 1000

    def test_halt_records_reason(self, lifecycle, make_job, repo):
        job = make_job()
        halted = lifecycle.halt(job.id, "Press brake down")
        assert halted.status == "Halted - Issue"
        assert halted.issue_reason == "Press brake down"
        entry = repo.get_activity_log(action="status_changed")[0]
        assert entry.details_dict["notes"] == "Halted: Press brake down"

    @pytest.mark.parametrize("target", ["Complete", "Issue"])
    def test_qc_outcomes_are_refused(self, lifecycle, make_job, target):
        job = make_job()
        with pytest.raises(InvalidTransitionError):
            lifecycle.set_status(job.id, target)

    def test_unknown_status(self, lifecycle, make_job):
        with pytest.raises(InvalidTransitionError):
            lifecycle.set_status(make_job().id, "Finished")

    def test_completed_job_is_frozen(self, lifecycle, settlement, make_job):
        job = make_job()
        lifecycle.start(job.id)
        lifecycle.submit_for_qc(job.id)
        settlement.approve(job.id)
        with pytest.raises(InvalidTransitionError):
            lifecycle.start(job.id)

    def test_missing_job(self, lifecycle):
        with pytest.raises(JobNotFoundError):
            lifecycle.start(404)

    def test_actor_is_logged(self, lifecycle, make_job, employee, repo):
        job = make_job()
        lifecycle.start(job.id, actor_id=employee.id)
        assert repo.get_activity_log(action="status_changed")[0].actor_id == employee.id


class TestReclassify:
    def _rejected(self, lifecycle, settlement, make_job):
        job = make_job()
        lifecycle.start(job.id)
        lifecycle.submit_for_qc(job.id)
        settlement.reject(job.id, "Burrs on edge")
        return job

    def test_archive_issue(self, lifecycle, settlement, make_job):
        job = self._rejected(lifecycle, settlement, make_job)
        assert lifecycle.archive(job.id).status == "Archived - Issue"

    def test_archive_requires_issue(self, lifecycle, make_job):
        with pytest.raises(InvalidTransitionError):
            lifecycle.archive(make_job().id)

    def test_resolve_rework(self, lifecycle, settlement, make_job):
        job = self._rejected(lifecycle, settlement, make_job)
        resolved = lifecycle.resolve_rework(job.id)
        assert resolved.status == "Pending"
        assert resolved.issue_reason == REWORK_RESOLVED_REASON
        assert resolved.completed_at is None

    def test_resolve_halted_job(self, lifecycle, make_job):
        job = make_job()
        lifecycle.halt(job.id, "Out of gas")
        assert lifecycle.resolve_rework(job.id).status == "Pending"


class TestBoard:
    def test_priorities_and_qc_list(self, lifecycle, make_job, repo):
        a, b = make_job(), make_job()
        lifecycle.update_priorities([b.id, a.id])
        assert [j.id for j in repo.get_all_job_cards()] == [b.id, a.id]
        lifecycle.start(a.id)
        lifecycle.submit_for_qc(a.id)
        assert [j.id for j in lifecycle.get_awaiting_qc()] == [a.id]

    def test_find_by_code(self, lifecycle, make_job):
        job = make_job()
        assert lifecycle.find_by_code(f" {job.job_code} ").id == job.id
        with pytest.raises(JobNotFoundError):
            lifecycle.find_by_code("NOPE-1")


class TestDuration:
    def _job(self, clock, **fields) -> JobCard:
        start = clock()
        defaults = {"status": "In Progress", "started_at": to_iso(start)}
        defaults.update(fields)
        return JobCard(**defaults)

    def test_not_started(self):
        assert calculate_job_duration(JobCard()) is None

    def test_in_progress_uses_now(self, clock):
        job = self._job(clock, total_paused_milliseconds=30_000)
        duration = calculate_job_duration(job, clock() + timedelta(minutes=5))
        assert duration.text == "4m 30s"
        assert duration.total_minutes == 4

    def test_paused_stops_at_pause(self, clock):
        job = self._job(clock, status="Paused",
                        paused_at=to_iso(clock() + timedelta(minutes=2)))
        assert calculate_job_duration(job).text == "2m 0s"

    def test_finished_uses_completed_at(self, clock):
        job = self._job(clock, status="Complete",
                        completed_at=to_iso(clock() + timedelta(hours=1)))
        assert calculate_job_duration(job).total_minutes == 60

    def test_pending_has_no_duration(self, clock):
        assert calculate_job_duration(self._job(clock, status="Pending")) is None

    def test_negative_duration_is_none(self, clock):
        job = self._job(clock, status="Complete",
                        completed_at=to_iso(clock() - timedelta(minutes=1)))
        assert calculate_job_duration(job) is None

    def test_active_milliseconds_floor(self, clock):
        job = self._job(clock, completed_at=to_iso(clock() + timedelta(seconds=1)),
                        total_paused_milliseconds=5000)
        assert active_milliseconds(job) == 0

    def test_timestamps_round_trip(self, lifecycle, make_job, clock):
        job = make_job()
        started = lifecycle.start(job.id)
        assert parse_iso(started.started_at) == clock()
        assert started.status_enum is JobStatus.IN_PROGRESS
