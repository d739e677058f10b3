"""End-to-end: a job card from the board to QC, reorder and delivery."""

import pytest

from workshop_ops.config import Config
from workshop_ops.database.models import JobCard
from workshop_ops.errors import AlreadySettledError
from workshop_ops.utils.qr_generator import build_scan_data, parse_scan_data


def _gate_job(services, stock, welder, tube_qty=12, rod_qty=30):
    job = JobCard(part_name="Driveway Gate", part_id=stock["gate"].id,
                  quantity=1, employee_id=welder.id)
    job.set_consumables([
        {"itemId": stock["tube"].id, "quantity": tube_qty, "itemName": "Square Tube"},
        {"itemId": stock["rod"].id, "quantity": rod_qty},
        {"itemId": "grinding discs (loose)", "quantity": 2, "unitPrice": 15.0},
    ])
    services.lifecycle.create_job_card(job)
    return job


class TestProductionToReplenishment:
    def test_full_cycle(self, services, stock, welder, steel_supplier, clock,
                        monkeypatch):
        monkeypatch.setattr(Config, "CREDIT_FINISHED_GOODS", True)
        board = []
        queue = []
        services.repo.listen_to_job_cards(
            lambda jobs: board.append([j.status for j in jobs])
        )
        services.repo.listen_to_purchase_queue(
            lambda entries: queue.append([e.status for e in entries])
        )

        job = _gate_job(services, stock, welder)
        scanned = parse_scan_data(build_scan_data(job.job_code))
        job_id = services.lifecycle.find_by_code(scanned).id

        # Two hours on the floor with a 30 minute lunch pause
        services.lifecycle.start(job_id)
        clock.advance(minutes=90)
        services.lifecycle.pause(job_id)
        clock.advance(minutes=30)
        services.lifecycle.start(job_id)
        clock.advance(minutes=30)
        services.lifecycle.submit_for_qc(job_id)
        assert board[-1] == ["Awaiting QC"]

        result = services.settlement.approve(job_id)

        # 12 m tube at 45 + 30 rods at 2 + 2 loose discs at 15
        assert result.material_cost == pytest.approx(12 * 45.0 + 30 * 2.0 + 30.0)
        # 2h active at 150/h
        assert result.labor_cost == pytest.approx(300.0)
        assert result.total_cost == pytest.approx(result.material_cost + 300.0)

        ledger = services.ledger
        assert ledger.get_item(stock["tube"].id).current_stock == 18
        assert ledger.get_item(stock["rod"].id).current_stock == 70
        assert ledger.get_item(stock["gate"].id).current_stock == 1
        assert board[-1] == ["Complete"]

        # Tube crossed below 20, rods did not cross 25
        [pending] = services.purchasing.get_pending()
        assert pending.item_code == "RM-TUBE-25"
        assert queue[-1] == ["pending"]

        groups = services.purchasing.group_by_supplier([pending])
        email = services.purchasing.build_order_email(
            steel_supplier, groups[steel_supplier.id]
        )
        assert "- Square Tube 25mm (Code: RM-TUBE-25) --- Qty: 42" in email.body

        [ordered] = services.purchasing.mark_ordered(steel_supplier.id, [pending.id])
        assert ordered.ordered_qty == 42
        assert queue[-1] == ["ordered"]

        clock.advance(days=2)
        services.purchasing.receive(ordered.id, 42)
        assert ledger.get_item(stock["tube"].id).current_stock == 60
        assert queue[-1] == ["completed"]

        actions = [e.action for e in services.repo.get_activity_log(limit=100)]
        for expected in ("created", "status_changed", "qc_approved",
                         "queued", "ordered", "received"):
            assert expected in actions

    def test_rejection_then_rework_then_approval(
        self, services, stock, welder, clock
    ):
        job = _gate_job(services, stock, welder, tube_qty=5, rod_qty=5)
        services.lifecycle.start(job.id)
        clock.advance(minutes=60)
        services.lifecycle.submit_for_qc(job.id)

        rejected = services.settlement.reject(job.id, "hinge misaligned")
        assert rejected.job.status == "Issue"
        assert services.ledger.get_item(stock["tube"].id).current_stock == 30

        reopened = services.lifecycle.resolve_rework(job.id)
        assert reopened.status == "Pending"

        services.lifecycle.start(job.id)
        clock.advance(minutes=20)
        services.lifecycle.submit_for_qc(job.id)
        services.settlement.approve(job.id)
        assert services.ledger.get_item(stock["tube"].id).current_stock == 25

        with pytest.raises(AlreadySettledError):
            services.settlement.approve(job.id)
        assert services.ledger.get_item(stock["tube"].id).current_stock == 25

    def test_cancelled_order_returns_to_pending(
        self, services, stock, steel_supplier
    ):
        services.ledger.deduct(stock["tube"].id, None, 15)
        qid = services.purchasing.enqueue_item(stock["tube"].id)
        services.purchasing.mark_ordered(steel_supplier.id, [qid])
        assert services.purchasing.requeue_or_cancel(qid) == "requeued"
        assert [e.id for e in services.purchasing.get_pending()] == [qid]
        assert services.purchasing.get_in_transit() == []
