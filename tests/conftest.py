"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from workshop_ops.database.connection import DatabaseConnection
from workshop_ops.database.models import Employee, InventoryItem, JobCard, Supplier
from workshop_ops.database.repository import Repository
from workshop_ops.database.schema import initialize_database
from workshop_ops.engine.ledger import InventoryLedger
from workshop_ops.engine.lifecycle import JobLifecycle
from workshop_ops.engine.purchasing import PurchaseQueueManager
from workshop_ops.engine.settlement import QcSettlementEngine
from workshop_ops.live.subscriptions import SubscriptionHub

T0 = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock handed to the engines."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def hub():
    return SubscriptionHub()


@pytest.fixture
def repo(db, hub):
    """Provide a repository with an initialized database."""
    return Repository(db, hub)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(repo):
    return InventoryLedger(repo)


@pytest.fixture
def purchasing(repo, ledger, clock):
    return PurchaseQueueManager(repo, ledger, clock)


@pytest.fixture
def lifecycle(repo, clock):
    return JobLifecycle(repo, clock)


@pytest.fixture
def settlement(repo, ledger, purchasing, clock):
    return QcSettlementEngine(repo, ledger, purchasing, clock)


@pytest.fixture
def make_item(ledger):
    """Factory: create an inventory item and return it with its id."""
    counter = {"n": 0}

    def _make(**overrides) -> InventoryItem:
        counter["n"] += 1
        fields = {
            "item_code": f"ITM-{counter['n']:03d}",
            "name": f"Item {counter['n']}",
            "category": "Component",
            "current_stock": 10,
            "reorder_level": 0,
            "standard_stock_level": 0,
            "price": 1.0,
        }
        fields.update(overrides)
        item = InventoryItem(**fields)
        item.id = ledger.add_item(item)
        return item

    return _make


@pytest.fixture
def employee(repo):
    """An employee billed at R120/hour."""
    emp = Employee(name="Thandi Mokoena", hourly_rate=120.0)
    emp.id = repo.create_employee(emp)
    return emp


@pytest.fixture
def supplier(repo):
    sup = Supplier(
        name="Cape Fasteners", contact_person="Sipho",
        email="orders@capefasteners.example", estimated_eta_days=3,
    )
    sup.id = repo.create_supplier(sup)
    return sup


@pytest.fixture
def make_job(lifecycle):
    """Factory: submit a job card with the given consumables."""

    def _make(consumables=None, **overrides) -> JobCard:
        fields = {"part_name": "Steel Bracket", "quantity": 1}
        fields.update(overrides)
        job = JobCard(**fields)
        job.set_consumables(consumables or [])
        lifecycle.create_job_card(job)
        return job

    return _make
