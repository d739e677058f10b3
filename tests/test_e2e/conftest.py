"""E2E test fixtures: fully wired-up services on a fresh database."""

import pytest

from workshop_ops.app import build_services
from workshop_ops.database.models import Employee, InventoryItem, Supplier


@pytest.fixture
def services(tmp_path, clock):
    """Every engine wired the way the application wires them."""
    return build_services(tmp_path / "e2e.db", clock)


@pytest.fixture
def welder(services):
    emp = Employee(name="Bongani Dlamini", hourly_rate=150.0)
    emp.id = services.repo.create_employee(emp)
    return emp


@pytest.fixture
def steel_supplier(services):
    sup = Supplier(name="Highveld Steel", contact_person="Nomsa",
                   email="orders@highveldsteel.example", estimated_eta_days=2)
    sup.id = services.repo.create_supplier(sup)
    return sup


@pytest.fixture
def stock(services, steel_supplier):
    """Raw material, a consumable and the finished product."""
    ledger = services.ledger
    tube = InventoryItem(item_code="RM-TUBE-25", name="Square Tube 25mm",
                         category="Raw Material", unit="m", current_stock=30,
                         reorder_level=20, standard_stock_level=60, price=45.0,
                         supplier_id=steel_supplier.id)
    rod = InventoryItem(item_code="WS-ROD-3", name="Welding Rod 3.2mm",
                        category="Workshop Supply", current_stock=100,
                        reorder_level=25, standard_stock_level=200, price=2.0)
    gate = InventoryItem(item_code="PRD-GATE", name="Driveway Gate",
                         category="Product", current_stock=0)
    for item in (tube, rod, gate):
        item.id = ledger.add_item(item)
    return {"tube": tube, "rod": rod, "gate": gate}
