"""Application wiring: builds the store, the hub and the four engines."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from workshop_ops.config import Config
from workshop_ops.database.connection import DatabaseConnection
from workshop_ops.database.repository import Repository
from workshop_ops.database.schema import initialize_database
from workshop_ops.engine.ledger import InventoryLedger
from workshop_ops.engine.lifecycle import JobLifecycle
from workshop_ops.engine.purchasing import PurchaseQueueManager
from workshop_ops.engine.settlement import QcSettlementEngine
from workshop_ops.live.subscriptions import SubscriptionHub
from workshop_ops.utils.dates import Clock

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None,
                      log_file: Optional[str] = None):
    """Configure root logging once from Config.LOG_LEVEL / Config.LOG_FILE."""
    level_name = (level or Config.LOG_LEVEL or "INFO").upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = log_file if log_file is not None else Config.LOG_FILE
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


@dataclass
class Services:
    db: DatabaseConnection
    hub: SubscriptionHub
    repo: Repository
    ledger: InventoryLedger
    purchasing: PurchaseQueueManager
    lifecycle: JobLifecycle
    settlement: QcSettlementEngine


def build_services(db_path=None, clock: Optional[Clock] = None) -> Services:
    """Open the database, make sure the schema exists and wire the engines."""
    db = DatabaseConnection(db_path or Config.DATABASE_PATH)
    initialize_database(db)

    hub = SubscriptionHub()
    repo = Repository(db, hub)
    ledger = InventoryLedger(repo)
    purchasing = PurchaseQueueManager(repo, ledger, clock)
    lifecycle = JobLifecycle(repo, clock)
    settlement = QcSettlementEngine(repo, ledger, purchasing, clock)
    return Services(
        db=db, hub=hub, repo=repo, ledger=ledger, purchasing=purchasing,
        lifecycle=lifecycle, settlement=settlement,
    )


def main():
    """Initialize the workshop database and report what is waiting on QC."""
    configure_logging()
    logger = logging.getLogger("workshop_ops")
    services = build_services()
    logger.info(f"Database ready at {services.db.db_path}")
    awaiting = services.lifecycle.get_awaiting_qc()
    pending = services.purchasing.get_pending()
    logger.info(
        f"{len(awaiting)} job card(s) awaiting QC, "
        f"{len(pending)} item(s) waiting to be ordered"
    )


if __name__ == "__main__":
    main()
