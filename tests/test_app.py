"""Tests for application wiring and logging setup."""

import logging

from workshop_ops.app import build_services, configure_logging, main
from workshop_ops.config import Config


class TestBuildServices:
    def test_engines_share_one_repository(self, tmp_path):
        services = build_services(tmp_path / "app.db")
        assert services.ledger.repo is services.repo
        assert services.purchasing.ledger is services.ledger
        assert services.settlement.purchasing is services.purchasing
        assert services.repo.hub is services.hub

    def test_schema_ready(self, tmp_path):
        services = build_services(tmp_path / "app.db")
        assert services.lifecycle.get_awaiting_qc() == []


class TestConfigureLogging:
    def test_level_and_file(self, tmp_path):
        log_file = tmp_path / "logs" / "workshop.log"
        configure_logging("debug", str(log_file))
        try:
            logging.getLogger("workshop_ops.test").debug("hello log")
            assert logging.getLogger().level == logging.DEBUG
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "hello log" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in list(logging.getLogger().handlers):
                handler.close()
                logging.getLogger().removeHandler(handler)


class TestMain:
    def test_initializes_configured_database(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_PATH", tmp_path / "main.db")
        monkeypatch.setattr(Config, "LOG_FILE", "")
        main()
        assert (tmp_path / "main.db").exists()
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
