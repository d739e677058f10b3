"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "workshop.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    LABEL_OUTPUT_DIRECTORY: str = _runtime.get(
        "label_output_directory",
        os.getenv("LABEL_OUTPUT_DIRECTORY", str(_PROJECT_ROOT / "data" / "labels")),
    )

    # Transactions (settings.json overrides .env)
    TRANSACTION_MAX_RETRIES: int = int(_runtime.get(
        "transaction_max_retries",
        os.getenv("TRANSACTION_MAX_RETRIES", "3"),
    ))
    TRANSACTION_BUSY_TIMEOUT: float = float(_runtime.get(
        "transaction_busy_timeout",
        os.getenv("TRANSACTION_BUSY_TIMEOUT", "5.0"),
    ))

    # Job cards
    JOB_CODE_PREFIX: str = _runtime.get(
        "job_code_prefix",
        os.getenv("JOB_CODE_PREFIX", "JOB"),
    )
    CREDIT_FINISHED_GOODS: bool = _runtime.get(
        "credit_finished_goods",
        _env_bool("CREDIT_FINISHED_GOODS", "true"),
    )

    # Purchasing
    COMPANY_NAME: str = _runtime.get(
        "company_name",
        os.getenv("COMPANY_NAME", "Workshop"),
    )
    CURRENCY_SYMBOL: str = _runtime.get(
        "currency_symbol",
        os.getenv("CURRENCY_SYMBOL", "R"),
    )

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    @classmethod
    def update_transaction_settings(cls, max_retries: int,
                                    busy_timeout: float):
        """Update transaction retry settings at runtime and persist."""
        cls.TRANSACTION_MAX_RETRIES = max_retries
        cls.TRANSACTION_BUSY_TIMEOUT = busy_timeout

        settings = _load_settings()
        settings["transaction_max_retries"] = max_retries
        settings["transaction_busy_timeout"] = busy_timeout
        _save_settings(settings)

    @classmethod
    def update_purchasing_settings(cls, company_name: str,
                                   currency_symbol: str):
        """Update purchase order branding and persist."""
        cls.COMPANY_NAME = company_name
        cls.CURRENCY_SYMBOL = currency_symbol

        settings = _load_settings()
        settings["company_name"] = company_name
        settings["currency_symbol"] = currency_symbol
        _save_settings(settings)

    @classmethod
    def update_job_settings(cls, job_code_prefix: str,
                            credit_finished_goods: bool):
        """Update job card numbering and finished-goods crediting."""
        cls.JOB_CODE_PREFIX = job_code_prefix
        cls.CREDIT_FINISHED_GOODS = credit_finished_goods

        settings = _load_settings()
        settings["job_code_prefix"] = job_code_prefix
        settings["credit_finished_goods"] = credit_finished_goods
        _save_settings(settings)
