"""YAML configuration and logging setup for the reconciler.

Example ``reconciler.yaml``::

    database_path: .data/reconciler.db
    data_date_start: 2025-04-01
    donation_account_prefixes: [53, 55, 57]
    page_length: 15
    log_level: INFO

A missing file raises ``FileNotFoundError`` and malformed YAML propagates
``yaml.YAMLError``. Missing or invalid values raise ``ValueError`` naming the
offending key.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from .params import DEFAULT_PAGE_LENGTH
from .store import ReconcilerStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = logging.INFO) -> None:
    """Send log records to the console. Only applications call this."""

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}.")
        level = resolved
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


@dataclass(frozen=True)
class ReconcilerConfig:
    database_path: Path
    data_date_start: date
    donation_account_prefixes: tuple[str, ...]
    sql_dir: Path | None = None
    page_length: int = DEFAULT_PAGE_LENGTH
    log_level: str = "INFO"

    @property
    def donation_account_codes_regex(self) -> str:
        """Pattern matching the account codes that carry donation income."""

        alternatives = "|".join(re.escape(prefix) for prefix in self.donation_account_prefixes)
        return f"^({alternatives})"

    def build_store(self) -> ReconcilerStore:
        return ReconcilerStore(
            self.database_path,
            self.donation_account_codes_regex,
            sql_source=self.sql_dir,
        )


def _required(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"{key} is missing.")
    return value


def _parse_start_date(value: Any) -> date:
    # PyYAML already turns unquoted ISO dates into date objects.
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"data_date_start must be a YYYY-MM-DD date, got {value!r}.") from exc


def _parse_prefixes(value: Any) -> tuple[str, ...]:
    if isinstance(value, (str, int)):
        value = [value]
    if not isinstance(value, list):
        raise ValueError("donation_account_prefixes must be a list.")
    prefixes = tuple(str(prefix).strip() for prefix in value if str(prefix).strip())
    if not prefixes:
        raise ValueError("At least one donation_account_prefixes entry is required.")
    return prefixes


def _parse_page_length(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"page_length must be a whole number of at least 1, got {value!r}.")
    return value


def load_config(path: str | Path) -> ReconcilerConfig:
    config_path = Path(path)
    with config_path.open(encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a YAML mapping.")

    sql_dir = data.get("sql_dir")
    log_level = str(data.get("log_level") or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"log_level {log_level!r} is not a logging level name.")

    return ReconcilerConfig(
        database_path=Path(_required(data, "database_path")),
        data_date_start=_parse_start_date(_required(data, "data_date_start")),
        donation_account_prefixes=_parse_prefixes(_required(data, "donation_account_prefixes")),
        sql_dir=Path(sql_dir) if sql_dir else None,
        page_length=_parse_page_length(data.get("page_length", DEFAULT_PAGE_LENGTH)),
        log_level=log_level,
    )
