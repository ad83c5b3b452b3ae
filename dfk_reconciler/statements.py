"""Registry of the parameterized statements loaded from the ``sql`` directory."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from importlib.resources import files
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

from .errors import ArgumentCountMismatch, QueryError
from .parameterize import parameterize_file

logger = logging.getLogger(__name__)

STATEMENT_NAMES = (
    "account_upsert",
    "invoices",
    "invoice",
    "invoice_upsert",
    "invoice_lis_delete",
    "invoice_lis_insert",
    "bank_transactions",
    "bank_transaction",
    "bank_transaction_upsert",
    "bank_transaction_lis_delete",
    "bank_transaction_lis_insert",
    "donations",
    "donation_upsert",
)


def bundled_sql() -> Traversable:
    return files("dfk_reconciler").joinpath("sql")


@dataclass(frozen=True)
class ParameterizedStatement:
    name: str
    sql: str
    parameters: tuple[str, ...]

    def verify_args(self, args: Mapping[str, Any] | None) -> None:
        """Check that ``args`` has as many entries as the statement has parameters.

        Only the count is checked; sqlite reports missing names itself.
        """

        got = 0 if args is None else len(args)
        if args is None or got != len(self.parameters):
            raise ArgumentCountMismatch(self.name, len(self.parameters), got)


class StatementRegistry:
    """Loads every query template once and hands out the parsed statements.

    Statements are immutable and shared across threads; each caller binds them
    on its own connection.
    """

    def __init__(self, sql_source: str | Path | Traversable | None = None) -> None:
        if sql_source is None:
            self.sql_source: Path | Traversable = bundled_sql()
        elif isinstance(sql_source, str):
            self.sql_source = Path(sql_source)
        else:
            self.sql_source = sql_source

        self._statements: dict[str, ParameterizedStatement] = {}
        for name in STATEMENT_NAMES:
            template = parameterize_file(self.sql_source, f"{name}.sql")
            self._statements[name] = ParameterizedStatement(
                name=name,
                sql=template.body,
                parameters=template.parameters,
            )
        self._prepared = False

    @property
    def prepared(self) -> bool:
        return self._prepared

    def read_script(self, file_name: str) -> str:
        return self.sql_source.joinpath(file_name).read_text(encoding="utf-8")

    def prepare(self, connection: sqlite3.Connection) -> None:
        """Compile every statement against ``connection`` without running it."""

        for statement in self._statements.values():
            placeholders = {name: None for name in statement.parameters}
            try:
                connection.execute(f"EXPLAIN {statement.sql}", placeholders).fetchall()
            except sqlite3.Error as exc:
                logger.error("could not prepare statement %r: %s", statement.name, exc)
                raise QueryError(statement.name, f"could not prepare statement: {exc}") from exc
        self._prepared = True
        logger.debug("prepared %d statements", len(self._statements))

    def statement(self, name: str) -> ParameterizedStatement:
        if not self._prepared:
            raise RuntimeError(f"statement {name!r} used before the registry was prepared")
        try:
            return self._statements[name]
        except KeyError:
            raise RuntimeError(f"statement {name!r} is not registered") from None

    def execute(
        self,
        connection: sqlite3.Connection,
        name: str,
        args: Mapping[str, Any] | None,
    ) -> int:
        """Run a write statement and return the number of rows it changed."""

        statement = self.statement(name)
        statement.verify_args(args)
        logger.debug("sql: %s args: %r", name, args)
        try:
            return connection.execute(statement.sql, dict(args or {})).rowcount
        except sqlite3.Error as exc:
            logger.error("statement %r failed with args %r: %s", name, args, exc)
            raise QueryError(name, str(exc)) from exc

    def fetch_all(
        self,
        connection: sqlite3.Connection,
        name: str,
        args: Mapping[str, Any] | None,
    ) -> list[sqlite3.Row]:
        statement = self.statement(name)
        statement.verify_args(args)
        logger.debug("sql: %s args: %r", name, args)
        try:
            return connection.execute(statement.sql, dict(args or {})).fetchall()
        except sqlite3.Error as exc:
            logger.error("statement %r failed with args %r: %s", name, args, exc)
            raise QueryError(name, str(exc)) from exc
