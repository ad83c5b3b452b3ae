"""SQLite-backed persistence and reconciliation queries for synced records."""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from importlib.resources.abc import Traversable
from operator import attrgetter
from pathlib import Path
from typing import Any, TypeVar

from .cancellation import CancellationToken
from .errors import NoRowsFound, QueryCancelled, QueryError, ReconcilerError, TransactionFailure
from .functions import register_functions
from .models import (
    Account,
    BankTransaction,
    BankTransactionSummary,
    Donation,
    DonationSummary,
    Invoice,
    InvoiceSummary,
    WRBankTransaction,
    WRInvoice,
    WRLineItem,
)
from .params import (
    DEFAULT_PAGE_LENGTH,
    BankTransactionDetailArgs,
    DonationListingArgs,
    InvoiceDetailArgs,
    LinkageStatus,
    ReconciliationListingArgs,
    ReconciliationStatus,
)
from .statements import StatementRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QueryArgs = (
    ReconciliationListingArgs | DonationListingArgs | InvoiceDetailArgs | BankTransactionDetailArgs
)


def _rollback(connection: sqlite3.Connection) -> None:
    # A cancelled token would otherwise interrupt the rollback itself.
    connection.set_progress_handler(None, 0)
    # sqlite may already have rolled back after an interrupt.
    if connection.in_transaction:
        connection.execute("ROLLBACK")


class ReconcilerStore:
    """Upserts of accounting and CRM records, and reconciliation queries over them."""

    def __init__(
        self,
        db_path: str | Path,
        account_codes: str,
        sql_source: str | Path | Traversable | None = None,
        timeout: float = 5.0,
    ) -> None:
        path_text = str(db_path)
        if path_text == ":memory:":
            raise ValueError(
                "A private in-memory database does not outlive its connection; "
                "use a URI such as 'file:reconciler?mode=memory&cache=shared'."
            )
        if not account_codes:
            raise ValueError("Donation account codes pattern is required.")
        try:
            re.compile(account_codes)
        except re.error as exc:
            raise ValueError(f"Invalid donation account codes pattern {account_codes!r}: {exc}") from exc

        self.db_path: str | Path = path_text if path_text.startswith("file:") else Path(db_path)
        self.account_codes = account_codes
        self.timeout = timeout
        self.registry = StatementRegistry(sql_source)

        # A shared-cache memory database is dropped when its last connection closes.
        self._anchor: sqlite3.Connection | None = None
        if self.in_memory:
            self._anchor = self._open()

    @property
    def in_memory(self) -> bool:
        return isinstance(self.db_path, str) and "mode=memory" in self.db_path

    def _open(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        else:
            connection = sqlite3.connect(
                self.db_path, timeout=self.timeout, uri=True, isolation_level=None
            )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        register_functions(connection)
        return connection

    @contextmanager
    def _connect(self, token: CancellationToken | None = None) -> Iterator[sqlite3.Connection]:
        connection = self._open()
        if token is not None:
            token.attach(connection)
        try:
            yield connection
        finally:
            connection.close()

    def close(self) -> None:
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None

    def init_db(self) -> None:
        with self._connect() as connection:
            if not self.in_memory:
                connection.execute("PRAGMA journal_mode = WAL")
            connection.executescript(self.registry.read_script("schema.sql"))
            self.registry.prepare(connection)

    def load_demo_data(self) -> None:
        script = self.registry.read_script("load_data.sql")
        with self._connect() as connection:
            try:
                connection.executescript(script)
            except sqlite3.Error:
                _rollback(connection)
                raise
        logger.info("loaded demo data into %s", self.db_path)

    def _execute(
        self,
        connection: sqlite3.Connection,
        name: str,
        args: Mapping[str, Any],
        token: CancellationToken | None,
    ) -> int:
        if token is not None:
            token.raise_if_cancelled()
        try:
            return self.registry.execute(connection, name, args)
        except QueryError as exc:
            if token is not None and token.cancelled:
                raise QueryCancelled(f"{name} cancelled") from exc
            raise

    def _fetch(
        self,
        name: str,
        args: _QueryArgs,
        token: CancellationToken | None,
    ) -> list[sqlite3.Row]:
        if token is not None:
            token.raise_if_cancelled()
        with self._connect(token) as connection:
            try:
                rows = self.registry.fetch_all(connection, name, args.as_params())
            except QueryError as exc:
                if token is not None and token.cancelled:
                    logger.warning("query %s cancelled", name)
                    raise QueryCancelled(f"{name} cancelled") from exc
                raise
        if not rows:
            raise NoRowsFound(name)
        return rows

    def _write_batch(
        self,
        kind: str,
        records: Iterable[T],
        record_id: Callable[[T], str],
        write: Callable[[sqlite3.Connection, T, CancellationToken | None], None],
        token: CancellationToken | None,
    ) -> int:
        batch = list(records)
        if not batch:
            logger.info("no %s to upsert", kind)
            return 0
        if token is not None:
            token.raise_if_cancelled()

        with self._connect(token) as connection:
            try:
                connection.execute("BEGIN IMMEDIATE")
                for record in batch:
                    try:
                        write(connection, record, token)
                    except QueryError as exc:
                        raise TransactionFailure(
                            exc.statement, record_id(record), str(exc.__cause__ or exc)
                        ) from exc
                connection.execute("COMMIT")
            except QueryCancelled:
                _rollback(connection)
                logger.warning("%s upsert cancelled, batch of %d rolled back", kind, len(batch))
                raise
            except (ReconcilerError, sqlite3.Error) as exc:
                _rollback(connection)
                if token is not None and token.cancelled:
                    logger.warning("%s upsert cancelled, batch of %d rolled back", kind, len(batch))
                    raise QueryCancelled(f"{kind} upsert cancelled") from exc
                logger.error("%s upsert rolled back: %s", kind, exc)
                if isinstance(exc, sqlite3.Error):
                    # BEGIN or COMMIT failed outside any single record.
                    raise TransactionFailure(kind, None, str(exc)) from exc
                raise

        logger.info("upserted %d %s", len(batch), kind)
        return len(batch)

    def _write_account(
        self, connection: sqlite3.Connection, account: Account, token: CancellationToken | None
    ) -> None:
        self._execute(connection, "account_upsert", account.as_params(), token)

    def _write_invoice(
        self, connection: sqlite3.Connection, invoice: Invoice, token: CancellationToken | None
    ) -> None:
        self._execute(connection, "invoice_lis_delete", {"InvoiceID": invoice.invoice_id}, token)
        self._execute(connection, "invoice_upsert", invoice.as_params(), token)
        for item in invoice.line_items:
            self._execute(
                connection,
                "invoice_lis_insert",
                item.as_params("InvoiceID", invoice.invoice_id),
                token,
            )

    def _write_bank_transaction(
        self,
        connection: sqlite3.Connection,
        transaction: BankTransaction,
        token: CancellationToken | None,
    ) -> None:
        transaction_id = transaction.bank_transaction_id
        self._execute(
            connection, "bank_transaction_lis_delete", {"BankTransactionID": transaction_id}, token
        )
        self._execute(connection, "bank_transaction_upsert", transaction.as_params(), token)
        for item in transaction.line_items:
            self._execute(
                connection,
                "bank_transaction_lis_insert",
                item.as_params("BankTransactionID", transaction_id),
                token,
            )

    def _write_donation(
        self, connection: sqlite3.Connection, donation: Donation, token: CancellationToken | None
    ) -> None:
        self._execute(connection, "donation_upsert", donation.as_params(), token)

    def upsert_accounts(
        self, accounts: Iterable[Account], token: CancellationToken | None = None
    ) -> int:
        return self._write_batch(
            "accounts", accounts, attrgetter("account_id"), self._write_account, token
        )

    def upsert_invoices(
        self, invoices: Iterable[Invoice], token: CancellationToken | None = None
    ) -> int:
        """Write each invoice and replace its line items, all in one transaction."""

        return self._write_batch(
            "invoices", invoices, attrgetter("invoice_id"), self._write_invoice, token
        )

    def upsert_bank_transactions(
        self, transactions: Iterable[BankTransaction], token: CancellationToken | None = None
    ) -> int:
        return self._write_batch(
            "bank transactions",
            transactions,
            attrgetter("bank_transaction_id"),
            self._write_bank_transaction,
            token,
        )

    def upsert_donations(
        self, donations: Iterable[Donation], token: CancellationToken | None = None
    ) -> int:
        return self._write_batch(
            "donations", donations, attrgetter("donation_id"), self._write_donation, token
        )

    def list_invoices(
        self,
        date_from: date,
        date_to: date,
        reconciliation_status: str | ReconciliationStatus = ReconciliationStatus.ALL,
        search: str | None = "",
        limit: int = DEFAULT_PAGE_LENGTH,
        offset: int | None = 0,
        token: CancellationToken | None = None,
    ) -> list[InvoiceSummary]:
        args = ReconciliationListingArgs.build(
            date_from, date_to, self.account_codes, reconciliation_status, search, limit, offset
        )
        return [InvoiceSummary.from_row(row) for row in self._fetch("invoices", args, token)]

    def list_bank_transactions(
        self,
        date_from: date,
        date_to: date,
        reconciliation_status: str | ReconciliationStatus = ReconciliationStatus.ALL,
        search: str | None = "",
        limit: int = DEFAULT_PAGE_LENGTH,
        offset: int | None = 0,
        token: CancellationToken | None = None,
    ) -> list[BankTransactionSummary]:
        args = ReconciliationListingArgs.build(
            date_from, date_to, self.account_codes, reconciliation_status, search, limit, offset
        )
        return [
            BankTransactionSummary.from_row(row)
            for row in self._fetch("bank_transactions", args, token)
        ]

    def list_donations(
        self,
        date_from: date,
        date_to: date,
        linkage_status: str | LinkageStatus = LinkageStatus.ALL,
        payout_reference: str | None = "",
        search: str | None = "",
        limit: int = DEFAULT_PAGE_LENGTH,
        offset: int | None = 0,
        token: CancellationToken | None = None,
    ) -> list[DonationSummary]:
        args = DonationListingArgs.build(
            date_from, date_to, linkage_status, payout_reference, search, limit, offset
        )
        return [DonationSummary.from_row(row) for row in self._fetch("donations", args, token)]

    def get_invoice(
        self, invoice_id: str, token: CancellationToken | None = None
    ) -> tuple[WRInvoice, list[WRLineItem]]:
        rows = self._fetch("invoice", InvoiceDetailArgs(invoice_id, self.account_codes), token)
        line_items = [item for item in map(WRLineItem.from_row, rows) if item is not None]
        return WRInvoice.from_row(rows[0]), line_items

    def get_bank_transaction(
        self, bank_transaction_id: str, token: CancellationToken | None = None
    ) -> tuple[WRBankTransaction, list[WRLineItem]]:
        args = BankTransactionDetailArgs(bank_transaction_id, self.account_codes)
        rows = self._fetch("bank_transaction", args, token)
        line_items = [item for item in map(WRLineItem.from_row, rows) if item is not None]
        return WRBankTransaction.from_row(rows[0]), line_items
