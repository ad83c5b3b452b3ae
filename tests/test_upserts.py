from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone

import pytest

from dfk_reconciler.cancellation import CancellationToken
from dfk_reconciler.errors import NoRowsFound, QueryCancelled, TransactionFailure
from dfk_reconciler.models import Account, BankTransaction, Donation, Invoice, LineItem
from dfk_reconciler.store import ReconcilerStore

ACCOUNT_CODES = "^(53|55|57)"


def _build_store(tmp_path) -> ReconcilerStore:  # type: ignore[no-untyped-def]
    store = ReconcilerStore(tmp_path / "reconciler_test.db", ACCOUNT_CODES)
    store.init_db()
    return store


def _invoice(invoice_id: str, number: str, line_items: list[LineItem]) -> Invoice:
    return Invoice(
        invoice_id=invoice_id,
        invoice_number=number,
        invoice_date=date(2025, 6, 2),
        status="PAID",
        contact_name="Riverside Trust",
        total=sum(item.line_amount for item in line_items),
        line_items=line_items,
        amount_paid=sum(item.line_amount for item in line_items),
    )


def test_reupserting_invoice_replaces_line_items(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    lines = [
        LineItem("li-1", "Gala table", "5301", 400.0),
        LineItem("li-2", "Card fee", "429", -6.0),
    ]

    assert store.upsert_invoices([_invoice("inv-a", "INV-9001", lines)]) == 1
    assert store.upsert_invoices([_invoice("inv-a", "INV-9001", lines)]) == 1
    invoice, line_items = store.get_invoice("inv-a")
    assert [item.line_item_id for item in line_items] == ["li-1", "li-2"]
    assert invoice.donation_total == 400
    assert invoice.contact_name == "Riverside Trust"

    store.upsert_invoices([_invoice("inv-a", "INV-9001", lines[:1])])
    invoice, line_items = store.get_invoice("inv-a")
    assert [item.line_item_id for item in line_items] == ["li-1"]
    assert invoice.total == 400


def test_invoice_without_line_items_has_empty_detail(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    store.upsert_invoices([_invoice("inv-empty", "INV-9002", [])])
    invoice, line_items = store.get_invoice("inv-empty")

    assert line_items == []
    assert invoice.donation_total == 0
    assert invoice.crms_total == 0
    assert invoice.is_reconciled


def test_failed_record_rolls_back_whole_batch(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    good = _invoice("inv-good", "INV-9003", [LineItem("li-shared", "Donation", "5501", 50.0)])
    clashing = _invoice("inv-bad", "INV-9004", [LineItem("li-shared", "Donation", "5501", 75.0)])

    with pytest.raises(TransactionFailure) as excinfo:
        store.upsert_invoices([good, clashing])

    assert excinfo.value.record_id == "inv-bad"
    assert excinfo.value.statement == "invoice_lis_insert"
    assert "inv-bad" in str(excinfo.value)
    with pytest.raises(NoRowsFound):
        store.get_invoice("inv-good")


def test_empty_batch_is_a_no_op(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    assert store.upsert_accounts([]) == 0
    assert store.upsert_invoices([]) == 0
    assert store.upsert_bank_transactions([]) == 0
    assert store.upsert_donations([]) == 0


def test_account_rename_shows_in_detail(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.upsert_invoices([_invoice("inv-a", "INV-9005", [LineItem("li-1", "Gift", "5501", 80.0)])])

    assert store.upsert_accounts([Account("acc-5501", "5501", "General Giving", type="REVENUE")]) == 1
    _, line_items = store.get_invoice("inv-a")
    assert line_items[0].account_name == "General Giving"

    store.upsert_accounts([Account("acc-5501", "5501", "Unrestricted Giving", type="REVENUE")])
    _, line_items = store.get_invoice("inv-a")
    assert line_items[0].account_name == "Unrestricted Giving"


def test_bank_transaction_reconciles_with_linked_donations(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    payout = BankTransaction(
        bank_transaction_id="bt-x",
        reference="PAYOUT-2025-06-01",
        transaction_date=date(2025, 6, 1),
        status="AUTHORISED",
        contact_name="Giving Platform",
        total=97.0,
        line_items=[
            LineItem("bt-li-x1", "Payout", "5501", 100.0),
            LineItem("bt-li-x2", "Platform fee", "429", -3.0),
        ],
        is_bank_reconciled=True,
        bank_account_name="Current Account",
    )
    donations = [
        Donation("don-1", "Online gift", 60.0, date(2025, 5, 30), payout_reference="PAYOUT-2025-06-01"),
        Donation("don-2", "Online gift", 40.0, date(2025, 5, 31), payout_reference="PAYOUT-2025-06-01"),
    ]

    assert store.upsert_bank_transactions([payout]) == 1
    assert store.upsert_donations(donations) == 2

    rows = store.list_bank_transactions(date(2025, 6, 1), date(2025, 6, 30))
    assert [(row.bank_transaction_id, row.donation_total, row.crms_total) for row in rows] == [
        ("bt-x", 100, 100)
    ]
    assert rows[0].is_reconciled

    transaction, line_items = store.get_bank_transaction("bt-x")
    assert transaction.is_bank_reconciled
    assert transaction.bank_account_name == "Current Account"
    assert [item.is_donation for item in line_items] == [True, False]


def test_donation_fields_round_trip(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    created = datetime(2025, 5, 1, 9, 30, tzinfo=timezone.utc)
    donation = Donation(
        "don-9",
        "Spring appeal gift",
        25.0,
        date(2025, 5, 2),
        payout_reference="   ",
        created_date=created,
        created_by="Sam Lee",
        additional_fields={"channel": "web", "campaign": "Spring"},
    )

    store.upsert_donations([donation])
    rows = store.list_donations(date(2025, 5, 1), date(2025, 5, 31), linkage_status="NotLinked")

    assert len(rows) == 1
    row = rows[0]
    assert row.payout_reference is None
    assert not row.is_linked
    assert row.created_date == created
    assert row.created_by == "Sam Lee"
    assert row.additional_fields_json == '{"campaign": "Spring", "channel": "web"}'
    assert row.additional_fields == {"campaign": "Spring", "channel": "web"}

    found = store.list_donations(date(2025, 5, 1), date(2025, 5, 31), search="SPRING")
    assert [item.donation_id for item in found] == ["don-9"]


def test_donation_upsert_updates_existing_row(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.upsert_donations([Donation("don-1", "Gift", 10.0, date(2025, 5, 2))])
    store.upsert_donations([Donation("don-1", "Gift", 15.0, date(2025, 5, 2), payout_reference="INV-1")])

    rows = store.list_donations(date(2025, 5, 1), date(2025, 5, 31))

    assert [(row.donation_id, row.amount, row.payout_reference) for row in rows] == [
        ("don-1", 15.0, "INV-1")
    ]


def test_cancelled_token_writes_nothing(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(QueryCancelled):
        store.upsert_invoices(
            [_invoice("inv-a", "INV-9006", [LineItem("li-1", "Gift", "5501", 10.0)])], token=token
        )
    with pytest.raises(NoRowsFound):
        store.get_invoice("inv-a")


class _CancelAfterChecks(CancellationToken):
    def __init__(self, checks: int) -> None:
        super().__init__()
        self.remaining = checks

    def raise_if_cancelled(self) -> None:
        if self.remaining == 0:
            self.cancel()
        self.remaining -= 1
        super().raise_if_cancelled()


def test_cancelling_mid_batch_rolls_back(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    invoices = [
        _invoice("inv-a", "INV-9007", [LineItem("li-a", "Gift", "5501", 10.0)]),
        _invoice("inv-b", "INV-9008", [LineItem("li-b", "Gift", "5501", 20.0)]),
    ]

    # One check before the batch, then one per statement: the first invoice is
    # fully written before the cancel lands on the second.
    with pytest.raises(QueryCancelled):
        store.upsert_invoices(invoices, token=_CancelAfterChecks(4))

    with pytest.raises(NoRowsFound):
        store.get_invoice("inv-a")
    with pytest.raises(NoRowsFound):
        store.get_invoice("inv-b")


def test_fractional_amounts_reconcile_in_whole_cents(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    lines = [
        LineItem("li-dime", "Gift", "5501", 0.1),
        LineItem("li-two-dimes", "Gift", "5501", 0.2),
    ]
    store.upsert_invoices([_invoice("inv-c", "INV-9010", lines)])
    store.upsert_donations([Donation("don-c", "Gift", 0.3, date(2025, 6, 1), payout_reference="INV-9010")])

    rows = store.list_invoices(date(2025, 6, 1), date(2025, 6, 30), "Reconciled")
    assert [(row.invoice_id, row.donation_total, row.crms_total) for row in rows] == [
        ("inv-c", 0.3, 0.3)
    ]

    invoice, _ = store.get_invoice("inv-c")
    assert invoice.is_reconciled
    assert invoice.total_outstanding == 0


def test_locked_database_fails_the_batch(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = ReconcilerStore(tmp_path / "reconciler_test.db", ACCOUNT_CODES, timeout=0.05)
    store.init_db()
    writer = sqlite3.connect(tmp_path / "reconciler_test.db", isolation_level=None)
    writer.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(TransactionFailure) as excinfo:
            store.upsert_donations([Donation("don-1", "Gift", 10.0, date(2025, 5, 2))])
    finally:
        writer.execute("ROLLBACK")
        writer.close()

    assert excinfo.value.statement == "donations"
    assert excinfo.value.record_id is None
    assert "locked" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    with pytest.raises(NoRowsFound):
        store.list_donations(date(2025, 5, 1), date(2025, 5, 31))


def test_file_uri_database_uses_wal(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = ReconcilerStore(f"file:{tmp_path / 'uri.db'}?cache=private", ACCOUNT_CODES)
    store.init_db()

    with sqlite3.connect(tmp_path / "uri.db") as connection:
        (mode,) = connection.execute("PRAGMA journal_mode").fetchone()
    connection.close()

    assert mode == "wal"
    assert store.upsert_donations([Donation("don-1", "Gift", 10.0, date(2025, 5, 2))]) == 1
