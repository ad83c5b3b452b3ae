"""Streamlit viewer for invoice, bank transaction and donation reconciliation."""

from __future__ import annotations

import logging
import os
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import streamlit as st

from dfk_reconciler import (
    DEFAULT_PAGE_LENGTH,
    LinkageStatus,
    NoRowsFound,
    PageOutOfRange,
    Pagination,
    ReconcilerError,
    ReconcilerStore,
    ReconciliationStatus,
    WRLineItem,
    configure_logging,
    load_config,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RECONCILER_CONFIG"
DEMO_DB_PATH = Path(".data/reconciler_demo.db")
DEMO_ACCOUNT_CODES = "^(53|55|57)"
DEMO_DATE_START = date(2025, 4, 1)


def _inject_styles() -> None:
    st.markdown(
        """
        <style>
          .recon-hero {
            background: linear-gradient(124deg, #032d60, #0176d3);
            border-radius: 16px;
            padding: 1rem 1.2rem;
            margin-bottom: 1rem;
          }

          .recon-hero h1,
          .recon-hero p {
            color: #ffffff !important;
            margin: 0;
          }

          .recon-hero p {
            margin-top: 0.45rem;
            opacity: 0.9;
          }

          .section-note {
            color: #555453;
            font-weight: 500;
            margin-top: -0.2rem;
            margin-bottom: 0.8rem;
          }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _hero(data_source: str) -> None:
    st.markdown(
        f"""
        <div class="recon-hero">
          <h1>Donation Reconciliation</h1>
          <p>Accounting invoices and payouts checked against CRM donations. Source: {data_source}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


@st.cache_resource
def _load_store() -> tuple[ReconcilerStore, int, date, str]:
    config_path = os.environ.get(CONFIG_ENV_VAR)
    if config_path:
        config = load_config(config_path)
        configure_logging(config.log_level)
        store = config.build_store()
        store.init_db()
        return store, config.page_length, config.data_date_start, str(config.database_path)

    configure_logging()
    logger.info("%s not set, opening demo database %s", CONFIG_ENV_VAR, DEMO_DB_PATH)
    store = ReconcilerStore(DEMO_DB_PATH, DEMO_ACCOUNT_CODES)
    store.init_db()
    store.load_demo_data()
    return store, DEFAULT_PAGE_LENGTH, DEMO_DATE_START, "demo data"


def _format_amount(value: float) -> str:
    return f"{value:,.2f}"


def _table_or_info(frame: pd.DataFrame, empty_message: str) -> None:
    if frame.empty:
        st.info(empty_message)
        return
    st.dataframe(frame, use_container_width=True, hide_index=True)


def _date_range(key: str, data_start: date) -> tuple[date, date]:
    default_end = date(data_start.year + 1, data_start.month, 1) - timedelta(days=1)
    from_col, to_col = st.columns(2)
    with from_col:
        date_from = st.date_input("From", value=data_start, key=f"{key}-from")
    with to_col:
        date_to = st.date_input("To", value=default_end, key=f"{key}-to")
    return date_from, date_to


def _fetch_page(
    key: str,
    page_length: int,
    fetch: Callable[[int, int], list[Any]],
) -> list[Any]:
    """Run ``fetch(limit, offset)`` for the selected page and draw the page controls."""

    page_no = int(st.session_state.get(f"{key}-page", 1))
    try:
        rows = fetch(page_length, (page_no - 1) * page_length)
    except NoRowsFound:
        if page_no > 1:
            st.session_state[f"{key}-page"] = 1
            st.rerun()
        return []
    except ReconcilerError:
        logger.exception("listing %s failed", key)
        st.error("The records could not be loaded. See the log for details.")
        return []
    except ValueError as exc:
        st.error(str(exc))
        return []

    try:
        pagination = Pagination.build(page_length, rows[0].row_count, page_no)
    except PageOutOfRange:
        st.session_state[f"{key}-page"] = 1
        st.rerun()

    previous_col, label_col, next_col = st.columns([1, 3, 1])
    with previous_col:
        if st.button("Previous", key=f"{key}-previous", disabled=not pagination.previous):
            st.session_state[f"{key}-page"] = pagination.previous
            st.rerun()
    with label_col:
        st.caption(
            f"Page {pagination.page_no} of {pagination.pages} ({rows[0].row_count} records)"
        )
    with next_col:
        if st.button("Next", key=f"{key}-next", disabled=not pagination.next):
            st.session_state[f"{key}-page"] = pagination.next
            st.rerun()
    return rows


def _line_items_frame(line_items: list[WRLineItem]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Account": item.account_code or "-",
                "Account Name": item.account_name or "-",
                "Description": item.description or "-",
                "Tax": _format_amount(item.tax_amount),
                "Line Amount": _format_amount(item.line_amount),
                "Donation Amount": _format_amount(item.donation_amount),
                "Donation": "Yes" if item.is_donation else "No",
            }
            for item in line_items
        ]
    )


def render_invoices_tab(store: ReconcilerStore, page_length: int, data_start: date) -> None:
    st.markdown("### Invoices")
    date_from, date_to = _date_range("invoices", data_start)
    status_col, search_col = st.columns([1, 2])
    with status_col:
        status = st.selectbox(
            "Status",
            options=[item.value for item in ReconciliationStatus],
            key="invoices-status",
        )
    with search_col:
        search = st.text_input("Search", key="invoices-search")

    rows = _fetch_page(
        "invoices",
        page_length,
        lambda limit, offset: store.list_invoices(
            date_from, date_to, status, search, limit=limit, offset=offset
        ),
    )
    invoice_df = pd.DataFrame(
        [
            {
                "ID": row.invoice_id,
                "Number": row.invoice_number or "-",
                "Date": row.invoice_date,
                "Contact": row.contact_name or "-",
                "Total": _format_amount(row.total),
                "Donations": _format_amount(row.donation_total),
                "CRM Total": _format_amount(row.crms_total),
                "Reconciled": "Yes" if row.is_reconciled else "No",
            }
            for row in rows
        ]
    )
    _table_or_info(invoice_df, "No invoices match these filters.")
    if not rows:
        return

    selected = st.selectbox(
        "Invoice detail",
        options=[row.invoice_id for row in rows],
        format_func=lambda item_id: next(
            f"{row.invoice_number} {row.contact_name or ''}" for row in rows if row.invoice_id == item_id
        ),
        key="invoices-detail",
    )
    try:
        invoice, line_items = store.get_invoice(selected)
    except NoRowsFound:
        st.info("The invoice is no longer available.")
        return
    metrics = st.columns(4)
    metrics[0].metric("Donation Total", _format_amount(invoice.donation_total))
    metrics[1].metric("CRM Total", _format_amount(invoice.crms_total))
    metrics[2].metric("Outstanding", _format_amount(invoice.total_outstanding))
    metrics[3].metric("Reconciled", "Yes" if invoice.is_reconciled else "No")
    _table_or_info(_line_items_frame(line_items), "This invoice has no line items.")


def render_bank_transactions_tab(store: ReconcilerStore, page_length: int, data_start: date) -> None:
    st.markdown("### Bank Transactions")
    date_from, date_to = _date_range("bank", data_start)
    status_col, search_col = st.columns([1, 2])
    with status_col:
        status = st.selectbox(
            "Status",
            options=[item.value for item in ReconciliationStatus],
            key="bank-status",
        )
    with search_col:
        search = st.text_input("Search", key="bank-search")

    rows = _fetch_page(
        "bank",
        page_length,
        lambda limit, offset: store.list_bank_transactions(
            date_from, date_to, status, search, limit=limit, offset=offset
        ),
    )
    transaction_df = pd.DataFrame(
        [
            {
                "ID": row.bank_transaction_id,
                "Reference": row.reference or "-",
                "Date": row.transaction_date,
                "Contact": row.contact_name or "-",
                "Total": _format_amount(row.total),
                "Donations": _format_amount(row.donation_total),
                "CRM Total": _format_amount(row.crms_total),
                "Reconciled": "Yes" if row.is_reconciled else "No",
            }
            for row in rows
        ]
    )
    _table_or_info(transaction_df, "No bank transactions match these filters.")
    if not rows:
        return

    selected = st.selectbox(
        "Bank transaction detail",
        options=[row.bank_transaction_id for row in rows],
        format_func=lambda item_id: next(
            row.reference or item_id for row in rows if row.bank_transaction_id == item_id
        ),
        key="bank-detail",
    )
    try:
        transaction, line_items = store.get_bank_transaction(selected)
    except NoRowsFound:
        st.info("The bank transaction is no longer available.")
        return
    metrics = st.columns(4)
    metrics[0].metric("Donation Total", _format_amount(transaction.donation_total))
    metrics[1].metric("CRM Total", _format_amount(transaction.crms_total))
    metrics[2].metric("Outstanding", _format_amount(transaction.total_outstanding))
    metrics[3].metric("Reconciled", "Yes" if transaction.is_reconciled else "No")
    _table_or_info(_line_items_frame(line_items), "This bank transaction has no line items.")


def render_donations_tab(store: ReconcilerStore, page_length: int, data_start: date) -> None:
    st.markdown("### Donations")
    st.markdown(
        "<p class='section-note'>A donation is linked when it carries a payout reference.</p>",
        unsafe_allow_html=True,
    )
    date_from, date_to = _date_range("donations", data_start)
    status_col, reference_col, search_col = st.columns([1, 1, 2])
    with status_col:
        status = st.selectbox(
            "Linkage",
            options=[item.value for item in LinkageStatus],
            key="donations-status",
        )
    with reference_col:
        payout_reference = st.text_input("Payout Reference", key="donations-reference")
    with search_col:
        search = st.text_input("Search", key="donations-search")

    rows = _fetch_page(
        "donations",
        page_length,
        lambda limit, offset: store.list_donations(
            date_from, date_to, status, payout_reference, search, limit=limit, offset=offset
        ),
    )
    donation_df = pd.DataFrame(
        [
            {
                "ID": row.donation_id,
                "Name": row.name or "-",
                "Amount": _format_amount(row.amount),
                "Close Date": row.close_date,
                "Payout Reference": row.payout_reference or "-",
                "Linked": "Yes" if row.is_linked else "No",
            }
            for row in rows
        ]
    )
    _table_or_info(donation_df, "No donations match these filters.")


def main() -> None:
    st.set_page_config(
        page_title="Donation Reconciliation",
        page_icon=":ledger:",
        layout="wide",
    )
    store, page_length, data_start, data_source = _load_store()
    _inject_styles()
    _hero(data_source)

    tabs = st.tabs(["Invoices", "Bank Transactions", "Donations"])

    with tabs[0]:
        render_invoices_tab(store, page_length, data_start)
    with tabs[1]:
        render_bank_transactions_tab(store, page_length, data_start)
    with tabs[2]:
        render_donations_tab(store, page_length, data_start)


if __name__ == "__main__":
    main()
