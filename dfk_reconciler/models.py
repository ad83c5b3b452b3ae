"""Records passed into the upserts and rows returned by the reconciliation queries."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _amount(value: Any) -> float:
    return float(value or 0)


# Inputs handed over by the sync layer.


@dataclass(frozen=True)
class Account:
    account_id: str
    code: str
    name: str
    type: str | None = None
    status: str | None = None
    currency_code: str | None = None
    updated: datetime | None = None
    description: str | None = None
    tax_type: str | None = None
    system_account: bool = False

    def as_params(self) -> dict[str, Any]:
        return {
            "AccountID": self.account_id,
            "Code": self.code,
            "Name": self.name,
            "Description": _clean(self.description),
            "Type": _clean(self.type),
            "TaxType": _clean(self.tax_type),
            "Status": _clean(self.status),
            "SystemAccount": 1 if self.system_account else 0,
            "CurrencyCode": _clean(self.currency_code),
            "Updated": format_timestamp(self.updated),
        }


@dataclass(frozen=True)
class LineItem:
    line_item_id: str
    description: str | None
    account_code: str | None
    line_amount: float
    tax_amount: float = 0.0
    quantity: float = 1.0
    unit_amount: float | None = None

    def as_params(self, parent_param: str, parent_id: str) -> dict[str, Any]:
        return {
            "LineItemID": self.line_item_id,
            parent_param: parent_id,
            "Description": _clean(self.description),
            "Quantity": self.quantity,
            "UnitAmount": self.line_amount if self.unit_amount is None else self.unit_amount,
            "LineAmount": self.line_amount,
            "AccountCode": _clean(self.account_code),
            "TaxAmount": self.tax_amount,
        }


@dataclass(frozen=True)
class Invoice:
    invoice_id: str
    invoice_number: str
    invoice_date: date
    status: str
    contact_name: str | None
    total: float
    line_items: list[LineItem] = field(default_factory=list)
    type: str = "ACCREC"
    reference: str | None = None
    amount_paid: float = 0.0
    updated: datetime | None = None
    contact_id: str | None = None

    def as_params(self) -> dict[str, Any]:
        return {
            "InvoiceID": self.invoice_id,
            "InvoiceType": self.type,
            "Status": self.status,
            "InvoiceNumber": _clean(self.invoice_number),
            "Reference": _clean(self.reference),
            "Total": self.total,
            "AmountPaid": self.amount_paid,
            "InvoiceDate": self.invoice_date.isoformat(),
            "Updated": format_timestamp(self.updated),
            "ContactID": _clean(self.contact_id),
            "ContactName": _clean(self.contact_name),
        }


@dataclass(frozen=True)
class BankTransaction:
    bank_transaction_id: str
    reference: str | None
    transaction_date: date
    status: str
    contact_name: str | None
    total: float
    line_items: list[LineItem] = field(default_factory=list)
    type: str = "RECEIVE"
    is_bank_reconciled: bool = False
    updated: datetime | None = None
    contact_id: str | None = None
    bank_account_id: str | None = None
    bank_account_name: str | None = None
    bank_account_code: str | None = None

    def as_params(self) -> dict[str, Any]:
        return {
            "BankTransactionID": self.bank_transaction_id,
            "TransactionType": self.type,
            "Status": self.status,
            "Reference": _clean(self.reference),
            "Total": self.total,
            "IsBankReconciled": 1 if self.is_bank_reconciled else 0,
            "TransactionDate": self.transaction_date.isoformat(),
            "Updated": format_timestamp(self.updated),
            "ContactID": _clean(self.contact_id),
            "ContactName": _clean(self.contact_name),
            "BankAccountID": _clean(self.bank_account_id),
            "BankAccountName": _clean(self.bank_account_name),
            "BankAccountCode": _clean(self.bank_account_code),
        }


@dataclass(frozen=True)
class Donation:
    """A CRM opportunity. ``payout_reference`` is the DFK."""

    donation_id: str
    name: str
    amount: float
    close_date: date
    payout_reference: str | None = None
    created_date: datetime | None = None
    created_by: str | None = None
    last_modified_date: datetime | None = None
    last_modified_by: str | None = None
    additional_fields: dict[str, Any] = field(default_factory=dict)

    def as_params(self) -> dict[str, Any]:
        return {
            "DonationID": self.donation_id,
            "Name": self.name,
            "Amount": self.amount,
            "CloseDate": self.close_date.isoformat(),
            "PayoutReference": _clean(self.payout_reference),
            "CreatedDate": format_timestamp(self.created_date),
            "CreatedBy": _clean(self.created_by),
            "LastModifiedDate": format_timestamp(self.last_modified_date),
            "LastModifiedBy": _clean(self.last_modified_by),
            "AdditionalFields": json.dumps(self.additional_fields, sort_keys=True, default=str),
        }


# Rows returned by the listing queries.


@dataclass(frozen=True)
class InvoiceSummary:
    invoice_id: str
    invoice_number: str | None
    reference: str | None
    invoice_date: date | None
    contact_name: str | None
    status: str | None
    total: float
    donation_total: float
    crms_total: float
    is_reconciled: bool
    row_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> InvoiceSummary:
        return cls(
            invoice_id=row["id"],
            invoice_number=row["invoice_number"],
            reference=row["reference"],
            invoice_date=parse_date(row["date"]),
            contact_name=row["contact_name"],
            status=row["status"],
            total=_amount(row["total"]),
            donation_total=_amount(row["donation_total"]),
            crms_total=_amount(row["crms_total"]),
            is_reconciled=bool(row["is_reconciled"]),
            row_count=int(row["row_count"]),
        )


@dataclass(frozen=True)
class BankTransactionSummary:
    bank_transaction_id: str
    reference: str | None
    transaction_date: date | None
    contact_name: str | None
    status: str | None
    total: float
    donation_total: float
    crms_total: float
    is_reconciled: bool
    row_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> BankTransactionSummary:
        return cls(
            bank_transaction_id=row["id"],
            reference=row["reference"],
            transaction_date=parse_date(row["date"]),
            contact_name=row["contact_name"],
            status=row["status"],
            total=_amount(row["total"]),
            donation_total=_amount(row["donation_total"]),
            crms_total=_amount(row["crms_total"]),
            is_reconciled=bool(row["is_reconciled"]),
            row_count=int(row["row_count"]),
        )


@dataclass(frozen=True)
class DonationSummary:
    donation_id: str
    name: str | None
    amount: float
    close_date: date | None
    payout_reference: str | None
    created_date: datetime | None
    created_by: str | None
    last_modified_date: datetime | None
    last_modified_by: str | None
    additional_fields_json: str | None
    is_linked: bool
    row_count: int

    @property
    def additional_fields(self) -> dict[str, Any]:
        if not self.additional_fields_json:
            return {}
        return json.loads(self.additional_fields_json)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> DonationSummary:
        return cls(
            donation_id=row["id"],
            name=row["name"],
            amount=_amount(row["amount"]),
            close_date=parse_date(row["close_date"]),
            payout_reference=row["payout_reference_dfk"],
            created_date=parse_timestamp(row["created_date"]),
            created_by=row["created_by_name"],
            last_modified_date=parse_timestamp(row["last_modified_date"]),
            last_modified_by=row["last_modified_by_name"],
            additional_fields_json=row["additional_fields_json"],
            is_linked=bool(row["is_linked"]),
            row_count=int(row["row_count"]),
        )


# Wide rows returned by the detail queries: parent fields repeated per line item.


@dataclass(frozen=True)
class WRInvoice:
    invoice_id: str
    invoice_number: str | None
    invoice_date: date | None
    type: str | None
    status: str | None
    reference: str | None
    contact_name: str | None
    total: float
    amount_paid: float
    donation_total: float
    crms_total: float
    is_reconciled: bool
    total_outstanding: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> WRInvoice:
        return cls(
            invoice_id=row["id"],
            invoice_number=row["invoice_number"],
            invoice_date=parse_date(row["date"]),
            type=row["type"],
            status=row["status"],
            reference=row["reference"],
            contact_name=row["contact_name"],
            total=_amount(row["total"]),
            amount_paid=_amount(row["amount_paid"]),
            donation_total=_amount(row["donation_total"]),
            crms_total=_amount(row["crms_total"]),
            is_reconciled=bool(row["is_reconciled"]),
            total_outstanding=_amount(row["total_outstanding"]),
        )


@dataclass(frozen=True)
class WRBankTransaction:
    bank_transaction_id: str
    reference: str | None
    transaction_date: date | None
    type: str | None
    status: str | None
    contact_name: str | None
    total: float
    is_bank_reconciled: bool
    bank_account_name: str | None
    donation_total: float
    crms_total: float
    is_reconciled: bool
    total_outstanding: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> WRBankTransaction:
        return cls(
            bank_transaction_id=row["id"],
            reference=row["reference"],
            transaction_date=parse_date(row["date"]),
            type=row["type"],
            status=row["status"],
            contact_name=row["contact_name"],
            total=_amount(row["total"]),
            is_bank_reconciled=bool(row["is_bank_reconciled"]),
            bank_account_name=row["bank_account_name"],
            donation_total=_amount(row["donation_total"]),
            crms_total=_amount(row["crms_total"]),
            is_reconciled=bool(row["is_reconciled"]),
            total_outstanding=_amount(row["total_outstanding"]),
        )


@dataclass(frozen=True)
class WRLineItem:
    line_item_id: str
    account_code: str | None
    account_name: str | None
    description: str | None
    quantity: float | None
    unit_amount: float | None
    tax_amount: float
    line_amount: float
    donation_amount: float
    is_donation: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> WRLineItem | None:
        """Build the line item carried by a wide row, or ``None`` for a parent without any."""

        if row["li_id"] is None:
            return None
        return cls(
            line_item_id=row["li_id"],
            account_code=row["li_account_code"],
            account_name=row["li_account_name"],
            description=row["li_description"],
            quantity=row["li_quantity"],
            unit_amount=row["li_unit_amount"],
            tax_amount=_amount(row["li_tax_amount"]),
            line_amount=_amount(row["li_line_amount"]),
            donation_amount=_amount(row["li_donation_amount"]),
            is_donation=bool(row["li_is_donation"]),
        )
