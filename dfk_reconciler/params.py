"""Typed arguments for the reconciliation queries.

Each dataclass mirrors the named parameters of one query template and is only
turned into a name-to-value mapping by ``as_params`` when the statement runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

DEFAULT_PAGE_LENGTH = 15


class ReconciliationStatus(str, Enum):
    ALL = "All"
    RECONCILED = "Reconciled"
    NOT_RECONCILED = "NotReconciled"

    @classmethod
    def parse(cls, value: str | ReconciliationStatus) -> ReconciliationStatus:
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown reconciliation status: {value!r}.") from None


class LinkageStatus(str, Enum):
    ALL = "All"
    LINKED = "Linked"
    NOT_LINKED = "NotLinked"

    @classmethod
    def parse(cls, value: str | LinkageStatus) -> LinkageStatus:
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown linkage status: {value!r}.") from None


def _page_window(limit: int, offset: int | None) -> tuple[int, int]:
    if limit < 0:
        raise ValueError("Limit cannot be negative.")
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


@dataclass(frozen=True)
class ReconciliationListingArgs:
    """Arguments shared by ``invoices.sql`` and ``bank_transactions.sql``."""

    date_from: date
    date_to: date
    account_codes: str
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.ALL
    text_search: str = ""
    limit: int = DEFAULT_PAGE_LENGTH
    offset: int = 0

    @classmethod
    def build(
        cls,
        date_from: date,
        date_to: date,
        account_codes: str,
        reconciliation_status: str | ReconciliationStatus = ReconciliationStatus.ALL,
        text_search: str | None = "",
        limit: int = DEFAULT_PAGE_LENGTH,
        offset: int | None = 0,
    ) -> ReconciliationListingArgs:
        limit, offset = _page_window(limit, offset)
        return cls(
            date_from=date_from,
            date_to=date_to,
            account_codes=account_codes,
            reconciliation_status=ReconciliationStatus.parse(reconciliation_status),
            text_search=(text_search or "").strip(),
            limit=limit,
            offset=offset,
        )

    def as_params(self) -> dict[str, Any]:
        return {
            "DateFrom": self.date_from.isoformat(),
            "DateTo": self.date_to.isoformat(),
            "AccountCodes": self.account_codes,
            "ReconciliationStatus": self.reconciliation_status.value,
            "TextSearch": self.text_search,
            "HereLimit": self.limit,
            "HereOffset": self.offset,
        }


@dataclass(frozen=True)
class DonationListingArgs:
    date_from: date
    date_to: date
    linkage_status: LinkageStatus = LinkageStatus.ALL
    payout_reference: str = ""
    text_search: str = ""
    limit: int = DEFAULT_PAGE_LENGTH
    offset: int = 0

    @classmethod
    def build(
        cls,
        date_from: date,
        date_to: date,
        linkage_status: str | LinkageStatus = LinkageStatus.ALL,
        payout_reference: str | None = "",
        text_search: str | None = "",
        limit: int = DEFAULT_PAGE_LENGTH,
        offset: int | None = 0,
    ) -> DonationListingArgs:
        status = LinkageStatus.parse(linkage_status)
        reference = (payout_reference or "").strip()
        if status is LinkageStatus.NOT_LINKED and reference:
            raise ValueError("A payout reference cannot be combined with the NotLinked status.")
        limit, offset = _page_window(limit, offset)
        return cls(
            date_from=date_from,
            date_to=date_to,
            linkage_status=status,
            payout_reference=reference,
            text_search=(text_search or "").strip(),
            limit=limit,
            offset=offset,
        )

    def as_params(self) -> dict[str, Any]:
        return {
            "DateFrom": self.date_from.isoformat(),
            "DateTo": self.date_to.isoformat(),
            "LinkageStatus": self.linkage_status.value,
            "PayoutReference": self.payout_reference,
            "TextSearch": self.text_search,
            "HereLimit": self.limit,
            "HereOffset": self.offset,
        }


@dataclass(frozen=True)
class InvoiceDetailArgs:
    invoice_id: str
    account_codes: str

    def as_params(self) -> dict[str, Any]:
        return {"InvoiceID": self.invoice_id, "AccountCodes": self.account_codes}


@dataclass(frozen=True)
class BankTransactionDetailArgs:
    bank_transaction_id: str
    account_codes: str

    def as_params(self) -> dict[str, Any]:
        return {"BankTransactionID": self.bank_transaction_id, "AccountCodes": self.account_codes}
