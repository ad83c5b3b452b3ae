"""Reconcile accounting records against CRM donations linked by a distributed foreign key."""

from .cancellation import CancellationToken
from .config import ReconcilerConfig, configure_logging, load_config
from .errors import (
    ArgumentCountMismatch,
    NoRowsFound,
    QueryCancelled,
    QueryError,
    ReconcilerError,
    TemplateError,
    TransactionFailure,
)
from .models import (
    Account,
    BankTransaction,
    BankTransactionSummary,
    Donation,
    DonationSummary,
    Invoice,
    InvoiceSummary,
    LineItem,
    WRBankTransaction,
    WRInvoice,
    WRLineItem,
)
from .pagination import PageOutOfRange, Pagination
from .params import DEFAULT_PAGE_LENGTH, LinkageStatus, ReconciliationStatus
from .parameterize import ParameterizedTemplate, parameterize
from .statements import StatementRegistry
from .store import ReconcilerStore

__all__ = [
    "Account",
    "ArgumentCountMismatch",
    "BankTransaction",
    "BankTransactionSummary",
    "CancellationToken",
    "DEFAULT_PAGE_LENGTH",
    "Donation",
    "DonationSummary",
    "Invoice",
    "InvoiceSummary",
    "LineItem",
    "LinkageStatus",
    "NoRowsFound",
    "PageOutOfRange",
    "Pagination",
    "ParameterizedTemplate",
    "QueryCancelled",
    "QueryError",
    "ReconcilerConfig",
    "ReconcilerError",
    "ReconcilerStore",
    "ReconciliationStatus",
    "StatementRegistry",
    "TemplateError",
    "TransactionFailure",
    "WRBankTransaction",
    "WRInvoice",
    "WRLineItem",
    "configure_logging",
    "load_config",
    "parameterize",
]
