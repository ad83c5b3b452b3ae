"""Exception types raised by the reconciler's database layer."""

from __future__ import annotations


class ReconcilerError(Exception):
    """Base class for reconciler database errors."""


class TemplateError(ReconcilerError, ValueError):
    """A query template could not be read or parameterized."""


class ArgumentCountMismatch(ReconcilerError, ValueError):
    def __init__(self, statement: str, expected: int, got: int) -> None:
        super().__init__(
            f"argument count for statement {statement!r} incorrect: got {got} want {expected}"
        )
        self.statement = statement
        self.expected = expected
        self.got = got


class NoRowsFound(ReconcilerError, LookupError):
    """A query matched no rows.

    This is an expected outcome rather than a failure; callers render it as an
    empty state.
    """

    def __init__(self, statement: str) -> None:
        super().__init__(f"no rows returned by {statement!r}")
        self.statement = statement


class QueryError(ReconcilerError):
    def __init__(self, statement: str, message: str) -> None:
        super().__init__(f"{statement}: {message}")
        self.statement = statement


class TransactionFailure(ReconcilerError):
    """A statement failed during a batch upsert; the whole batch was rolled back."""

    def __init__(self, statement: str, record_id: str | None, message: str) -> None:
        if record_id is None:
            super().__init__(f"{statement} failed: {message}")
        else:
            super().__init__(f"{statement} failed for record {record_id!r}: {message}")
        self.statement = statement
        self.record_id = record_id


class QueryCancelled(ReconcilerError):
    """The caller's cancellation token was triggered."""
