"""Cooperative cancellation for queries and upsert transactions."""

from __future__ import annotations

import sqlite3
import threading

from .errors import QueryCancelled

# Number of sqlite virtual machine instructions between cancellation checks.
PROGRESS_INTERVAL = 1000


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise QueryCancelled("operation cancelled by caller")

    def progress_handler(self) -> int:
        # A non-zero return interrupts the running statement.
        return 1 if self.cancelled else 0

    def attach(self, connection: sqlite3.Connection) -> None:
        connection.set_progress_handler(self.progress_handler, PROGRESS_INTERVAL)
