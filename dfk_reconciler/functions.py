"""Custom scalar functions used by the reconciliation queries."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from functools import lru_cache
from typing import Any, Callable

logger = logging.getLogger(__name__)

_functions_lock = threading.Lock()
_function_table: dict[str, tuple[int, Callable[..., Any]]] | None = None


@lru_cache(maxsize=128)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def regexp(pattern: Any, subject: Any) -> bool | None:
    """Return whether ``subject`` contains a match for ``pattern``.

    sqlite rewrites ``subject REGEXP pattern`` as ``regexp(pattern, subject)``.
    NULL on either side gives NULL.
    """

    if pattern is None or subject is None:
        return None
    return _compile(str(pattern)).search(str(subject)) is not None


def _functions() -> dict[str, tuple[int, Callable[..., Any]]]:
    global _function_table
    with _functions_lock:
        if _function_table is None:
            logger.debug("building sqlite scalar function table")
            _function_table = {"REGEXP": (2, regexp)}
        return _function_table


def register_functions(connection: sqlite3.Connection) -> None:
    """Install the scalar functions on ``connection``. Safe to call repeatedly."""

    for name, (arg_count, function) in _functions().items():
        connection.create_function(name, arg_count, function, deterministic=True)
