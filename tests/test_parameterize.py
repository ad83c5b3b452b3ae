from __future__ import annotations

from pathlib import Path

import pytest

from dfk_reconciler.errors import TemplateError
from dfk_reconciler.parameterize import parameterize, parameterize_file


def test_single_date_literal_becomes_named_parameter() -> None:
    result = parameterize("date('2026-03-31') AS DateFrom   /* @param */")

    assert result.parameters == ("DateFrom",)
    assert result.body == ":DateFrom AS DateFrom"


def test_text_without_markers_is_rejected() -> None:
    with pytest.raises(TemplateError, match="no parameters found"):
        parameterize("nothing")


def test_variables_block_keeps_unmarked_literals() -> None:
    text = """
WITH concrete AS (
	date('2025-04-01') AS DateFrom   /* @param */
	,date('2026-03-31') AS DateTo    /* @param */
	,'^(53|55|57).*' AS AccountCodes /* @param */
	-- All | Reconciled | NotReconciled
	,'All' AS ReconciliationStatus   /* @param */
	,null AS NullExample             /* @param */
	,-34.5 AS FloatExample           /* @param */
	,'raw string' AS RawString
)
"""
    expected = """
WITH concrete AS (
	:DateFrom AS DateFrom
	,:DateTo AS DateTo
	,:AccountCodes AS AccountCodes
	-- All | Reconciled | NotReconciled
	,:ReconciliationStatus AS ReconciliationStatus
	,:NullExample AS NullExample
	,:FloatExample AS FloatExample
	,'raw string' AS RawString
)
"""

    result = parameterize(text)

    assert result.parameters == (
        "DateFrom",
        "DateTo",
        "AccountCodes",
        "ReconciliationStatus",
        "NullExample",
        "FloatExample",
    )
    assert result.body == expected


@pytest.mark.parametrize(
    ("literal", "unmarked"),
    [
        ("date('2025-04-01')", "date('2025-05-01')"),
        ("datetime('now', 'localtime')", "datetime('now', 'localtime')"),
        ("'a string'", "'a string'"),
        ("''", "''"),
        ("42", "42"),
        ("1.25", "1.25"),
        ("-7", "-7"),
        ("null", "null"),
    ],
)
def test_each_literal_form_is_recognized(literal: str, unmarked: str) -> None:
    text = f"SELECT\n    {literal} AS Marked /* @param */\n    ,{unmarked} AS Plain\n"

    result = parameterize(text)

    assert result.parameters == ("Marked",)
    assert result.body == f"SELECT\n    :Marked AS Marked\n    ,{unmarked} AS Plain\n"


def test_whitespace_around_as_is_preserved() -> None:
    result = parameterize("SELECT 'x'\tAS\n  Value\t/* @param */;")

    assert result.parameters == ("Value",)
    assert result.body == "SELECT :Value\tAS\n  Value;"


def test_repeated_names_are_listed_per_occurrence() -> None:
    result = parameterize("SELECT 1 AS Limit /* @param */, 2 AS Limit /* @param */")

    assert result.parameters == ("Limit", "Limit")


def test_marker_after_unsupported_literal_is_rejected() -> None:
    text = "SELECT\n    1 AS Good /* @param */\n    ,CURRENT_DATE AS Today /* @param */\n"

    with pytest.raises(TemplateError, match="CURRENT_DATE AS Today"):
        parameterize(text)


@pytest.mark.parametrize(
    "expression",
    ["abc1", "'a' || 'b'", "x.5", "CAST('7' AS INTEGER) + 1"],
)
def test_marker_after_partial_literal_is_rejected(expression: str) -> None:
    text = f"SELECT\n    1 AS Good /* @param */\n    ,{expression} AS Foo /* @param */\n"

    with pytest.raises(TemplateError, match="AS Foo"):
        parameterize(text)


def test_parameterize_file_reads_from_directory(tmp_path: Path) -> None:
    (tmp_path / "example.sql").write_text("SELECT 10 AS HereLimit /* @param */;\n", encoding="utf-8")

    result = parameterize_file(tmp_path, "example.sql")

    assert result.parameters == ("HereLimit",)
    assert result.body == "SELECT :HereLimit AS HereLimit;\n"


def test_parameterize_file_wraps_missing_file(tmp_path: Path) -> None:
    with pytest.raises(TemplateError, match="missing.sql") as excinfo:
        parameterize_file(tmp_path, "missing.sql")

    assert isinstance(excinfo.value.__cause__, OSError)
