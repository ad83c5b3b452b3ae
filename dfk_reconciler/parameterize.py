"""Turn runnable example SQL files into named-parameter statements.

Each query file declares its inputs as literal values in a leading CTE, tagged
with a trailing marker comment:

    WITH variables AS (
        SELECT
            date('2025-04-01') AS DateFrom   /* @param */
            ,'^(53|55|57)' AS AccountCodes   /* @param */
            ,'raw string' AS RawString
    )

Run as-is, the file is a normal query with example values. Parameterized, the
tagged literals become sqlite named parameters and the names are collected in
order of appearance:

    WITH variables AS (
        SELECT
            :DateFrom AS DateFrom
            ,:AccountCodes AS AccountCodes
            ,'raw string' AS RawString
    )
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from importlib.resources.abc import Traversable
from pathlib import Path

from .errors import TemplateError

PARAM_MARKER = "/* @param */"

_PARAM_ATOMS = (
    r"(?:date\('[^']+'\))",  # date('2026-03-31')
    r"(?:[a-zA-Z_]\w*\([^)]*\))",  # any_func(...)
    r"(?:'[^']*')",  # 'a string' or ''
    r"(?:-?\d*\.?\d+)",  # 123 or 1.23 or -5
    r"(?:null)",
)

_PARAM_PATTERN = re.compile(
    # A literal must open its select item, so the tail of a longer expression
    # never matches on its own.
    r"(?P<lead>(?:^|,|\bSELECT\b)\s*)"
    r"(?P<value>" + "|".join(_PARAM_ATOMS) + r")"
    r"(?P<as>\s+AS\s+)"
    r"(?P<param>[A-Za-z0-9_]+)"
    r"(?P<end>\s+/\* @param \*/)",
    re.MULTILINE,
)


@dataclass(frozen=True)
class ParameterizedTemplate:
    body: str
    parameters: tuple[str, ...]

    def __str__(self) -> str:
        return f"Params: {', '.join(self.parameters)}\nBody:   {self.body}"


def _unmatched_marker_line(text: str, matches: list[re.Match[str]]) -> str | None:
    consumed = {match.end("end") for match in matches}
    for marker in re.finditer(re.escape(PARAM_MARKER), text):
        if marker.end() not in consumed:
            line_start = text.rfind("\n", 0, marker.start()) + 1
            line_end = text.find("\n", marker.end())
            return text[line_start : line_end if line_end != -1 else len(text)].strip()
    return None


def parameterize(text: str) -> ParameterizedTemplate:
    matches = list(_PARAM_PATTERN.finditer(text))
    if not matches:
        raise TemplateError("parameterize: no parameters found")

    bad_line = _unmatched_marker_line(text, matches)
    if bad_line is not None:
        raise TemplateError(f"parameterize: unsupported parameter literal in {bad_line!r}")

    body = _PARAM_PATTERN.sub(r"\g<lead>:\g<param>\g<as>\g<param>", text)
    return ParameterizedTemplate(
        body=body,
        parameters=tuple(match.group("param") for match in matches),
    )


def parameterize_file(source: Path | Traversable, file_name: str) -> ParameterizedTemplate:
    """Read ``file_name`` from a directory or package resource and parameterize it."""

    try:
        text = source.joinpath(file_name).read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"could not read query template {file_name!r}: {exc}") from exc

    try:
        return parameterize(text)
    except TemplateError as exc:
        raise TemplateError(f"query template {file_name!r}: {exc}") from exc
