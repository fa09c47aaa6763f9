"""Extraction of row dictionaries from bulk ``INSERT INTO ... VALUES`` dumps."""

from __future__ import annotations

import re

from admin_unit_mapping.errors import SqlParseError
from admin_unit_mapping.normalize import normalize_whitespace

NULL_RE = re.compile(r"^NULL$", re.IGNORECASE)
IDENTIFIER_QUOTES_RE = re.compile(r"[`\"\[\]]")


def _insert_re(table_name: str) -> re.Pattern[str]:
    return re.compile(
        rf"INSERT\s+INTO\s+[`\"]?{re.escape(table_name)}[`\"]?\s*\(([^)]+)\)\s*VALUES\s*",
        re.IGNORECASE,
    )


def _split_columns(column_list: str) -> list[str]:
    return [IDENTIFIER_QUOTES_RE.sub("", normalize_whitespace(column)) for column in column_list.split(",")]


def _scan_tuples(sql: str, start: int) -> tuple[list[str], int]:
    """Collect top-level parenthesized tuples until the terminating semicolon.

    Quoted strings are skipped as opaque spans, so parentheses, commas and
    semicolons inside names do not affect the scan.

    Args:
        sql: Full dump text.
        start: Offset just after the ``VALUES`` keyword.

    Returns:
        Tuple bodies (without the outer parentheses) and the offset after the
        statement terminator.
    """

    tuples: list[str] = []
    buf: list[str] = []
    depth = 0
    in_quotes = False
    idx = start
    while idx < len(sql):
        ch = sql[idx]
        if in_quotes:
            buf.append(ch)
            if ch == "'":
                if idx + 1 < len(sql) and sql[idx + 1] == "'":
                    buf.append("'")
                    idx += 1
                else:
                    in_quotes = False
        elif ch == "'":
            in_quotes = True
            buf.append(ch)
        elif ch == "(":
            if depth > 0:
                buf.append(ch)
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                tuples.append("".join(buf).strip())
                buf = []
            else:
                buf.append(ch)
        elif ch == ";" and depth == 0:
            return tuples, idx + 1
        elif depth > 0:
            buf.append(ch)
        idx += 1
    return tuples, idx


def _split_values(tuple_body: str) -> list[str | None]:
    """Split one tuple body into unquoted values, mapping ``NULL`` to ``None``."""

    values: list[str | None] = []
    buf: list[str] = []
    in_quotes = False
    was_quoted = False
    idx = 0
    while idx < len(tuple_body):
        ch = tuple_body[idx]
        if ch == "'":
            if in_quotes and idx + 1 < len(tuple_body) and tuple_body[idx + 1] == "'":
                buf.append("'")
                idx += 2
                continue
            if not in_quotes and not was_quoted:
                buf = []
            in_quotes = not in_quotes
            was_quoted = True
        elif ch == "," and not in_quotes:
            values.append(_sanitize_value("".join(buf), was_quoted))
            buf = []
            was_quoted = False
        elif in_quotes or not was_quoted:
            buf.append(ch)
        idx += 1
    values.append(_sanitize_value("".join(buf), was_quoted))
    return values


def _sanitize_value(value: str, was_quoted: bool) -> str | None:
    if was_quoted:
        return value
    value = value.strip()
    if NULL_RE.fullmatch(value):
        return None
    return value


def parse_insert_rows(sql: str, table_name: str) -> list[dict[str, str | None]]:
    """Parse every ``INSERT INTO <table_name>`` statement of a dump into rows.

    Args:
        sql: SQL dump text.
        table_name: Target table; other tables' inserts are ignored.

    Returns:
        Rows keyed by column name in source order. Unquoted ``NULL`` becomes
        ``None``; quoted values keep their text with ``''`` unescaped.

    Raises:
        SqlParseError: If a tuple's value count differs from the column list.
    """

    rows: list[dict[str, str | None]] = []
    pattern = _insert_re(table_name)
    position = 0
    while True:
        match = pattern.search(sql, position)
        if not match:
            break
        columns = _split_columns(match.group(1))
        tuple_bodies, position = _scan_tuples(sql, match.end())
        for body in tuple_bodies:
            values = _split_values(body)
            if len(values) != len(columns):
                raise SqlParseError(
                    f"Tuple column mismatch for table {table_name}: "
                    f"expected {len(columns)}, received {len(values)} in ({body})"
                )
            rows.append(dict(zip(columns, values)))
    return rows
