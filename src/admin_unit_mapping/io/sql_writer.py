"""SQL serialization of mapping rows."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from admin_unit_mapping.models import MappingRow

MAPPING_TABLE = "vn_admin_unit_mappings"
MAPPING_COLUMNS = [
    "old_province_code",
    "old_district_code",
    "old_ward_code",
    "new_province_code",
    "new_commune_code",
    "note",
    "resolution_ref",
]


def quote_sql(value: str) -> str:
    """Render ``value`` as a single-quoted SQL literal with quotes doubled."""

    return "'" + value.replace("'", "''") + "'"


def build_insert_statement(rows: Sequence[MappingRow]) -> str:
    """Build one bulk ``INSERT`` statement for ``rows``.

    Args:
        rows: Mapping rows in output order.

    Returns:
        The statement, or an empty string when ``rows`` is empty.
    """

    if not rows:
        return ""

    value_lines = []
    for row in rows:
        values = [
            row.old_province_code,
            row.old_district_code,
            row.old_ward_code,
            row.new_province_code,
            row.new_commune_code,
            row.note,
            row.resolution_ref,
        ]
        value_lines.append("  (" + ", ".join(quote_sql(value) for value in values) + ")")

    column_lines = ",\n".join(f"  {column}" for column in MAPPING_COLUMNS)
    return "\n".join(
        [
            f"INSERT INTO {MAPPING_TABLE} (",
            column_lines,
            ")",
            "VALUES",
            ",\n".join(value_lines) + ";",
        ]
    )


def write_sql(rows: Sequence[MappingRow], output_path: Path) -> None:
    """Write the ``INSERT`` statement for ``rows`` to ``output_path``.

    An empty row list writes an empty file.
    """

    statement = build_insert_statement(rows)
    with output_path.open("w", encoding="utf-8") as handle:
        handle.write(statement)
        if statement:
            handle.write("\n")
