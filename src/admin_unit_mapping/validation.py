"""Validation helpers for mapping rows produced by the resolver."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from admin_unit_mapping.models import MappingRow

REQUIRED_CODE_FIELDS = (
    "old_province_code",
    "old_district_code",
    "old_ward_code",
    "new_province_code",
    "new_commune_code",
)
ERROR_PREVIEW_LIMIT = 25


def validate_mapping_rows(rows: Sequence[MappingRow]) -> None:
    """Validate mapping rows before they are written.

    Every code field and ``resolution_ref`` must be non-empty, and a
    ``(old_ward_code, new_commune_code, resolution_ref)`` triple may appear
    only once.

    Args:
        rows: Rows to validate.

    Raises:
        ValueError: If any row violates the constraints.
    """

    errors: list[str] = []
    seen: dict[tuple[str, str, str], int] = {}
    for idx, row in enumerate(rows, start=1):
        for field_name in REQUIRED_CODE_FIELDS:
            if not getattr(row, field_name).strip():
                errors.append(f"Row {idx}: empty {field_name}")
        if not row.resolution_ref.strip():
            errors.append(f"Row {idx}: empty resolution_ref")

        key = (row.old_ward_code, row.new_commune_code, row.resolution_ref)
        if key in seen:
            errors.append(
                f"Row {idx}: duplicate mapping {row.old_ward_code} -> {row.new_commune_code} "
                f"in {row.resolution_ref} (first seen at row {seen[key]})"
            )
        else:
            seen[key] = idx

    if errors:
        preview = "\n".join(f"- {item}" for item in errors[:ERROR_PREVIEW_LIMIT])
        rest = len(errors) - min(ERROR_PREVIEW_LIMIT, len(errors))
        more = f"\n- ... and {rest} more" if rest > 0 else ""
        raise ValueError(f"Mapping validation failed with {len(errors)} errors:\n{preview}{more}")


def collect_province_counts(rows: Sequence[MappingRow]) -> dict[str, int]:
    """Count rows by new province code.

    Args:
        rows: Mapping rows.

    Returns:
        Dictionary of new province code to row count.
    """

    counter: Counter[str] = Counter()
    for row in rows:
        counter[row.new_province_code] += 1
    return dict(counter)


def collect_target_counts(rows: Sequence[MappingRow]) -> dict[str, int]:
    """Count how many legacy wards each new commune absorbs."""

    counter: Counter[str] = Counter()
    for row in rows:
        counter[row.new_commune_code] += 1
    return dict(counter)
