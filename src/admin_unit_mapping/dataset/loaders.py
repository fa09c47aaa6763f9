"""Build legacy and reform datasets from parsed SQL rows.

Rows are validated strictly: a missing required column raises
``MissingFieldError`` and a dangling foreign key raises
``MissingReferenceError``. The only tolerated gap is an unknown
``administrative_unit_id``, which yields ``AdministrativeUnitKind.UNKNOWN``.
"""

from __future__ import annotations

from typing import Iterable, Mapping, TypeVar

from admin_unit_mapping.dataset.sql_parser import parse_insert_rows
from admin_unit_mapping.errors import MissingFieldError, MissingReferenceError
from admin_unit_mapping.models import (
    AdministrativeUnitDefinition,
    AdministrativeUnitKind,
    DistrictRecord,
    LegacyDataset,
    ProvinceRecord,
    ReformDataset,
    WardRecord,
)
from admin_unit_mapping.normalize import normalize_name

Row = Mapping[str, "str | None"]
T = TypeVar("T", ProvinceRecord, DistrictRecord)

KIND_MAP = {
    "thi tran": AdministrativeUnitKind.TOWNSHIP,
    "xa": AdministrativeUnitKind.COMMUNE,
    "phuong": AdministrativeUnitKind.WARD,
    "quan": AdministrativeUnitKind.URBAN_DISTRICT,
    "huyen": AdministrativeUnitKind.RURAL_DISTRICT,
    "thi xa": AdministrativeUnitKind.DISTRICT_TOWN,
    "thi xa bien gioi": AdministrativeUnitKind.DISTRICT_TOWN,
    "thanh pho": AdministrativeUnitKind.PROVINCIAL_CITY,
    "thanh pho thuoc tinh": AdministrativeUnitKind.PROVINCIAL_CITY,
    "thanh pho truc thuoc trung uong": AdministrativeUnitKind.PROVINCIAL_CITY,
}

LEGACY_TABLES = {
    "unit_types": "administrative_units_old",
    "provinces": "provinces",
    "districts": "districts",
    "wards": "wards",
}
REFORM_TABLES = {
    "unit_types": "administrative_units",
    "provinces": ("province_after_communes", "provinces"),
    "wards": ("wards_after_communes", "wards"),
}


def resolve_kind_from_short_name(normalized_short_name: str) -> AdministrativeUnitKind:
    """Map a normalized unit-type short name to a kind.

    Lookup table first, then a ``"thanh pho"`` substring fallback, then
    ``UNKNOWN``. The fallback is lossy on purpose: anything unrecognized is
    excluded from kind filtering rather than guessed.
    """

    kind = KIND_MAP.get(normalized_short_name)
    if kind is not None:
        return kind
    if "thanh pho" in normalized_short_name:
        return AdministrativeUnitKind.PROVINCIAL_CITY
    return AdministrativeUnitKind.UNKNOWN


def _require(row: Row, column: str, label: str) -> str:
    value = row.get(column)
    if value is None:
        raise MissingFieldError(f"Missing value for {label}.{column} in row {dict(row)}")
    return value


def _index_by_code(records: Iterable[T]) -> dict[str, T]:
    return {record.code: record for record in records}


def build_unit_types(rows: Iterable[Row], label: str = "administrative_units") -> dict[str, AdministrativeUnitDefinition]:
    """Build the ``administrative_unit_id -> definition`` index."""

    unit_types: dict[str, AdministrativeUnitDefinition] = {}
    for row in rows:
        unit_id = _require(row, "id", label)
        short_name = row.get("short_name") or row.get("short_name_en") or row.get("full_name")
        if short_name is None:
            raise MissingFieldError(f"Missing value for {label}.short_name in row {dict(row)}")
        normalized_short_name = normalize_name(short_name)
        unit_types[unit_id] = AdministrativeUnitDefinition(
            id=unit_id,
            short_name=short_name,
            full_name=row.get("full_name") or short_name,
            normalized_short_name=normalized_short_name,
            kind=resolve_kind_from_short_name(normalized_short_name),
        )
    return unit_types


def build_provinces(rows: Iterable[Row], label: str = "provinces") -> tuple[ProvinceRecord, ...]:
    provinces: list[ProvinceRecord] = []
    for row in rows:
        name = _require(row, "name", label)
        provinces.append(
            ProvinceRecord(
                code=_require(row, "code", label),
                name=name,
                normalized_name=normalize_name(name),
                full_name=row.get("full_name") or name,
            )
        )
    return tuple(provinces)


def _kind_for(unit_types: Mapping[str, AdministrativeUnitDefinition], unit_id: str) -> AdministrativeUnitKind:
    definition = unit_types.get(unit_id)
    return definition.kind if definition is not None else AdministrativeUnitKind.UNKNOWN


def build_legacy_dataset(
    unit_type_rows: Iterable[Row],
    province_rows: Iterable[Row],
    district_rows: Iterable[Row],
    ward_rows: Iterable[Row],
) -> LegacyDataset:
    """Assemble the pre-reform dataset from already-extracted rows.

    Raises:
        MissingFieldError: If a required column is absent or ``NULL``.
        MissingReferenceError: If a district or ward points at an unknown parent.
    """

    unit_types = build_unit_types(unit_type_rows, LEGACY_TABLES["unit_types"])
    provinces = build_provinces(province_rows)
    province_index = _index_by_code(provinces)

    districts: list[DistrictRecord] = []
    for row in district_rows:
        code = _require(row, "code", "districts")
        province_code = _require(row, "province_code", "districts")
        province = province_index.get(province_code)
        if province is None:
            raise MissingReferenceError(f"Unknown province {province_code} referenced by district {code}")
        name = _require(row, "name", "districts")
        districts.append(
            DistrictRecord(
                code=code,
                province_code=province_code,
                province_name=province.name,
                normalized_province_name=province.normalized_name,
                name=name,
                normalized_name=normalize_name(name),
                full_name=row.get("full_name") or name,
                administrative_unit_id=_require(row, "administrative_unit_id", "districts"),
            )
        )
    district_index = _index_by_code(districts)

    wards: list[WardRecord] = []
    for row in ward_rows:
        code = _require(row, "code", "wards")
        district_code = _require(row, "district_code", "wards")
        district = district_index.get(district_code)
        if district is None:
            raise MissingReferenceError(f"Unknown district {district_code} referenced by ward {code}")
        province = province_index[district.province_code]
        name = _require(row, "name", "wards")
        full_name = row.get("full_name") or name
        unit_id = _require(row, "administrative_unit_id", "wards")
        wards.append(
            WardRecord(
                code=code,
                name=name,
                normalized_name=normalize_name(name),
                full_name=full_name,
                normalized_full_name=normalize_name(full_name),
                district_code=district_code,
                district_name=district.name,
                normalized_district_name=district.normalized_name,
                province_code=province.code,
                province_name=province.name,
                normalized_province_name=province.normalized_name,
                administrative_unit_id=unit_id,
                kind=_kind_for(unit_types, unit_id),
            )
        )

    return LegacyDataset(
        unit_types=unit_types,
        provinces=provinces,
        districts=tuple(districts),
        wards=tuple(wards),
    )


def build_reform_dataset(
    unit_type_rows: Iterable[Row],
    province_rows: Iterable[Row],
    ward_rows: Iterable[Row],
) -> ReformDataset:
    """Assemble the post-reform dataset from already-extracted rows.

    ``district_code`` and ``district_name`` are optional for reform wards; when
    absent the ward has no district.
    """

    unit_types = build_unit_types(unit_type_rows, REFORM_TABLES["unit_types"])
    provinces = build_provinces(province_rows, "province_after_communes")
    province_index = _index_by_code(provinces)

    wards: list[WardRecord] = []
    for row in ward_rows:
        code = _require(row, "code", "wards_after_communes")
        province_code = _require(row, "province_code", "wards_after_communes")
        province = province_index.get(province_code)
        if province is None:
            raise MissingReferenceError(f"Unknown province {province_code} referenced by ward {code}")
        name = _require(row, "name", "wards_after_communes")
        full_name = row.get("full_name") or name
        unit_id = _require(row, "administrative_unit_id", "wards_after_communes")
        district_name = row.get("district_name") or ""
        wards.append(
            WardRecord(
                code=code,
                name=name,
                normalized_name=normalize_name(name),
                full_name=full_name,
                normalized_full_name=normalize_name(full_name),
                district_code=row.get("district_code") or "",
                district_name=district_name,
                normalized_district_name=normalize_name(district_name) if district_name else "",
                province_code=province_code,
                province_name=province.name,
                normalized_province_name=province.normalized_name,
                administrative_unit_id=unit_id,
                kind=_kind_for(unit_types, unit_id),
            )
        )

    return ReformDataset(unit_types=unit_types, provinces=provinces, wards=tuple(wards))


def _rows_with_fallback(sql: str, tables: tuple[str, ...]) -> list[dict[str, str | None]]:
    for table in tables:
        rows = parse_insert_rows(sql, table)
        if rows:
            return rows
    return []


def load_legacy_dataset(sql: str) -> LegacyDataset:
    """Parse a legacy SQL dump into a :class:`LegacyDataset`."""

    return build_legacy_dataset(
        unit_type_rows=parse_insert_rows(sql, LEGACY_TABLES["unit_types"]),
        province_rows=parse_insert_rows(sql, LEGACY_TABLES["provinces"]),
        district_rows=parse_insert_rows(sql, LEGACY_TABLES["districts"]),
        ward_rows=parse_insert_rows(sql, LEGACY_TABLES["wards"]),
    )


def load_reform_dataset(sql: str) -> ReformDataset:
    """Parse a reform SQL dump into a :class:`ReformDataset`.

    Raises:
        MissingFieldError: If the dump holds no ward rows in either ward table.
    """

    ward_rows = _rows_with_fallback(sql, REFORM_TABLES["wards"])
    if not ward_rows:
        raise MissingFieldError("No ward data found in reform dataset.")
    return build_reform_dataset(
        unit_type_rows=parse_insert_rows(sql, REFORM_TABLES["unit_types"]),
        province_rows=_rows_with_fallback(sql, REFORM_TABLES["provinces"]),
        ward_rows=ward_rows,
    )
