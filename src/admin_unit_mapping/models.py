"""Data models shared by the loaders, clause parser and mapping resolver.

Records are immutable value objects. Parents are referenced by code rather than
by object identity so datasets and lookups can be shared read-only across every
document processed in one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AdministrativeUnitKind(str, Enum):
    """Closed set of administrative unit kinds recognized by the engine."""

    COMMUNE = "xa"
    TOWNSHIP = "thi_tran"
    WARD = "phuong"
    RURAL_DISTRICT = "huyen"
    DISTRICT_TOWN = "thi_xa"
    PROVINCIAL_CITY = "thanh_pho"
    URBAN_DISTRICT = "quan"
    UNKNOWN = "khac"

    @property
    def alias(self) -> str:
        """Vietnamese type noun used when composing full-name lookup keys."""

        return _KIND_ALIASES[self]


_KIND_ALIASES = {
    AdministrativeUnitKind.COMMUNE: "xã",
    AdministrativeUnitKind.TOWNSHIP: "thị trấn",
    AdministrativeUnitKind.WARD: "phường",
    AdministrativeUnitKind.RURAL_DISTRICT: "huyện",
    AdministrativeUnitKind.DISTRICT_TOWN: "thị xã",
    AdministrativeUnitKind.PROVINCIAL_CITY: "thành phố",
    AdministrativeUnitKind.URBAN_DISTRICT: "quận",
    AdministrativeUnitKind.UNKNOWN: "",
}


class ParentKind(str, Enum):
    """Kind of the parent unit named by a clause reference."""

    RURAL_DISTRICT = "huyen"
    DISTRICT_TOWN = "thi_xa"
    PROVINCIAL_CITY = "thanh_pho"
    URBAN_DISTRICT = "quan"
    PROVINCE = "tinh"

    @property
    def targets_district(self) -> bool:
        """Whether the parent name should be compared with a ward's district.

        ``thành phố`` is ambiguous (provincial city or centrally governed city),
        so it is treated as a district here and the matcher also accepts a
        province match for it.
        """

        return self is not ParentKind.PROVINCE


@dataclass(frozen=True)
class AdministrativeUnitDefinition:
    """Row of an ``administrative_units`` table with its resolved kind."""

    id: str
    short_name: str
    full_name: str
    normalized_short_name: str
    kind: AdministrativeUnitKind


@dataclass(frozen=True)
class ProvinceRecord:
    code: str
    name: str
    normalized_name: str
    full_name: str


@dataclass(frozen=True)
class DistrictRecord:
    code: str
    province_code: str
    province_name: str
    normalized_province_name: str
    name: str
    normalized_name: str
    full_name: str
    administrative_unit_id: str


@dataclass(frozen=True)
class WardRecord:
    """Ward-level unit (xã, phường, thị trấn, đặc khu) from either dataset.

    Reform wards frequently have no district; ``district_code == ""`` means the
    unit has no district, which is different from a district that could not be
    determined.
    """

    code: str
    name: str
    normalized_name: str
    full_name: str
    normalized_full_name: str
    district_code: str
    district_name: str
    normalized_district_name: str
    province_code: str
    province_name: str
    normalized_province_name: str
    administrative_unit_id: str
    kind: AdministrativeUnitKind

    def describe(self) -> str:
        """Render the record for diagnostics: full name, district, province, code."""

        parents = ", ".join(part for part in (self.district_name, self.province_name) if part)
        return f"{self.full_name} ({parents}) [{self.code}]"


@dataclass(frozen=True)
class LegacyDataset:
    """Pre-reform units: provinces, districts and wards."""

    unit_types: dict[str, AdministrativeUnitDefinition]
    provinces: tuple[ProvinceRecord, ...]
    districts: tuple[DistrictRecord, ...]
    wards: tuple[WardRecord, ...]


@dataclass(frozen=True)
class ReformDataset:
    """Post-reform units: provinces and wards (districts are dissolved)."""

    unit_types: dict[str, AdministrativeUnitDefinition]
    provinces: tuple[ProvinceRecord, ...]
    wards: tuple[WardRecord, ...]


@dataclass(frozen=True)
class UnitReference:
    """One unit as written in a clause.

    ``parent_locked`` marks a parent taken from an explicit parenthetical;
    ``parent_inherited`` marks a parent copied from a neighbouring reference.
    """

    raw: str
    name: str
    normalized_name: str
    kind: AdministrativeUnitKind | None = None
    parent_name: str | None = None
    normalized_parent_name: str | None = None
    parent_kind: ParentKind | None = None
    parent_locked: bool = False
    parent_inherited: bool = False


@dataclass(frozen=True)
class ResolutionSource(UnitReference):
    """Legacy unit merged, renamed or split by a clause."""


@dataclass(frozen=True)
class ResolutionTarget(UnitReference):
    """Reform unit a clause's sources become."""


@dataclass(frozen=True)
class ResolutionClause:
    sources: tuple[ResolutionSource, ...]
    target: ResolutionTarget
    note: str
    resolution_ref: str


@dataclass(frozen=True)
class MappingRow:
    old_province_code: str
    old_district_code: str
    old_ward_code: str
    new_province_code: str
    new_commune_code: str
    note: str
    resolution_ref: str


@dataclass(frozen=True)
class ProvinceHint:
    """Province a document is known to concern; either field may be absent."""

    code: str | None = None
    normalized_name: str | None = None

    def matches(self, record: WardRecord) -> bool:
        if self.code and record.province_code == self.code:
            return True
        return bool(self.normalized_name) and record.normalized_province_name == self.normalized_name


@dataclass(frozen=True)
class ProvinceHints:
    legacy: ProvinceHint | None = None
    reform: ProvinceHint | None = None


@dataclass(frozen=True)
class BacktrackedClause:
    """Report item for a clause whose sources needed the assignment search."""

    resolution_ref: str
    note: str
    sources: tuple[str, ...]
    selected_codes: tuple[str, ...]


@dataclass(frozen=True)
class ParentFallback:
    """Report item for a parent filter that was ignored because it matched nothing."""

    resolution_ref: str
    reference: str
    parent_name: str
    note: str


@dataclass(frozen=True)
class ResolutionReport:
    """Diagnostics captured while parsing and resolving one document.

    Lists are appended in processing order; report builders sort them later
    for deterministic output.
    """

    backtracked: tuple[BacktrackedClause, ...] = field(default_factory=tuple)
    parent_fallbacks: tuple[ParentFallback, ...] = field(default_factory=tuple)
    discarded_fragments: int = 0


@dataclass(frozen=True)
class DocumentResult:
    """Outcome of one resolution document that resolved completely."""

    resolution_ref: str
    source_path: str
    clause_count: int
    rows: tuple[MappingRow, ...]
    report: ResolutionReport


@dataclass(frozen=True)
class DocumentFailure:
    """A document skipped because a fatal error stopped its resolution."""

    resolution_ref: str
    source_path: str
    error_type: str
    message: str
