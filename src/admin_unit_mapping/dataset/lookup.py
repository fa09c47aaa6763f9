"""Read-only lookup indices over ward records."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from admin_unit_mapping.models import LegacyDataset, ReformDataset, WardRecord
from admin_unit_mapping.normalize import exact_key

DISTRICT_KEY_SEPARATOR = "::"


def make_district_key(normalized_district: str, normalized_name: str) -> str:
    """Compose the district-qualified key ``district::ward``."""

    return f"{normalized_district}{DISTRICT_KEY_SEPARATOR}{normalized_name}"


def _add(index: dict[str, list[WardRecord]], key: str, ward: WardRecord) -> None:
    if not key:
        return
    bucket = index.setdefault(key, [])
    if any(existing.code == ward.code for existing in bucket):
        return
    bucket.append(ward)


def _freeze(index: dict[str, list[WardRecord]]) -> dict[str, tuple[WardRecord, ...]]:
    return {key: tuple(records) for key, records in index.items()}


@dataclass(frozen=True)
class WardLookup:
    """Indices from names to the (non-unique) wards carrying them.

    Each index is built lazily once and cached. A ward appears at most once per
    key even if it is inserted twice; empty keys are never indexed. The
    district-qualified index is empty for reform datasets whose wards have no
    district.
    """

    wards: tuple[WardRecord, ...]

    @cached_property
    def by_exact_name(self) -> dict[str, tuple[WardRecord, ...]]:
        """Spelling-preserving key (NFC, lower-case) -> wards."""

        index: dict[str, list[WardRecord]] = {}
        for ward in self.wards:
            _add(index, exact_key(ward.name), ward)
        return _freeze(index)

    @cached_property
    def by_name(self) -> dict[str, tuple[WardRecord, ...]]:
        """Normalized bare name -> wards."""

        index: dict[str, list[WardRecord]] = {}
        for ward in self.wards:
            _add(index, ward.normalized_name, ward)
        return _freeze(index)

    @cached_property
    def by_full_name(self) -> dict[str, tuple[WardRecord, ...]]:
        """Normalized full name (type noun + name) -> wards."""

        index: dict[str, list[WardRecord]] = {}
        for ward in self.wards:
            _add(index, ward.normalized_full_name, ward)
        return _freeze(index)

    @cached_property
    def by_district_name(self) -> dict[str, tuple[WardRecord, ...]]:
        """``normalized district::normalized name`` -> wards."""

        index: dict[str, list[WardRecord]] = {}
        for ward in self.wards:
            if not ward.normalized_district_name or not ward.normalized_name:
                continue
            _add(index, make_district_key(ward.normalized_district_name, ward.normalized_name), ward)
        return _freeze(index)

    def exact(self, name: str) -> tuple[WardRecord, ...]:
        return self.by_exact_name.get(exact_key(name), ())

    def named(self, normalized_name: str) -> tuple[WardRecord, ...]:
        return self.by_name.get(normalized_name, ())

    def full_named(self, normalized_full_name: str) -> tuple[WardRecord, ...]:
        return self.by_full_name.get(normalized_full_name, ())

    def in_district(self, normalized_district: str, normalized_name: str) -> tuple[WardRecord, ...]:
        return self.by_district_name.get(make_district_key(normalized_district, normalized_name), ())


def build_legacy_lookup(dataset: LegacyDataset) -> WardLookup:
    return WardLookup(wards=dataset.wards)


def build_reform_lookup(dataset: ReformDataset) -> WardLookup:
    return WardLookup(wards=dataset.wards)
