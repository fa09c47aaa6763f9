"""Candidate collection and filtering for clause references.

Collection widens in stages (see :class:`SearchStage`). Filtering applies the
hard filters first (unit kind, parent name) and then a chain of soft
narrowing steps that never reduce a non-empty set to nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Callable, Iterable, Sequence

from admin_unit_mapping.dataset.lookup import WardLookup
from admin_unit_mapping.models import ParentKind, ProvinceHint, UnitReference, WardRecord
from admin_unit_mapping.normalize import exact_key, normalize_name, strip_tone_marks

logger = logging.getLogger(__name__)

ADMIN_PREFIX_RE = re.compile(r"^(?:thanh pho|tinh|quan|huyen|thi xa|thi tran|phuong|xa)\s+")
MAX_PREFIX_STRIPS = 5


class SearchStage(Enum):
    """Widening stages of candidate collection."""

    STRICT = "strict"
    WIDENED = "widened"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class MatchContext:
    """Everything a filter pass may narrow by besides the reference itself.

    Attributes:
        context_records: Records resolved earlier in the clause and document
            (or, for a destination, the clause's resolved sources).
        province_hint: Province the document is known to concern.
        recent_province_codes: Provinces of the previous clause.
        parent_fallback: Whether an emptying parent filter may be ignored.
    """

    context_records: tuple[WardRecord, ...] = ()
    province_hint: ProvinceHint | None = None
    recent_province_codes: frozenset[str] = frozenset()
    parent_fallback: bool = True


@dataclass(frozen=True)
class FilterOutcome:
    candidates: tuple[WardRecord, ...]
    parent_ignored: bool = False


def strip_administrative_prefixes(value: str) -> str:
    """Drop leading normalized type nouns (``"thanh pho"``, ``"huyen"``...)."""

    result = value
    for _ in range(MAX_PREFIX_STRIPS):
        stripped = ADMIN_PREFIX_RE.sub("", result).strip()
        if stripped == result:
            break
        result = stripped
    return result


def matches_administrative_name(value: str | None, parent_name: str) -> bool:
    """Compare a record's normalized district/province name with a parent name.

    ``"thanh pho ho chi minh"`` matches ``"ho chi minh"`` and vice versa.
    """

    if not value:
        return False
    if value == parent_name:
        return True
    return strip_administrative_prefixes(value) == strip_administrative_prefixes(parent_name)


def parent_matches(candidate: WardRecord, reference: UnitReference) -> bool:
    """Whether ``candidate`` lies under the parent named by ``reference``.

    District-kind parents are compared with the district, ``tỉnh`` with the
    province, and ``thành phố`` or an untyped parent with both. A candidate
    without a district cannot contradict a district parent and passes.
    """

    parent_name = reference.normalized_parent_name
    if not parent_name:
        return True

    kind = reference.parent_kind
    in_district = matches_administrative_name(candidate.normalized_district_name, parent_name)
    in_province = matches_administrative_name(candidate.normalized_province_name, parent_name)
    if kind is not None and not kind.targets_district:
        return in_province
    if kind is None or kind is ParentKind.PROVINCIAL_CITY:
        return in_district or in_province or not candidate.normalized_district_name
    return in_district or not candidate.normalized_district_name


def full_name_key(reference: UnitReference) -> str | None:
    """Normalized ``<type noun> <name>`` key, or ``None`` when the kind is unknown."""

    if reference.kind is None or not reference.kind.alias:
        return None
    return normalize_name(f"{reference.kind.alias} {reference.name}")


def _collect(groups: Iterable[Sequence[WardRecord]], excluded_codes: frozenset[str]) -> tuple[WardRecord, ...]:
    seen: dict[str, WardRecord] = {}
    for group in groups:
        for record in group:
            if record.code not in excluded_codes and record.code not in seen:
                seen[record.code] = record
    return tuple(seen.values())


def collect_candidates(
    reference: UnitReference,
    lookup: WardLookup,
    stage: SearchStage,
    excluded_codes: frozenset[str] = frozenset(),
) -> tuple[WardRecord, ...]:
    """Query the lookup indices allowed at ``stage``.

    STRICT queries the exact spelling and the district-qualified key; WIDENED
    adds the full-name and normalized-name indices. Order is first-seen,
    deduplicated by code.

    Args:
        reference: Source or destination being resolved.
        lookup: Indices of the dataset on the matching side.
        stage: Widening stage; EXHAUSTED collects nothing.
        excluded_codes: Codes that may not be returned.

    Returns:
        Unfiltered candidates.
    """

    if stage is SearchStage.EXHAUSTED:
        return ()

    groups: list[Sequence[WardRecord]] = [lookup.exact(reference.name)]
    if stage is SearchStage.WIDENED:
        full_key = full_name_key(reference)
        if full_key:
            groups.append(lookup.full_named(full_key))
        groups.append(lookup.named(reference.normalized_name))
    if reference.normalized_parent_name:
        groups.append(lookup.in_district(reference.normalized_parent_name, reference.normalized_name))
    return _collect(groups, excluded_codes)


def estimate_candidate_count(reference: UnitReference, lookup: WardLookup) -> int:
    """Size of the union of every lookup for ``reference``, without filters."""

    return len(collect_candidates(reference, lookup, SearchStage.WIDENED))


def _narrow(records: tuple[WardRecord, ...], predicate: Callable[[WardRecord], bool]) -> tuple[WardRecord, ...]:
    """Keep the records matching ``predicate`` unless none do."""

    narrowed = tuple(record for record in records if predicate(record))
    return narrowed or records


def prefer_provinces(records: tuple[WardRecord, ...], province_codes: frozenset[str]) -> tuple[WardRecord, ...]:
    if not province_codes or len(records) <= 1:
        return records
    return _narrow(records, lambda record: record.province_code in province_codes)


def apply_province_hint(records: tuple[WardRecord, ...], hint: ProvinceHint | None) -> tuple[WardRecord, ...]:
    if hint is None or len(records) <= 1:
        return records
    if not hint.code and not hint.normalized_name:
        return records
    return _narrow(records, hint.matches)


def narrow_by_context(
    records: tuple[WardRecord, ...],
    context_records: Sequence[WardRecord],
    hint: ProvinceHint | None = None,
) -> tuple[WardRecord, ...]:
    """Narrow to the province footprint of ``context_records``, then to its districts.

    The district step only runs while more than one record remains. Records
    without a district pass the district step unchanged.
    """

    if not context_records:
        return records

    province_codes = {record.province_code for record in context_records}
    province_names = {record.normalized_province_name for record in context_records}
    if hint is not None and hint.code:
        province_codes.add(hint.code)
    if hint is not None and hint.normalized_name:
        province_names.add(hint.normalized_name)
    narrowed = _narrow(
        records,
        lambda record: record.province_code in province_codes or record.normalized_province_name in province_names,
    )

    if len(narrowed) > 1:
        district_codes = {record.district_code for record in context_records if record.district_code}
        district_names = {record.normalized_district_name for record in context_records if record.normalized_district_name}
        if district_codes or district_names:
            narrowed = _narrow(
                narrowed,
                lambda record: not (record.district_code or record.normalized_district_name)
                or record.district_code in district_codes
                or record.normalized_district_name in district_names,
            )
    return narrowed


def break_spelling_tie(records: tuple[WardRecord, ...], reference: UnitReference) -> tuple[WardRecord, ...]:
    """Prefer records spelled like the reference once tones are ignored, then exactly."""

    if len(records) <= 1:
        return records
    wanted = exact_key(reference.name)
    toneless = strip_tone_marks(wanted)
    narrowed = _narrow(records, lambda record: strip_tone_marks(exact_key(record.name)) == toneless)
    return _narrow(narrowed, lambda record: exact_key(record.name) == wanted)


def may_ignore_parent(reference: UnitReference) -> bool:
    """A parent written next to the reference itself in parentheses is binding."""

    return not (reference.parent_locked and not reference.parent_inherited)


def filter_candidates(
    candidates: Sequence[WardRecord],
    reference: UnitReference,
    context: MatchContext,
    apply_kind: bool = True,
) -> FilterOutcome:
    """Apply kind, parent and soft narrowing filters to ``candidates``.

    Args:
        candidates: Output of :func:`collect_candidates`.
        reference: Source or destination being resolved.
        context: Records and hints to narrow by.
        apply_kind: Whether to require ``candidate.kind == reference.kind``.

    Returns:
        The surviving candidates and whether the parent filter was ignored
        because no candidate matched it.
    """

    filtered = tuple(candidates)
    if apply_kind and reference.kind is not None:
        filtered = tuple(record for record in filtered if record.kind == reference.kind)

    parent_ignored = False
    if reference.normalized_parent_name:
        by_parent = tuple(record for record in filtered if parent_matches(record, reference))
        if not by_parent and filtered and context.parent_fallback and may_ignore_parent(reference):
            parent_ignored = True
        else:
            filtered = by_parent

    filtered = prefer_provinces(filtered, context.recent_province_codes)
    filtered = apply_province_hint(filtered, context.province_hint)
    filtered = narrow_by_context(filtered, context.context_records, context.province_hint)
    filtered = break_spelling_tie(filtered, reference)
    return FilterOutcome(candidates=filtered, parent_ignored=parent_ignored)


def search_candidates(
    reference: UnitReference,
    lookup: WardLookup,
    context: MatchContext,
    excluded_codes: frozenset[str] = frozenset(),
    apply_kind: bool = True,
) -> FilterOutcome:
    """Collect and filter candidates, widening until exactly one remains.

    A STRICT result is only accepted when it is unique and honoured the parent
    filter; otherwise WIDENED is tried and its result returned as is, which
    may hold zero, one or several candidates.
    """

    stage = SearchStage.STRICT
    outcome = FilterOutcome(candidates=())
    while stage is not SearchStage.EXHAUSTED:
        collected = collect_candidates(reference, lookup, stage, excluded_codes)
        outcome = filter_candidates(collected, reference, context, apply_kind)
        logger.debug(
            "%s %s: %d collected, %d after filters",
            reference.raw,
            stage.value,
            len(collected),
            len(outcome.candidates),
        )
        if stage is SearchStage.STRICT and len(outcome.candidates) == 1 and not outcome.parent_ignored:
            return outcome
        stage = SearchStage.WIDENED if stage is SearchStage.STRICT else SearchStage.EXHAUSTED
    return outcome
