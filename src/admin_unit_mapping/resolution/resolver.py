"""Map parsed clauses to legacy and reform records.

Clauses are folded in document order. Each step receives the immutable
:class:`ResolutionState` produced by the previous clause and returns a new one
holding the accumulated rows, the document-wide resolved records and the
provinces of the clause just handled.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Sequence

from admin_unit_mapping.config import ResolverSettings
from admin_unit_mapping.dataset.lookup import WardLookup
from admin_unit_mapping.errors import (
    AmbiguousUnitError,
    ClauseUnresolvable,
    SearchBudgetExceeded,
    UnitNotFound,
)
from admin_unit_mapping.models import (
    BacktrackedClause,
    MappingRow,
    ParentFallback,
    ProvinceHints,
    ResolutionClause,
    ResolutionReport,
    ResolutionSource,
    UnitReference,
    WardRecord,
)
from admin_unit_mapping.resolution.assignment import Assignment, find_best_assignment
from admin_unit_mapping.resolution.matcher import (
    FilterOutcome,
    MatchContext,
    SearchStage,
    estimate_candidate_count,
    search_candidates,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ResolutionResult",
    "ResolutionState",
    "SearchStage",
    "order_sources",
    "resolve_clause",
    "resolve_clauses",
    "resolve_target",
]


@dataclass(frozen=True)
class ResolutionState:
    """Context threaded from one clause to the next.

    Attributes:
        resolved_records: Legacy records resolved so far in the document.
        recent_province_codes: Provinces of the previous clause's sources.
        rows: Mapping rows emitted so far.
        backtracked: Clauses that needed the assignment search.
        parent_fallbacks: References whose parent filter was ignored.
    """

    resolved_records: tuple[WardRecord, ...] = ()
    recent_province_codes: frozenset[str] = frozenset()
    rows: tuple[MappingRow, ...] = ()
    backtracked: tuple[BacktrackedClause, ...] = ()
    parent_fallbacks: tuple[ParentFallback, ...] = ()

    @property
    def resolved_codes(self) -> frozenset[str]:
        return frozenset(record.code for record in self.resolved_records)


@dataclass(frozen=True)
class ResolutionResult:
    rows: tuple[MappingRow, ...]
    report: ResolutionReport


def order_sources(
    sources: Sequence[ResolutionSource],
    lookup: WardLookup,
) -> tuple[tuple[int, ResolutionSource], ...]:
    """Order sources so the least ambiguous are resolved first.

    Sort key: parent known first, fewer estimated candidates, kind known
    first, original position.

    Returns:
        ``(original_position, source)`` pairs in resolution order.
    """

    return tuple(
        sorted(
            enumerate(sources),
            key=lambda item: (
                item[1].normalized_parent_name is None,
                estimate_candidate_count(item[1], lookup),
                item[1].kind is None,
                item[0],
            ),
        )
    )


def _fallback_entry(clause: ResolutionClause, reference: UnitReference) -> ParentFallback:
    logger.warning(
        "Parent '%s' of %s matched no candidate in %s; parent filter ignored",
        reference.parent_name,
        reference.raw,
        clause.resolution_ref,
    )
    return ParentFallback(
        resolution_ref=clause.resolution_ref,
        reference=reference.raw,
        parent_name=reference.parent_name or "",
        note=clause.note,
    )


def _raise_tied_assignment(
    clause: ResolutionClause,
    pending: Sequence[tuple[int, ResolutionSource]],
    assignment: Assignment,
) -> None:
    """Report the first source whose record differs between equally scored assignments."""

    alternatives = (assignment, *assignment.ties)
    for index, (_, source) in enumerate(pending):
        records: dict[str, WardRecord] = {}
        for alternative in alternatives:
            records.setdefault(alternative.records[index].code, alternative.records[index])
        if len(records) > 1:
            raise AmbiguousUnitError(
                f'Ambiguous legacy unit for "{source.raw}".',
                clause.note,
                source.raw,
                tuple(records.values()),
            )

    # Unreachable: tied code sets differ at some position.
    raise AmbiguousUnitError(
        "Several assignments of the clause's sources are equally good.",
        clause.note,
        candidates=[record for alternative in alternatives for record in alternative.records],
    )


def _backtrack(
    clause: ResolutionClause,
    pending: Sequence[tuple[int, ResolutionSource]],
    resolved: dict[int, WardRecord],
    state: ResolutionState,
    lookup: WardLookup,
    hints: ProvinceHints,
    settings: ResolverSettings,
) -> tuple[dict[int, WardRecord], list[ParentFallback]]:
    """Resolve the still-ambiguous sources jointly with distinct codes."""

    clause_records = tuple(resolved.values())
    excluded = frozenset(record.code for record in clause_records) | state.resolved_codes
    context = MatchContext(
        context_records=clause_records + state.resolved_records,
        province_hint=hints.legacy,
        recent_province_codes=state.recent_province_codes,
        parent_fallback=settings.parent_filter_fallback,
    )

    fallbacks: list[ParentFallback] = []
    candidate_sets: list[tuple[WardRecord, ...]] = []
    for _, source in pending:
        outcome = search_candidates(source, lookup, context, excluded)
        if not outcome.candidates:
            outcome = search_candidates(source, lookup, context, excluded, apply_kind=False)
        if not outcome.candidates:
            raise ClauseUnresolvable(
                f'No candidate left for "{source.raw}" during assignment search.',
                clause.note,
                source.raw,
            )
        if outcome.parent_ignored:
            fallbacks.append(_fallback_entry(clause, source))
        candidate_sets.append(outcome.candidates)

    try:
        assignment = find_best_assignment(
            candidate_sets,
            excluded_codes=excluded,
            hint=hints.legacy,
            max_nodes=settings.max_search_nodes,
        )
    except SearchBudgetExceeded as exc:
        raise ClauseUnresolvable(
            f"Assignment search gave up after {settings.max_search_nodes} nodes ({exc}).",
            clause.note,
            candidates=[record for candidates in candidate_sets for record in candidates],
        ) from exc

    if assignment is None:
        raise ClauseUnresolvable(
            "No assignment maps every source to a distinct legacy unit.",
            clause.note,
            candidates=[record for candidates in candidate_sets for record in candidates],
        )

    if assignment.is_ambiguous:
        _raise_tied_assignment(clause, pending, assignment)

    merged = dict(resolved)
    for (position, _), record in zip(pending, assignment.records):
        merged[position] = record
    return merged, fallbacks


def resolve_sources(
    clause: ResolutionClause,
    state: ResolutionState,
    lookup: WardLookup,
    hints: ProvinceHints,
    settings: ResolverSettings,
) -> tuple[tuple[WardRecord, ...], list[ParentFallback], bool]:
    """Resolve every source of ``clause`` to one distinct legacy record.

    Returns:
        Records aligned with ``clause.sources``, parent fallbacks that fired,
        and whether the assignment search was needed.

    Raises:
        UnitNotFound: If a source has no candidate at all.
        ClauseUnresolvable: If the ambiguous sources admit no assignment.
        AmbiguousUnitError: If two assignments with different codes score
            equally.
    """

    resolved: dict[int, WardRecord] = {}
    fallbacks: list[ParentFallback] = []
    pending = list(order_sources(clause.sources, lookup))

    while pending:
        deferred: list[tuple[int, ResolutionSource]] = []
        for position, source in pending:
            clause_records = tuple(resolved.values())
            context = MatchContext(
                context_records=clause_records + state.resolved_records,
                province_hint=hints.legacy,
                recent_province_codes=state.recent_province_codes,
                parent_fallback=settings.parent_filter_fallback,
            )
            excluded = frozenset(record.code for record in clause_records)
            outcome: FilterOutcome = search_candidates(source, lookup, context, excluded)
            if not outcome.candidates:
                raise UnitNotFound(f'Legacy unit not found for "{source.raw}".', clause.note, source.raw)
            if len(outcome.candidates) == 1:
                resolved[position] = outcome.candidates[0]
                if outcome.parent_ignored:
                    fallbacks.append(_fallback_entry(clause, source))
            else:
                deferred.append((position, source))

        if len(deferred) == len(pending):
            break
        pending = deferred

    backtracked = bool(pending)
    if pending:
        logger.debug("Backtracking over %d ambiguous sources in: %s", len(pending), clause.note)
        resolved, extra = _backtrack(clause, pending, resolved, state, lookup, hints, settings)
        fallbacks.extend(extra)

    records = tuple(resolved[position] for position in range(len(clause.sources)))
    return records, fallbacks, backtracked


def resolve_target(
    clause: ResolutionClause,
    source_records: Sequence[WardRecord],
    lookup: WardLookup,
    hints: ProvinceHints,
    settings: ResolverSettings,
) -> tuple[WardRecord, ParentFallback | None]:
    """Resolve the clause destination against the reform dataset.

    Candidates are narrowed by the province and district footprint of the
    clause's resolved sources and the reform province hint.

    Raises:
        UnitNotFound: If nothing matches the destination.
        AmbiguousUnitError: If several reform units remain.
    """

    target = clause.target
    context = MatchContext(
        context_records=tuple(source_records),
        province_hint=hints.reform,
        parent_fallback=settings.parent_filter_fallback,
    )
    outcome = search_candidates(target, lookup, context)
    if not outcome.candidates:
        raise UnitNotFound(f'Reform unit not found for "{target.raw}".', clause.note, target.raw)
    if len(outcome.candidates) > 1:
        raise AmbiguousUnitError(
            f'Ambiguous reform unit for "{target.raw}".',
            clause.note,
            target.raw,
            outcome.candidates,
        )
    fallback = _fallback_entry(clause, target) if outcome.parent_ignored else None
    return outcome.candidates[0], fallback


def resolve_clause(
    clause: ResolutionClause,
    state: ResolutionState,
    legacy_lookup: WardLookup,
    reform_lookup: WardLookup,
    province_hints: ProvinceHints | None = None,
    settings: ResolverSettings | None = None,
) -> ResolutionState:
    """Resolve one clause and return the state for the next one.

    Nothing of the clause reaches the returned state unless every source and
    the destination resolved.
    """

    hints = province_hints or ProvinceHints()
    settings = settings or ResolverSettings()

    source_records, fallbacks, backtracked = resolve_sources(clause, state, legacy_lookup, hints, settings)
    target_record, target_fallback = resolve_target(clause, source_records, reform_lookup, hints, settings)
    if target_fallback is not None:
        fallbacks.append(target_fallback)

    rows = tuple(
        MappingRow(
            old_province_code=record.province_code,
            old_district_code=record.district_code,
            old_ward_code=record.code,
            new_province_code=target_record.province_code,
            new_commune_code=target_record.code,
            note=clause.note,
            resolution_ref=clause.resolution_ref,
        )
        for record in source_records
    )

    backtracked_entries = state.backtracked
    if backtracked:
        backtracked_entries += (
            BacktrackedClause(
                resolution_ref=clause.resolution_ref,
                note=clause.note,
                sources=tuple(source.raw for source in clause.sources),
                selected_codes=tuple(record.code for record in source_records),
            ),
        )

    return replace(
        state,
        resolved_records=state.resolved_records + source_records,
        recent_province_codes=frozenset(record.province_code for record in source_records),
        rows=state.rows + rows,
        backtracked=backtracked_entries,
        parent_fallbacks=state.parent_fallbacks + tuple(fallbacks),
    )


def resolve_clauses(
    clauses: Sequence[ResolutionClause],
    legacy_lookup: WardLookup,
    reform_lookup: WardLookup,
    province_hints: ProvinceHints | None = None,
    settings: ResolverSettings | None = None,
) -> ResolutionResult:
    """Resolve a document's clauses in order into mapping rows.

    Args:
        clauses: Clauses in document order.
        legacy_lookup: Indices over the pre-reform wards.
        reform_lookup: Indices over the post-reform wards.
        province_hints: Optional province the document concerns.
        settings: Resolver tunables.

    Returns:
        All rows in clause order plus the diagnostics report.

    Raises:
        ResolutionError: On the first clause that cannot be resolved; no rows
            are returned for the document in that case.
    """

    state = ResolutionState()
    for clause in clauses:
        state = resolve_clause(clause, state, legacy_lookup, reform_lookup, province_hints, settings)

    report = ResolutionReport(backtracked=state.backtracked, parent_fallbacks=state.parent_fallbacks)
    return ResolutionResult(rows=state.rows, report=report)
