"""Injective assignment of ambiguous sources to distinct legacy records."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from admin_unit_mapping.errors import SearchBudgetExceeded
from admin_unit_mapping.models import ProvinceHint, WardRecord


@dataclass(frozen=True)
class Assignment:
    """One complete choice of records, aligned with the candidate sets.

    ``score`` orders assignments: fewer distinct provinces, then more hint
    matches, then fewer distinct districts. Lower is better. ``ties`` holds the
    other complete assignments reaching the same score with a different set of
    codes; permutations of the same codes are not ties.
    """

    records: tuple[WardRecord, ...]
    score: tuple[int, int, int]
    ties: tuple[Assignment, ...] = ()

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(record.code for record in self.records)

    @property
    def code_set(self) -> frozenset[str]:
        return frozenset(self.codes)

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.ties)


def score_records(records: Sequence[WardRecord], hint: ProvinceHint | None = None) -> tuple[int, int, int]:
    provinces = {record.province_code for record in records}
    districts = {record.district_code for record in records if record.district_code}
    hint_matches = sum(1 for record in records if hint is not None and hint.matches(record))
    return len(provinces), -hint_matches, len(districts)


def _offer(best: Assignment | None, candidate: Assignment) -> Assignment:
    """Keep the better of ``best`` and ``candidate``, collecting equal-score ties."""

    if best is None or candidate.score < best.score:
        return candidate
    if candidate.score > best.score:
        return best

    code_set = candidate.code_set
    if code_set == best.code_set or any(tie.code_set == code_set for tie in best.ties):
        return best
    return replace(best, ties=best.ties + (candidate,))


def _search(
    order: tuple[int, ...],
    candidate_sets: tuple[tuple[WardRecord, ...], ...],
    chosen: tuple[tuple[int, WardRecord], ...],
    used_codes: frozenset[str],
    best: Assignment | None,
    budget: int,
    hint: ProvinceHint | None,
) -> tuple[Assignment | None, int]:
    """Depth-first step; returns the best assignment so far and the remaining budget."""

    budget -= 1
    if budget < 0:
        raise SearchBudgetExceeded(f"assignment search exceeded its node budget at depth {len(chosen)}")

    if best is not None:
        partial_provinces = {record.province_code for _, record in chosen}
        if len(partial_provinces) > best.score[0]:
            return best, budget

    depth = len(chosen)
    if depth == len(order):
        by_position = dict(chosen)
        records = tuple(by_position[position] for position in range(len(candidate_sets)))
        return _offer(best, Assignment(records=records, score=score_records(records, hint))), budget

    position = order[depth]
    for record in candidate_sets[position]:
        if record.code in used_codes:
            continue
        best, budget = _search(
            order,
            candidate_sets,
            chosen + ((position, record),),
            used_codes | {record.code},
            best,
            budget,
            hint,
        )
    return best, budget


def find_best_assignment(
    candidate_sets: Sequence[Sequence[WardRecord]],
    excluded_codes: frozenset[str] = frozenset(),
    hint: ProvinceHint | None = None,
    max_nodes: int = 200_000,
) -> Assignment | None:
    """Pick one record per candidate set with all codes distinct.

    Sources with fewer candidates are assigned first. Among complete
    assignments the lowest :func:`score_records` wins. Every other complete
    assignment with that score and a different code set is kept in
    ``Assignment.ties``; callers must treat a tied result as ambiguous.

    Args:
        candidate_sets: One candidate tuple per unresolved source.
        excluded_codes: Codes already used elsewhere in the clause or document.
        hint: Legacy province hint counted by the score.
        max_nodes: Search-node budget.

    Returns:
        The best assignment, or ``None`` if no complete assignment exists.

    Raises:
        SearchBudgetExceeded: If more than ``max_nodes`` nodes are visited.
    """

    frozen_sets = tuple(tuple(candidates) for candidates in candidate_sets)
    if not frozen_sets or any(not candidates for candidates in frozen_sets):
        return None

    order = tuple(sorted(range(len(frozen_sets)), key=lambda position: (len(frozen_sets[position]), position)))
    best, _ = _search(order, frozen_sets, (), frozenset(excluded_codes), None, max_nodes, hint)
    return best
