"""Unit tests for candidate collection, filtering and the assignment search."""

from __future__ import annotations

import pytest

from admin_unit_mapping.dataset.lookup import WardLookup
from admin_unit_mapping.errors import SearchBudgetExceeded
from admin_unit_mapping.models import (
    AdministrativeUnitKind,
    ParentKind,
    ProvinceHint,
    ResolutionSource,
    WardRecord,
)
from admin_unit_mapping.normalize import normalize_name
from admin_unit_mapping.resolution.assignment import find_best_assignment, score_records
from admin_unit_mapping.resolution.matcher import (
    MatchContext,
    SearchStage,
    break_spelling_tie,
    collect_candidates,
    estimate_candidate_count,
    filter_candidates,
    matches_administrative_name,
    narrow_by_context,
    parent_matches,
    search_candidates,
)


def _ward(
    code: str,
    name: str,
    district: str = "Long Thành",
    province: str = "Đồng Nai",
    kind: AdministrativeUnitKind = AdministrativeUnitKind.COMMUNE,
    province_code: str = "75",
) -> WardRecord:
    return WardRecord(
        code=code,
        name=name,
        normalized_name=normalize_name(name),
        full_name=f"{kind.alias} {name}".strip(),
        normalized_full_name=normalize_name(f"{kind.alias} {name}"),
        district_code=normalize_name(district).replace(" ", "_") if district else "",
        district_name=district,
        normalized_district_name=normalize_name(district),
        province_code=province_code,
        province_name=province,
        normalized_province_name=normalize_name(province),
        administrative_unit_id="8",
        kind=kind,
    )


def _source(
    name: str,
    kind: AdministrativeUnitKind | None = AdministrativeUnitKind.COMMUNE,
    parent: str | None = None,
    parent_kind: ParentKind | None = None,
    locked: bool = False,
) -> ResolutionSource:
    return ResolutionSource(
        raw=f"xã {name}",
        name=name,
        normalized_name=normalize_name(name),
        kind=kind,
        parent_name=parent,
        normalized_parent_name=normalize_name(parent) if parent else None,
        parent_kind=parent_kind,
        parent_locked=locked,
    )


def test_collect_candidates_widens_by_stage() -> None:
    """STRICT only sees exact spelling; WIDENED adds normalized-name lookups."""

    lookup = WardLookup(wards=(_ward("1", "Tân Hòa"), _ward("2", "Tân Hoà", district="Nhơn Trạch")))
    source = _source("Tân Hòa")

    assert [ward.code for ward in collect_candidates(source, lookup, SearchStage.STRICT)] == ["1"]
    assert [ward.code for ward in collect_candidates(source, lookup, SearchStage.WIDENED)] == ["1", "2"]
    assert collect_candidates(source, lookup, SearchStage.EXHAUSTED) == ()
    assert [ward.code for ward in collect_candidates(source, lookup, SearchStage.WIDENED, frozenset({"1"}))] == ["2"]
    assert estimate_candidate_count(source, lookup) == 2


def test_matches_administrative_name_ignores_type_prefixes() -> None:
    assert matches_administrative_name("thanh pho ho chi minh", "ho chi minh")
    assert matches_administrative_name("ho chi minh", "thanh pho ho chi minh")
    assert not matches_administrative_name("", "ho chi minh")
    assert not matches_administrative_name("long thanh", "nhon trach")


def test_parent_matches_uses_district_or_province_by_parent_kind() -> None:
    ward = _ward("1", "Phú Thành", district="Long Thành", province="Đồng Nai")

    assert parent_matches(ward, _source("Phú Thành", parent="Long Thành", parent_kind=ParentKind.RURAL_DISTRICT))
    assert not parent_matches(ward, _source("Phú Thành", parent="Đồng Nai", parent_kind=ParentKind.RURAL_DISTRICT))
    assert parent_matches(ward, _source("Phú Thành", parent="Đồng Nai", parent_kind=ParentKind.PROVINCE))
    assert parent_matches(ward, _source("Phú Thành", parent="Đồng Nai"))
    assert parent_matches(ward, _source("Phú Thành", parent="Long Thành"))


def test_province_parent_never_matches_a_district_name() -> None:
    ward = _ward("1", "Phú Thành", district="Long Thành", province="Đồng Nai")

    assert not ParentKind.PROVINCE.targets_district
    assert all(kind.targets_district for kind in ParentKind if kind is not ParentKind.PROVINCE)
    assert not parent_matches(ward, _source("Phú Thành", parent="Long Thành", parent_kind=ParentKind.PROVINCE))
    assert not parent_matches(
        _ward("2", "Phú Thành", district=""),
        _source("Phú Thành", parent="Long Thành", parent_kind=ParentKind.PROVINCE),
    )


def test_parent_matches_accepts_wards_without_district_for_district_parent() -> None:
    ward = _ward("1", "Phú Thành", district="")

    assert parent_matches(ward, _source("Phú Thành", parent="Long Thành", parent_kind=ParentKind.RURAL_DISTRICT))


def test_filter_candidates_applies_kind_as_hard_filter() -> None:
    candidates = (
        _ward("1", "Long Thành", kind=AdministrativeUnitKind.TOWNSHIP),
        _ward("2", "Long Thành", kind=AdministrativeUnitKind.COMMUNE),
    )

    outcome = filter_candidates(candidates, _source("Long Thành", kind=AdministrativeUnitKind.TOWNSHIP), MatchContext())
    assert [ward.code for ward in outcome.candidates] == ["1"]

    outcome = filter_candidates(candidates, _source("Long Thành", kind=AdministrativeUnitKind.WARD), MatchContext())
    assert outcome.candidates == ()


def test_filter_candidates_ignores_unmatched_unlocked_parent_when_allowed() -> None:
    candidates = (_ward("1", "Tân Hòa", district="Long Thành"),)
    source = _source("Tân Hòa", parent="Trảng Bom", parent_kind=ParentKind.RURAL_DISTRICT)

    outcome = filter_candidates(candidates, source, MatchContext())
    assert outcome.parent_ignored
    assert [ward.code for ward in outcome.candidates] == ["1"]

    strict = filter_candidates(candidates, source, MatchContext(parent_fallback=False))
    assert strict.candidates == ()
    assert not strict.parent_ignored


def test_filter_candidates_never_ignores_own_parenthetical_parent() -> None:
    candidates = (_ward("1", "Tân Hòa", district="Long Thành"),)
    source = _source("Tân Hòa", parent="Trảng Bom", parent_kind=ParentKind.RURAL_DISTRICT, locked=True)

    outcome = filter_candidates(candidates, source, MatchContext())

    assert outcome.candidates == ()
    assert not outcome.parent_ignored


def test_soft_narrowing_never_empties_the_set() -> None:
    """Hints and context that match nothing leave the candidates unchanged."""

    candidates = (
        _ward("1", "Phú Thành", district="Long Thành"),
        _ward("2", "Phú Thành", district="Nhơn Trạch"),
    )
    context = MatchContext(
        context_records=(_ward("9", "An Bình", district="Ba Đình", province="Hà Nội", province_code="01"),),
        province_hint=ProvinceHint(code="01", normalized_name="ha noi"),
        recent_province_codes=frozenset({"01"}),
    )

    outcome = filter_candidates(candidates, _source("Phú Thành"), context)

    assert [ward.code for ward in outcome.candidates] == ["1", "2"]


def test_narrow_by_context_uses_province_then_district() -> None:
    candidates = (
        _ward("1", "Phú Thành", district="Long Thành"),
        _ward("2", "Phú Thành", district="Nhơn Trạch"),
        _ward("3", "Phú Thành", district="Cần Giờ", province="Hồ Chí Minh", province_code="79"),
    )
    context = (_ward("8", "Tân Hòa", district="Nhơn Trạch"),)

    assert [ward.code for ward in narrow_by_context(candidates, context)] == ["2"]


def test_narrow_by_context_keeps_candidates_without_district() -> None:
    candidates = (
        _ward("1", "Phú Thành", district=""),
        _ward("2", "Phú Thành", district="Nhơn Trạch"),
    )
    context = (_ward("8", "Tân Hòa", district="Long Thành"),)

    assert [ward.code for ward in narrow_by_context(candidates, context)] == ["1"]


def test_break_spelling_tie_prefers_same_letters_ignoring_tones() -> None:
    candidates = (_ward("1", "Hưng Thạnh"), _ward("2", "Hùng Thạnh", district="Nhơn Trạch"))

    assert [ward.code for ward in break_spelling_tie(candidates, _source("Hưng Thanh"))] == ["1"]
    assert [ward.code for ward in break_spelling_tie(candidates, _source("Hung Thanh"))] == ["2"]


def test_search_candidates_accepts_unique_strict_match() -> None:
    lookup = WardLookup(wards=(_ward("1", "Tân Hòa"), _ward("2", "Tân Hoà", district="Nhơn Trạch")))

    outcome = search_candidates(_source("Tân Hòa"), lookup, MatchContext())

    assert [ward.code for ward in outcome.candidates] == ["1"]


def test_search_candidates_widens_when_strict_finds_nothing() -> None:
    lookup = WardLookup(wards=(_ward("1", "Tân Hòa"),))

    outcome = search_candidates(_source("Tan Hoa"), lookup, MatchContext())

    assert [ward.code for ward in outcome.candidates] == ["1"]


def test_find_best_assignment_prefers_fewest_provinces() -> None:
    same_province = [_ward(str(code), "Tân Hòa", district=f"Huyện {code}") for code in (1, 2, 3)]
    other_province = _ward("4", "Tân Hòa", district="Cần Giờ", province="Hồ Chí Minh", province_code="79")
    candidates = (other_province, *same_province)

    assignment = find_best_assignment([candidates, candidates, candidates])

    assert assignment is not None
    assert sorted(assignment.codes) == ["1", "2", "3"]
    assert len(set(assignment.codes)) == 3
    assert assignment.score == (1, 0, 3)
    assert not assignment.is_ambiguous


def test_find_best_assignment_uses_hint_to_break_province_ties() -> None:
    in_hint = _ward("1", "Tân Hòa", province="Hồ Chí Minh", province_code="79")
    elsewhere = _ward("2", "Tân Hòa")

    assignment = find_best_assignment([(elsewhere, in_hint)], hint=ProvinceHint(code="79"))

    assert assignment is not None
    assert assignment.codes == ("1",)
    assert score_records([in_hint], ProvinceHint(code="79")) == (1, -1, 1)


def test_find_best_assignment_honours_excluded_codes_and_reports_none() -> None:
    first = _ward("1", "Tân Hòa")
    second = _ward("2", "Tân Hòa", district="Nhơn Trạch")

    assert find_best_assignment([(first, second), (first, second)], excluded_codes=frozenset({"1"})) is None
    assert find_best_assignment([(first,), ()]) is None


def test_find_best_assignment_fails_closed_on_node_budget() -> None:
    candidates = tuple(_ward(str(code), "Tân Hòa", district=f"Huyện {code}") for code in range(5))

    with pytest.raises(SearchBudgetExceeded):
        find_best_assignment([candidates, candidates, candidates], max_nodes=2)


def test_find_best_assignment_keeps_equal_scores_with_other_codes_as_ties() -> None:
    first = _ward("1", "Bình Minh", district="Trảng Bom")
    second = _ward("2", "Bình Minh", district="Cần Giờ", province="Hồ Chí Minh", province_code="79")

    assignment = find_best_assignment([(first, second)])

    assert assignment is not None
    assert assignment.is_ambiguous
    assert assignment.codes == ("1",)
    assert [tie.codes for tie in assignment.ties] == [("2",)]


def test_find_best_assignment_ignores_permutations_of_the_same_codes() -> None:
    """Swapping records between same-named sources is not a second answer."""

    candidates = tuple(_ward(str(code), "Tân Hòa", district=f"Huyện {code}") for code in (1, 2, 3))

    assignment = find_best_assignment([candidates, candidates, candidates])

    assert assignment is not None
    assert assignment.code_set == frozenset({"1", "2", "3"})
    assert assignment.ties == ()
