"""Unit tests for the merger clause parser."""

from __future__ import annotations

import pytest

from admin_unit_mapping.errors import ClauseParseError
from admin_unit_mapping.models import AdministrativeUnitKind, ParentKind, ResolutionSource
from admin_unit_mapping.resolution.parser import (
    cleanup_name,
    parse_resolution_document,
    parse_resolution_text,
    parse_source_token,
    propagate_parent_context,
    split_top_level,
)


def _source(name: str, kind: AdministrativeUnitKind | None = AdministrativeUnitKind.COMMUNE, **parent) -> ResolutionSource:
    return ResolutionSource(raw=name, name=name, normalized_name=name.lower(), kind=kind, **parent)


def test_parse_resolution_text_extracts_sources_and_target() -> None:
    """A standard merger sentence should yield typed sources and a cleaned target."""

    text = (
        "1. Sắp xếp toàn bộ diện tích tự nhiên, quy mô dân số của các xã Phú Thành, "
        "Tân Hòa và thị trấn Long Điền thành xã mới có tên gọi là xã Long Điền."
    )

    clauses = parse_resolution_text(text, "NQ-1")

    assert len(clauses) == 1
    clause = clauses[0]
    assert [source.name for source in clause.sources] == ["Phú Thành", "Tân Hòa", "Long Điền"]
    assert [source.kind for source in clause.sources] == [
        AdministrativeUnitKind.COMMUNE,
        AdministrativeUnitKind.COMMUNE,
        AdministrativeUnitKind.TOWNSHIP,
    ]
    assert clause.sources[1].raw == "xã Tân Hòa"
    assert clause.target.name == "Long Điền"
    assert clause.target.kind is AdministrativeUnitKind.COMMUNE
    assert clause.resolution_ref == "NQ-1"
    assert clause.note.startswith("Sắp xếp")


def test_parse_resolution_text_keeps_document_order() -> None:
    text = "\n".join(
        [
            "Điều 1. Sắp xếp các đơn vị hành chính cấp xã",
            "a) Sắp xếp xã An Bình và xã An Hòa thành xã An Bình.",
            "b) Sáp nhập phường 1, phường 2 thành phường Tân An.",
        ]
    )

    clauses = parse_resolution_text(text, "NQ-2")

    assert [clause.target.name for clause in clauses] == ["An Bình", "Tân An"]
    assert [source.name for source in clauses[1].sources] == ["1", "2"]
    assert all(source.kind is AdministrativeUnitKind.WARD for source in clauses[1].sources)


def test_parse_resolution_document_counts_discarded_fragments() -> None:
    """Fragments mentioning "thành" without a merger shape are skipped and counted."""

    text = (
        "Ủy ban nhân dân tỉnh hoàn thành việc sắp xếp. "
        "Sắp xếp xã A Lưới và xã Hồng Kim thành xã A Lưới 1. "
        "Nghị quyết này có hiệu lực thi hành kể từ ngày ký."
    )

    parsed = parse_resolution_document(text, "NQ-3")

    assert len(parsed.clauses) == 1
    assert parsed.discarded_fragments == 1
    assert parsed.clauses[0].target.name == "A Lưới 1"


def test_parse_resolution_text_discards_clause_without_sources() -> None:
    assert parse_resolution_text("Thành xã Long Điền.", "NQ-4") == ()


def test_parse_resolution_text_rejects_empty_target_name() -> None:
    with pytest.raises(ClauseParseError, match="Empty destination name"):
        parse_resolution_text("Sắp xếp xã Tân Hòa thành xã.", "NQ-5")


def test_untyped_tokens_inherit_preceding_type() -> None:
    """Type nouns propagate forward until another explicit type appears."""

    text = "Sắp xếp xã Tân Hòa, Tân Lập, phường Bình Minh và Hòa Bình thành phường Bình Minh."

    clause = parse_resolution_text(text, "NQ-6")[0]

    assert [(source.name, source.kind) for source in clause.sources] == [
        ("Tân Hòa", AdministrativeUnitKind.COMMUNE),
        ("Tân Lập", AdministrativeUnitKind.COMMUNE),
        ("Bình Minh", AdministrativeUnitKind.WARD),
        ("Hòa Bình", AdministrativeUnitKind.WARD),
    ]


def test_parenthetical_parent_is_locked_and_propagates() -> None:
    text = "Sắp xếp xã Phú Thành (huyện Long Thành) và xã Tân Hòa thành xã Phú Thành."

    sources = parse_resolution_text(text, "NQ-7")[0].sources

    assert sources[0].parent_name == "Long Thành"
    assert sources[0].normalized_parent_name == "long thanh"
    assert sources[0].parent_kind is ParentKind.RURAL_DISTRICT
    assert sources[0].parent_locked
    assert not sources[0].parent_inherited
    assert sources[1].parent_name == "Long Thành"
    assert sources[1].parent_locked
    assert sources[1].parent_inherited


def test_thuoc_suffix_gives_unlocked_parent_propagated_backward() -> None:
    text = "Nhập xã Bình An, xã Bình Hòa thuộc thị xã Dĩ An thành phường Bình An."

    sources = parse_resolution_text(text, "NQ-8")[0].sources

    assert [source.name for source in sources] == ["Bình An", "Bình Hòa"]
    assert sources[1].parent_kind is ParentKind.DISTRICT_TOWN
    assert not sources[1].parent_locked
    assert sources[0].parent_name == "Dĩ An"
    assert sources[0].parent_inherited


def test_parenthetical_aside_is_not_a_parent() -> None:
    text = "Sắp xếp xã Tân Hòa (cũ) và xã Tân Lập thành xã Tân Hòa."

    sources = parse_resolution_text(text, "NQ-9")[0].sources

    assert sources[0].name == "Tân Hòa"
    assert sources[0].parent_name is None


def test_split_top_level_ignores_separators_inside_parentheses() -> None:
    assert split_top_level("xã A (thuộc huyện X, tỉnh Y), xã B; xã C") == [
        "xã A (thuộc huyện X, tỉnh Y)",
        "xã B",
        "xã C",
    ]


def test_parse_source_token_discards_bare_type_and_cross_reference() -> None:
    source, kind, _ = parse_source_token("xã", None)
    assert source is None
    assert kind is AdministrativeUnitKind.COMMUNE

    source, kind, _ = parse_source_token("khoản 2 Điều này", AdministrativeUnitKind.WARD)
    assert source is None
    assert kind is AdministrativeUnitKind.WARD


def test_parse_source_token_strips_remaining_part_prefix() -> None:
    source, _, _ = parse_source_token(
        "phần còn lại của xã Tân Hòa sau khi đã sắp xếp theo quy định tại khoản 1 Điều này",
        None,
    )

    assert source is not None
    assert source.name == "Tân Hòa"
    assert source.kind is AdministrativeUnitKind.COMMUNE


def test_propagation_stops_at_type_mismatch() -> None:
    sources = (
        _source("A"),
        _source("B", kind=AdministrativeUnitKind.WARD, parent_name="Y", normalized_parent_name="y"),
    )

    propagated = propagate_parent_context(sources)

    assert propagated[0].parent_name is None
    assert propagated[1].parent_name == "Y"


def test_locked_context_replaces_inherited_unlocked_parent() -> None:
    """A locked parent met on the backward pass wins over a forward-inherited unlocked one."""

    sources = (
        _source("A", parent_name="Y", normalized_parent_name="y"),
        _source("B"),
        _source("C", parent_name="X", normalized_parent_name="x", parent_locked=True),
    )

    propagated = propagate_parent_context(sources)

    assert propagated[0].parent_name == "Y"
    assert propagated[1].parent_name == "X"
    assert propagated[1].parent_locked
    assert propagated[2].parent_name == "X"


def test_own_parent_is_never_replaced() -> None:
    sources = (
        _source("A", parent_name="Y", normalized_parent_name="y"),
        _source("B", parent_name="X", normalized_parent_name="x", parent_locked=True),
    )

    propagated = propagate_parent_context(sources)

    assert propagated == sources


def test_cleanup_name_removes_lead_ins_and_qualifiers() -> None:
    assert cleanup_name("mới có tên gọi là xã Long Điền") == "Long Điền"
    assert cleanup_name('"Tân Hòa" cũ') == "Tân Hòa"
    assert cleanup_name("đặc khu Phú Quốc") == "Phú Quốc"
    assert cleanup_name("Bình Minh hiện nay") == "Bình Minh"
    assert cleanup_name("Tân Hòa theo quy định tại khoản 1") == "Tân Hòa"
    assert cleanup_name("Quan Sơn") == "Quan Sơn"
