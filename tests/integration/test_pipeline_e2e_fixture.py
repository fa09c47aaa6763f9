"""Integration tests chaining loading, parsing, resolution and output on fixture data."""

from __future__ import annotations

from pathlib import Path

import pytest

from admin_unit_mapping.cli import main
from admin_unit_mapping.errors import UnitNotFound
from admin_unit_mapping.pipeline import run_pipeline

LEGACY_SQL = """
INSERT INTO administrative_units_old (id, full_name, short_name) VALUES
  (5, 'Huyện', 'Huyện'),
  (8, 'Xã', 'Xã'),
  (10, 'Thị trấn', 'Thị trấn');
INSERT INTO provinces (code, name, full_name) VALUES
  ('75', 'Đồng Nai', 'Tỉnh Đồng Nai');
INSERT INTO districts (code, name, full_name, province_code, administrative_unit_id) VALUES
  ('740', 'Long Thành', 'Huyện Long Thành', '75', 5),
  ('741', 'Nhơn Trạch', 'Huyện Nhơn Trạch', '75', 5);
INSERT INTO wards (code, name, full_name, district_code, administrative_unit_id) VALUES
  ('26001', 'Phú Thành', 'Xã Phú Thành', '740', 8),
  ('26002', 'Phú Thành', 'Xã Phú Thành', '741', 8),
  ('26003', 'Long Thành', 'Thị trấn Long Thành', '740', 10),
  ('26005', 'Tân Hòa', 'Xã Tân Hòa', '740', 8);
"""

REFORM_SQL = """
INSERT INTO administrative_units (id, full_name, short_name) VALUES
  (8, 'Xã', 'Xã');
INSERT INTO province_after_communes (code, name, full_name) VALUES
  ('75', 'Đồng Nai', 'Tỉnh Đồng Nai');
INSERT INTO wards_after_communes (code, name, full_name, province_code, administrative_unit_id) VALUES
  ('30001', 'Phú Thành', 'Xã Phú Thành', '75', 8),
  ('30002', 'Long Thành', 'Xã Long Thành', '75', 8);
"""

RESOLUTION_TEXT = """NGHỊ QUYẾT
Về việc sắp xếp các đơn vị hành chính cấp xã của tỉnh Đồng Nai
Điều 1. Sắp xếp các đơn vị hành chính cấp xã
1. Sắp xếp toàn bộ diện tích tự nhiên, quy mô dân số của xã Phú Thành (huyện Nhơn Trạch) và xã Tân Hòa thành xã mới có tên gọi là xã Phú Thành.
2. Sắp xếp toàn bộ diện tích tự nhiên, quy mô dân số của thị trấn Long Thành và xã Phú Thành thành xã mới có tên gọi là xã Long Thành.
Điều 2. Ủy ban nhân dân tỉnh Đồng Nai có trách nhiệm hoàn thành việc sắp xếp.
"""


def _write_fixture(tmp_path: Path) -> tuple[Path, Path, Path]:
    legacy = tmp_path / "legacy.sql"
    legacy.write_text(LEGACY_SQL, encoding="utf-8")
    reform = tmp_path / "reform.sql"
    reform.write_text(REFORM_SQL, encoding="utf-8")
    document = tmp_path / "Dong_Nai.txt"
    document.write_text(RESOLUTION_TEXT, encoding="utf-8")
    return legacy, reform, document


def test_pipeline_maps_every_source_once(tmp_path: Path) -> None:
    """Two clauses over same-named wards resolve to four distinct legacy codes."""

    legacy, reform, document = _write_fixture(tmp_path)

    result = run_pipeline(legacy, reform, [document])

    assert [(row.old_ward_code, row.old_district_code, row.new_commune_code) for row in result.rows] == [
        ("26002", "741", "30001"),
        ("26005", "740", "30001"),
        ("26003", "740", "30002"),
        ("26001", "740", "30002"),
    ]
    assert {row.resolution_ref for row in result.rows} == {"Dong_Nai"}

    (document_result,) = result.documents
    assert document_result.clause_count == 2
    assert document_result.report.discarded_fragments == 1
    assert [item.selected_codes for item in document_result.report.backtracked] == [("26003", "26001")]
    assert [item.parent_name for item in document_result.report.parent_fallbacks] == ["Nhơn Trạch"]


def test_pipeline_stops_on_unresolvable_document(tmp_path: Path) -> None:
    legacy, reform, _ = _write_fixture(tmp_path)
    broken = tmp_path / "broken.txt"
    broken.write_text("Sắp xếp xã Không Có thành xã Phú Thành.\n", encoding="utf-8")

    with pytest.raises(UnitNotFound, match="Legacy unit not found"):
        run_pipeline(legacy, reform, [broken])


def test_pipeline_keep_going_records_failures(tmp_path: Path) -> None:
    legacy, reform, document = _write_fixture(tmp_path)
    broken = tmp_path / "broken.txt"
    broken.write_text("Sắp xếp xã Không Có thành xã Phú Thành.\n", encoding="utf-8")

    result = run_pipeline(legacy, reform, [broken, document], keep_going=True)

    assert [item.resolution_ref for item in result.documents] == ["Dong_Nai"]
    assert len(result.rows) == 4
    assert [(item.resolution_ref, item.error_type) for item in result.failures] == [("broken", "UnitNotFound")]


def test_cli_writes_sql_and_report(tmp_path: Path) -> None:
    legacy, reform, document = _write_fixture(tmp_path)
    output = tmp_path / "out" / "mappings.sql"
    output.parent.mkdir()

    exit_code = main(
        [
            "--legacy",
            str(legacy),
            "--reform",
            str(reform),
            "--resolution",
            str(document),
            "--resolution-ref",
            "NQ-1678",
            "--output",
            str(output),
            "--log-level",
            "WARNING",
        ]
    )

    assert exit_code == 0
    sql = output.read_text(encoding="utf-8")
    assert sql.startswith("INSERT INTO vn_admin_unit_mappings (")
    assert "  ('75', '741', '26002', '75', '30001', " in sql
    assert sql.count("'NQ-1678'") == 4
    assert sql.endswith(";\n")

    report = (output.parent / "report.md").read_text(encoding="utf-8")
    assert "Total mapping rows: 4" in report
    assert "| NQ-1678 | 2 | 4 | 1 | 1 |" in report


def test_cli_reports_failed_documents(tmp_path: Path) -> None:
    legacy, reform, _ = _write_fixture(tmp_path)
    broken = tmp_path / "broken.txt"
    broken.write_text("Sắp xếp xã Không Có thành xã Phú Thành.\n", encoding="utf-8")
    output = tmp_path / "mappings.sql"
    report = tmp_path / "summary.md"

    exit_code = main(
        [
            "--legacy",
            str(legacy),
            "--reform",
            str(reform),
            "--resolution",
            str(broken),
            "--output",
            str(output),
            "--report",
            str(report),
            "--keep-going",
        ]
    )

    assert exit_code == 1
    assert output.read_text(encoding="utf-8") == ""
    assert "| broken | UnitNotFound |" in report.read_text(encoding="utf-8")
