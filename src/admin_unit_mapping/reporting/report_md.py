"""Markdown report generation for mapping run summaries."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from admin_unit_mapping.models import DocumentFailure, DocumentResult
from admin_unit_mapping.validation import collect_province_counts, collect_target_counts


def _markdown_table(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    """Render a deterministic GitHub-flavored markdown table.

    Args:
        headers: Table header labels.
        rows: Table body rows as string sequences.

    Returns:
        Markdown table text.
    """

    line_header = "| " + " | ".join(headers) + " |"
    line_sep = "| " + " | ".join("---" for _ in headers) + " |"
    body = ["| " + " | ".join(_escape_cell(value) for value in row) + " |" for row in rows]
    return "\n".join([line_header, line_sep, *body])


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def _shorten(text: str, limit: int = 120) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_report_md(
    documents: Sequence[DocumentResult],
    failures: Sequence[DocumentFailure] = (),
) -> str:
    """Build the markdown report for one mapping run.

    Args:
        documents: Documents that resolved completely.
        failures: Documents skipped because of a fatal error.

    Returns:
        Full markdown content with summary tables.
    """

    rows = [row for document in documents for row in document.rows]

    document_rows = [
        (
            document.resolution_ref,
            str(document.clause_count),
            str(len(document.rows)),
            str(document.report.discarded_fragments),
            str(len(document.report.backtracked)),
        )
        for document in sorted(documents, key=lambda item: item.resolution_ref)
    ]

    province_counts = collect_province_counts(rows)
    province_rows = [(code, str(province_counts[code])) for code in sorted(province_counts)]

    merge_sizes = Counter(collect_target_counts(rows).values())
    merge_rows = [(str(size), str(merge_sizes[size])) for size in sorted(merge_sizes)]

    backtracked_rows = [
        (
            item.resolution_ref,
            ", ".join(item.sources),
            ", ".join(item.selected_codes),
            _shorten(item.note),
        )
        for document in documents
        for item in sorted(document.report.backtracked, key=lambda entry: (entry.resolution_ref, entry.note))
    ]

    fallback_rows = [
        (item.resolution_ref, item.reference, item.parent_name, _shorten(item.note))
        for document in documents
        for item in sorted(
            document.report.parent_fallbacks,
            key=lambda entry: (entry.resolution_ref, entry.reference, entry.note),
        )
    ]

    failure_rows = [
        (item.resolution_ref, item.error_type, _shorten(item.message.splitlines()[0] if item.message else ""))
        for item in sorted(failures, key=lambda entry: entry.resolution_ref)
    ]

    sections = [
        "# Mapping Report",
        "",
        f"Total mapping rows: {len(rows)}",
        "",
        "## Rows per resolution document",
        _markdown_table(["resolution_ref", "clauses", "rows", "discarded_fragments", "backtracked"], document_rows),
        "",
        "## Rows per new province",
        _markdown_table(["new_province_code", "row_count"], province_rows),
        "",
        "## Legacy units merged per new unit",
        _markdown_table(["legacy_units", "new_units"], merge_rows),
        "",
        "## Clauses resolved by assignment search",
        _markdown_table(["resolution_ref", "sources", "selected_codes", "clause"], backtracked_rows),
        "",
        "## Parent filters ignored",
        _markdown_table(["resolution_ref", "reference", "parent", "clause"], fallback_rows),
        "",
        "## Failed documents",
        _markdown_table(["resolution_ref", "error", "message"], failure_rows),
    ]

    return "\n".join(sections) + "\n"
