"""CLI entrypoint for building administrative-unit reform mappings."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from admin_unit_mapping.config import (
    DEFAULT_MAX_SEARCH_NODES,
    DEFAULT_OUTPUT_NAME,
    ResolverSettings,
    default_legacy_sql_path,
    default_reform_sql_path,
)
from admin_unit_mapping.io.sql_writer import write_sql
from admin_unit_mapping.logger import setup_logger
from admin_unit_mapping.pipeline import PipelineResult, run_pipeline
from admin_unit_mapping.reporting.report_md import build_report_md
from admin_unit_mapping.validation import collect_province_counts

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _format_table(headers: Sequence[str], data_rows: Sequence[Sequence[str]]) -> str:
    """Format rows as an ASCII table for terminal output.

    Args:
        headers: Table headers.
        data_rows: Row values.

    Returns:
        Monospace table string.
    """

    widths = [len(header) for header in headers]
    for row in data_rows:
        for idx, value in enumerate(row):
            widths[idx] = max(widths[idx], len(value))

    header_line = " | ".join(header.ljust(widths[idx]) for idx, header in enumerate(headers))
    separator_line = "-+-".join("-" * width for width in widths)
    body_lines = [
        " | ".join(value.ljust(widths[idx]) for idx, value in enumerate(row)) for row in data_rows
    ]
    return "\n".join([header_line, separator_line, *body_lines])


def build_arg_parser() -> argparse.ArgumentParser:
    """Construct CLI argument parser.

    Returns:
        Configured parser for the mapping command.
    """

    parser = argparse.ArgumentParser(
        description="Map pre-reform wards to post-reform units from merger resolutions into SQL."
    )
    parser.add_argument(
        "--legacy",
        type=Path,
        default=default_legacy_sql_path(),
        help="SQL dump of pre-reform provinces, districts and wards.",
    )
    parser.add_argument(
        "--reform",
        type=Path,
        default=default_reform_sql_path(),
        help="SQL dump of post-reform provinces and wards.",
    )
    parser.add_argument(
        "--resolution",
        required=True,
        type=Path,
        nargs="+",
        help="Resolution document(s), .txt or .pdf.",
    )
    parser.add_argument(
        "--resolution-ref",
        default=None,
        help="Reference stored on every row (default: each document's file stem).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(DEFAULT_OUTPUT_NAME),
        help="Destination SQL output path.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Markdown report output path (default: report.md next to the SQL file).",
    )
    parser.add_argument(
        "--max-search-nodes",
        type=int,
        default=DEFAULT_MAX_SEARCH_NODES,
        help="Node budget of the assignment search per clause.",
    )
    parser.add_argument(
        "--no-parent-fallback",
        action="store_true",
        help="Never ignore a parent filter that matches no candidate.",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Skip documents that fail instead of stopping.",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="INFO", help="Logging verbosity.")
    return parser


def _print_summary(result: PipelineResult) -> None:
    """Print per-document and per-province summary tables."""

    document_rows = [
        [document.resolution_ref, str(document.clause_count), str(len(document.rows))]
        for document in result.documents
    ]
    print("\nRows per resolution document:")
    print(_format_table(["resolution_ref", "clauses", "rows"], document_rows))

    province_counts = collect_province_counts(result.rows)
    province_rows = [[code, str(province_counts[code])] for code in sorted(province_counts)]
    print("\nRows per new province:")
    print(_format_table(["new_province_code", "row_count"], province_rows))

    if result.failures:
        print(f"\nWARNING: {len(result.failures)} document(s) failed:")
        for failure in result.failures:
            first_line = failure.message.splitlines()[0] if failure.message else ""
            print(f"- {failure.resolution_ref}: {failure.error_type}: {first_line}")


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI workflow from arguments through artifact generation.

    Returns:
        Zero exit status on success, one when any document failed.
    """

    parser = build_arg_parser()
    args = parser.parse_args(argv)
    setup_logger("admin_unit_mapping", getattr(logging, args.log_level))

    required_paths = [("Legacy SQL", args.legacy), ("Reform SQL", args.reform)]
    required_paths.extend(("Resolution", document) for document in args.resolution)
    for label, path in required_paths:
        if not path.exists():
            raise SystemExit(f"{label} not found: {path}")
    if args.max_search_nodes <= 0:
        raise SystemExit("--max-search-nodes must be positive")

    report_path = args.report if args.report is not None else args.output.parent / "report.md"
    settings = ResolverSettings(
        max_search_nodes=args.max_search_nodes,
        parent_filter_fallback=not args.no_parent_fallback,
    )

    result = run_pipeline(
        legacy_sql_path=args.legacy,
        reform_sql_path=args.reform,
        resolution_paths=args.resolution,
        resolution_ref=args.resolution_ref,
        settings=settings,
        keep_going=args.keep_going,
    )

    write_sql(result.rows, output_path=args.output)
    report_path.write_text(build_report_md(result.documents, result.failures), encoding="utf-8")

    print(f"Wrote {len(result.rows)} rows to {args.output}")
    print(f"Wrote report to {report_path}")
    _print_summary(result)
    return 1 if result.failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
