"""Top-level orchestration: datasets, documents, clauses, rows."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from pathlib import Path
from typing import Sequence

from admin_unit_mapping.config import ResolverSettings
from admin_unit_mapping.dataset.hints import derive_province_hints
from admin_unit_mapping.dataset.loaders import load_legacy_dataset, load_reform_dataset
from admin_unit_mapping.dataset.lookup import WardLookup, build_legacy_lookup, build_reform_lookup
from admin_unit_mapping.io.documents import read_resolution_text
from admin_unit_mapping.models import (
    DocumentFailure,
    DocumentResult,
    LegacyDataset,
    MappingRow,
    ReformDataset,
)
from admin_unit_mapping.resolution.parser import parse_resolution_document
from admin_unit_mapping.resolution.resolver import resolve_clauses
from admin_unit_mapping.validation import validate_mapping_rows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Result bundle returned by :func:`run_pipeline`.

    Attributes:
        documents: Documents that resolved completely, in input order.
        failures: Documents skipped under ``keep_going``.
    """

    documents: tuple[DocumentResult, ...]
    failures: tuple[DocumentFailure, ...] = ()

    @property
    def rows(self) -> tuple[MappingRow, ...]:
        return tuple(row for document in self.documents for row in document.rows)


def process_document(
    document_path: Path,
    legacy: LegacyDataset,
    reform: ReformDataset,
    legacy_lookup: WardLookup,
    reform_lookup: WardLookup,
    resolution_ref: str | None = None,
    settings: ResolverSettings | None = None,
) -> DocumentResult:
    """Parse and resolve one resolution document.

    Args:
        document_path: ``.txt`` or ``.pdf`` resolution document.
        legacy: Pre-reform dataset (for province hints).
        reform: Post-reform dataset (for province hints).
        legacy_lookup: Indices over ``legacy`` wards.
        reform_lookup: Indices over ``reform`` wards.
        resolution_ref: Reference stored on rows; defaults to the file stem.
        settings: Resolver tunables.

    Returns:
        Rows and diagnostics of the document.

    Raises:
        AdminMappingError: If a clause cannot be parsed or resolved.
        ValueError: If the produced rows fail validation.
    """

    ref = resolution_ref or document_path.stem
    raw_text = read_resolution_text(document_path)
    parsed = parse_resolution_document(raw_text, ref)
    hints = derive_province_hints(document_path, legacy.provinces, reform.provinces)
    if hints is not None:
        logger.debug("Province hints for %s: %s", ref, hints)

    result = resolve_clauses(parsed.clauses, legacy_lookup, reform_lookup, hints, settings)
    validate_mapping_rows(result.rows)
    logger.info(
        "%s: %d clauses -> %d rows (%d fragments discarded, %d clauses backtracked)",
        ref,
        len(parsed.clauses),
        len(result.rows),
        parsed.discarded_fragments,
        len(result.report.backtracked),
    )

    return DocumentResult(
        resolution_ref=ref,
        source_path=str(document_path),
        clause_count=len(parsed.clauses),
        rows=result.rows,
        report=replace(result.report, discarded_fragments=parsed.discarded_fragments),
    )


def run_pipeline(
    legacy_sql_path: Path,
    reform_sql_path: Path,
    resolution_paths: Sequence[Path],
    resolution_ref: str | None = None,
    settings: ResolverSettings | None = None,
    keep_going: bool = False,
) -> PipelineResult:
    """Load both datasets once and resolve every document independently.

    Args:
        legacy_sql_path: SQL dump of the pre-reform units.
        reform_sql_path: SQL dump of the post-reform units.
        resolution_paths: Resolution documents, processed in order.
        resolution_ref: Reference for every document; file stems when ``None``.
        settings: Resolver tunables.
        keep_going: Record failing documents and continue instead of raising.

    Returns:
        ``PipelineResult`` with per-document rows and any failures.
    """

    legacy = load_legacy_dataset(legacy_sql_path.read_text(encoding="utf-8"))
    reform = load_reform_dataset(reform_sql_path.read_text(encoding="utf-8"))
    legacy_lookup = build_legacy_lookup(legacy)
    reform_lookup = build_reform_lookup(reform)
    logger.info(
        "Loaded %d legacy wards and %d reform wards",
        len(legacy.wards),
        len(reform.wards),
    )

    documents: list[DocumentResult] = []
    failures: list[DocumentFailure] = []
    for document_path in resolution_paths:
        ref = resolution_ref or document_path.stem
        try:
            documents.append(
                process_document(
                    document_path,
                    legacy,
                    reform,
                    legacy_lookup,
                    reform_lookup,
                    resolution_ref=ref,
                    settings=settings,
                )
            )
        except ValueError as exc:
            if not keep_going:
                raise
            logger.warning("Skipping %s: %s", ref, exc)
            failures.append(
                DocumentFailure(
                    resolution_ref=ref,
                    source_path=str(document_path),
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
            )

    return PipelineResult(documents=tuple(documents), failures=tuple(failures))
