"""Resolver tunables and default data locations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAX_SEARCH_NODES = 200_000
DEFAULT_OUTPUT_NAME = "vn_admin_unit_mappings.sql"


@dataclass(frozen=True)
class ResolverSettings:
    """Knobs of the mapping resolver.

    Attributes:
        max_search_nodes: Node budget of the backtracking assignment search.
        parent_filter_fallback: Whether a parent filter that matches no
            candidate may be ignored (never for a reference's own
            parenthetical parent).
    """

    max_search_nodes: int = DEFAULT_MAX_SEARCH_NODES
    parent_filter_fallback: bool = True


def _resolve_default_data_path(filename: str) -> Path:
    """Resolve a data file from project layout.

    Returns:
        ``data/<filename>`` when present, otherwise ``<filename>`` in the
        working directory.
    """

    cwd_data = Path("data") / filename
    if cwd_data.exists():
        return cwd_data
    return Path(filename)


def default_legacy_sql_path() -> Path:
    return _resolve_default_data_path("legacy.sql")


def default_reform_sql_path() -> Path:
    return _resolve_default_data_path("reform.sql")
