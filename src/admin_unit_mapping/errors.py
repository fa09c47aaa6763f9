"""Exception hierarchy for loading, parsing and resolving reform mappings.

All fatal errors derive from ``ValueError`` so callers that already guard the
pipeline with ``except ValueError`` keep working.
"""

from __future__ import annotations

from typing import Sequence

from admin_unit_mapping.models import WardRecord


class AdminMappingError(ValueError):
    """Root of every error raised by the mapping engine."""


class SqlParseError(AdminMappingError):
    """An ``INSERT`` statement could not be split into column-aligned tuples."""


class MissingFieldError(AdminMappingError):
    """A dataset row lacks a required column value."""


class MissingReferenceError(AdminMappingError):
    """A dataset row points at a parent code that does not exist."""


class ClauseParseError(AdminMappingError):
    """A merger clause matched the grammar but its destination name is empty."""


class ParseDiscard(Exception):
    """Internal signal: a fragment is not a merger clause and is skipped."""


class ResolutionError(AdminMappingError):
    """A clause reference could not be mapped to exactly one record.

    Attributes:
        clause_text: Raw text of the clause being resolved.
        reference: Raw label of the offending unit reference.
        candidates: Records still in play when resolution stopped.
    """

    def __init__(
        self,
        message: str,
        clause_text: str,
        reference: str = "",
        candidates: Sequence[WardRecord] = (),
    ) -> None:
        self.clause_text = clause_text
        self.reference = reference
        self.candidates = tuple(candidates)
        detail = ""
        if self.candidates:
            detail = "\nCandidates:\n" + "\n".join(
                f"- {candidate.describe()}" for candidate in self.candidates
            )
        super().__init__(f"{message}\nClause: {clause_text}{detail}")


class UnitNotFound(ResolutionError):
    """No record matches a reference after every widening stage."""


class AmbiguousUnitError(ResolutionError):
    """Two or more records remain after every narrowing strategy."""


class ClauseUnresolvable(ResolutionError):
    """The assignment search found no injective mapping for a clause's sources."""


class SearchBudgetExceeded(Exception):
    """Internal signal: the assignment search visited more nodes than allowed."""
