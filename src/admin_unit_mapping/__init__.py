"""Vietnam administrative-unit reform mapping package."""

from .models import MappingRow, ResolutionClause, ResolutionReport, WardRecord

__all__ = ["MappingRow", "ResolutionClause", "ResolutionReport", "WardRecord"]
