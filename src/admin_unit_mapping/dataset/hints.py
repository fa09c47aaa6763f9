"""Province hints derived from a resolution document's file name."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Sequence

from admin_unit_mapping.models import ProvinceHint, ProvinceHints, ProvinceRecord
from admin_unit_mapping.normalize import normalize_name

SEPARATORS_RE = re.compile(r"[_-]+")


def _find_province(provinces: Sequence[ProvinceRecord], candidate_names: set[str]) -> ProvinceRecord | None:
    for province in provinces:
        if province.normalized_name in candidate_names:
            return province
    for province in provinces:
        if normalize_name(province.full_name) in candidate_names:
            return province
    return None


def derive_province_hints(
    document_path: Path,
    legacy_provinces: Sequence[ProvinceRecord],
    reform_provinces: Sequence[ProvinceRecord],
) -> ProvinceHints | None:
    """Guess the province a document concerns from its file stem.

    ``Cần_Thơ.txt`` is read as ``"can tho"`` and compared with province names
    and full names, bare or prefixed by ``tinh``/``thanh pho``. When only the
    legacy side matches, the reform hint reuses the legacy normalized name.

    Args:
        document_path: Path of the resolution document.
        legacy_provinces: Provinces of the legacy dataset.
        reform_provinces: Provinces of the reform dataset.

    Returns:
        Hints for either side, or ``None`` when the stem names no province.
    """

    candidate = normalize_name(SEPARATORS_RE.sub(" ", document_path.stem))
    if not candidate:
        return None

    candidate_names = {candidate, f"tinh {candidate}", f"thanh pho {candidate}"}
    legacy = _find_province(legacy_provinces, candidate_names)
    reform = _find_province(reform_provinces, candidate_names)
    if legacy is None and reform is None:
        return None

    legacy_hint = ProvinceHint(code=legacy.code, normalized_name=legacy.normalized_name) if legacy else None
    if reform is not None:
        reform_hint = ProvinceHint(code=reform.code, normalized_name=reform.normalized_name)
    elif legacy is not None:
        reform_hint = ProvinceHint(normalized_name=legacy.normalized_name)
    else:
        reform_hint = None
    return ProvinceHints(legacy=legacy_hint, reform=reform_hint)
