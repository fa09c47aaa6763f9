"""Clause parser for administrative-merger resolution documents.

The grammar is the fixed legal phrasing of Vietnamese merger resolutions::

    Sắp xếp toàn bộ diện tích tự nhiên, quy mô dân số của các xã A, B
    (thuộc huyện X) và xã C thành xã mới có tên gọi là xã D.

Everything before the first ``thành <type>`` is the source list, everything
after it up to the next terminator is the destination. Fragments that do not fit
this shape are discarded rather than reported as errors.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import re
import unicodedata
from typing import Sequence

from admin_unit_mapping.errors import ClauseParseError, ParseDiscard
from admin_unit_mapping.models import (
    AdministrativeUnitKind,
    ParentKind,
    ResolutionClause,
    ResolutionSource,
    ResolutionTarget,
    UnitReference,
)
from admin_unit_mapping.normalize import normalize_name, normalize_whitespace

logger = logging.getLogger(__name__)

CLAUSE_SPLIT_RE = re.compile(r"(?<=[.;])\s+|\n+")
MERGER_WORD_RE = re.compile(r"thành", re.IGNORECASE)
TRANSITION_RE = re.compile(
    r"\bthành\s+(thị\s+trấn|thị\s+xã|xã|phường|thành\s+phố|quận|đặc\s+khu)(?!\w)",
    re.IGNORECASE,
)
DESTINATION_NAME_RE = re.compile(r"[^.;]+")

ENUMERATION_RE = re.compile(r"^(?:\d+|[a-zđ])[.)]\s+", re.IGNORECASE)
LEADING_VERB_RE = re.compile(
    r"^(?:sắp\s+xếp|sáp\s+nhập|hợp\s+nhất|nhập|điều\s+chỉnh|tách|chuyển|đổi\s+tên)\s*",
    re.IGNORECASE,
)
PLURAL_TYPE_RE = re.compile(r"\bcác\s*(thị\s+trấn|thị\s+xã|xã|phường)(?!\w)", re.IGNORECASE)
GLUED_TYPE_RE = re.compile(r"(?<=[^\s,;(])(?=(?:thị\s+trấn|thị\s+xã|xã|phường)(?!\w))", re.IGNORECASE)
CONJUNCTION_RE = re.compile(r"\s+và\s+|\s*&\s*", re.IGNORECASE)
COMMA_SPACING_RE = re.compile(r"\s*([,;])\s*")

AREA_LEAD_IN = (
    r"(?:(?:toàn\s+bộ|một\s+phần)\s+)?"
    r"(?:diện\s+tích\s+tự\s+nhiên|quy\s+mô\s+dân\s+số)(?!\w).*?\bcủa\s+"
)
REF_UNIT = r"(?:khoản|điểm|điều)\s+[\w/]+"
CROSS_REFERENCE = rf"{REF_UNIT}(?:\s+(?:của\s+)?{REF_UNIT})*"

SEGMENT_LEAD_IN_RE = re.compile(rf"^{AREA_LEAD_IN}", re.IGNORECASE | re.DOTALL)
TOKEN_PREFIX_PATTERNS = (
    re.compile(rf"^{AREA_LEAD_IN}", re.IGNORECASE | re.DOTALL),
    re.compile(r"^phần\s+còn\s+lại\s+(?:của\s+)?", re.IGNORECASE),
    re.compile(r"^toàn\s+bộ\s+(?:của\s+)?", re.IGNORECASE),
    re.compile(rf"^(?:(?:theo\s+)?quy\s+định\s+)?(?:tại\s+)?{CROSS_REFERENCE}\s+(?:của\s+)?(?=\S)", re.IGNORECASE),
    re.compile(r"^của\s+", re.IGNORECASE),
)
CROSS_REFERENCE_ONLY_RE = re.compile(
    r"^(?:(?:cua\s+)?(?:khoan|diem|dieu|nghi quyet)\s+[\w/]+\s*)+$"
)

TYPE_PREFIX_RE = re.compile(
    r"^(thị\s+trấn|thị\s+xã|xã|phường|thành\s+phố|quận|huyện|đặc\s+khu)(?!\w)[\s:]*(.*)$",
    re.IGNORECASE | re.DOTALL,
)
TYPE_NOUNS = {"thi tran", "thi xa", "xa", "phuong", "thanh pho", "quan", "huyen", "dac khu"}
KIND_BY_NOUN = {
    "thi tran": AdministrativeUnitKind.TOWNSHIP,
    "thi xa": AdministrativeUnitKind.DISTRICT_TOWN,
    "xa": AdministrativeUnitKind.COMMUNE,
    "phuong": AdministrativeUnitKind.WARD,
    "quan": AdministrativeUnitKind.URBAN_DISTRICT,
    "huyen": AdministrativeUnitKind.RURAL_DISTRICT,
    "thanh pho": AdministrativeUnitKind.PROVINCIAL_CITY,
}

TRAILING_PAREN_RE = re.compile(r"\(([^()]*)\)\s*$")
PAREN_RE = re.compile(r"\([^)]*\)")
THUOC_RE = re.compile(r"\s+thuộc\s+", re.IGNORECASE)
LEADING_THUOC_RE = re.compile(r"^thuộc\s+", re.IGNORECASE)
PROVINCE_TOKEN_RE = re.compile(r"^tỉnh\s+", re.IGNORECASE)
PARENT_TEXT_RE = re.compile(r"^(huyen|thi xa|thanh pho|quan|tinh)\s+\S")
PARENT_TYPE_PREFIX_RE = re.compile(r"^(?:huyện|thị\s+xã|thành\s+phố|quận|tỉnh)\s+", re.IGNORECASE)
PARENT_KIND_BY_NOUN = {
    "huyen": ParentKind.RURAL_DISTRICT,
    "thi xa": ParentKind.DISTRICT_TOWN,
    "thanh pho": ParentKind.PROVINCIAL_CITY,
    "quan": ParentKind.URBAN_DISTRICT,
    "tinh": ParentKind.PROVINCE,
}

QUOTES_RE = re.compile(r"[\"“”]")
LEAD_ALIAS_PATTERNS = (
    re.compile(r"^mới\s+có\s+tên\s+gọi\s+là\s+", re.IGNORECASE),
    re.compile(r"^có\s+tên\s+gọi\s+là\s+", re.IGNORECASE),
    re.compile(r"^tên\s+gọi\s+là\s+", re.IGNORECASE),
    re.compile(r"^mới\s+đổi\s+tên\s+thành\s+", re.IGNORECASE),
    re.compile(r"^đổi\s+tên\s+thành\s+", re.IGNORECASE),
)
LEADING_TYPE_RE = re.compile(
    r"^(?:thị\s+trấn|thị\s+xã|xã|phường|thành\s+phố|quận|huyện|đặc\s+khu)\s+",
    re.IGNORECASE,
)
TRAILING_CONDITION_PATTERNS = (
    re.compile(r"\s+sau\s+khi\s+.+$", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+theo\s+quy\s+(?:định|dinh).*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+(?:được\s+)?quy\s+định\s+tại\s+.+$", re.IGNORECASE | re.DOTALL),
)
TRAILING_QUALIFIER_RE = re.compile(r"\s+(?:cũ|hiện\s+nay)$", re.IGNORECASE)
TRAILING_PUNCTUATION_RE = re.compile(r"[\s,;:.]+$")


@dataclass(frozen=True)
class ParsedDocument:
    """Clauses of one document plus the number of fragments that were discarded."""

    clauses: tuple[ResolutionClause, ...]
    discarded_fragments: int


@dataclass(frozen=True)
class _Parent:
    name: str
    normalized_name: str
    kind: ParentKind | None
    locked: bool


def detect_kind(type_text: str | None) -> AdministrativeUnitKind | None:
    """Map a Vietnamese type noun (any accents/case) to a unit kind.

    ``đặc khu`` has no kind in the closed enumeration and yields ``None``.
    """

    if not type_text:
        return None
    return KIND_BY_NOUN.get(normalize_name(type_text))


def cleanup_name(raw: str) -> str:
    """Reduce a unit phrase to the bare unit name.

    Removes parentheticals and quotes, rename lead-ins (``có tên gọi là``,
    ``đổi tên thành``...), one leading type noun, trailing conditions
    (``sau khi ...``, ``theo quy định ...``) and trailing ``cũ``/``hiện nay``.

    Args:
        raw: Name portion of a token or destination.

    Returns:
        Cleaned name with single spaces; may be empty.
    """

    text = QUOTES_RE.sub("", PAREN_RE.sub(" ", raw))
    text = normalize_whitespace(text)
    for pattern in LEAD_ALIAS_PATTERNS:
        text = pattern.sub("", text)
    text = LEADING_TYPE_RE.sub("", text)
    for pattern in TRAILING_CONDITION_PATTERNS:
        text = pattern.sub("", text)
    text = TRAILING_PUNCTUATION_RE.sub("", text)
    text = TRAILING_QUALIFIER_RE.sub("", text)
    return normalize_whitespace(text)


def _extract_parent(raw: str, locked: bool) -> _Parent | None:
    """Read a parent unit from ``thuộc huyện X`` / ``huyện X`` / ``X`` text.

    A parenthetical (``locked``) only counts as a parent when it starts with
    ``thuộc`` or a parent type noun; other parentheticals are asides.
    """

    text = normalize_whitespace(raw)
    has_thuoc = bool(LEADING_THUOC_RE.match(text))
    text = LEADING_THUOC_RE.sub("", text)
    match = PARENT_TEXT_RE.match(normalize_name(text))
    if match is None and locked and not has_thuoc:
        return None

    kind = PARENT_KIND_BY_NOUN[match.group(1)] if match else None
    name = cleanup_name(PARENT_TYPE_PREFIX_RE.sub("", text.split(",")[0]))
    normalized = normalize_name(name)
    if not normalized:
        return None
    return _Parent(name=name, normalized_name=normalized, kind=kind, locked=locked)


def split_parent(text: str) -> tuple[str, _Parent | None]:
    """Separate a unit phrase from its trailing parent qualifier.

    Returns:
        ``(name_part, parent)`` where ``parent`` is ``None`` when the phrase
        names no parent.
    """

    working = text.strip()
    parent: _Parent | None = None

    paren_match = TRAILING_PAREN_RE.search(working)
    if paren_match:
        parent = _extract_parent(paren_match.group(1), locked=True)
        if parent is not None:
            working = working[: paren_match.start()].strip()

    working = normalize_whitespace(PAREN_RE.sub(" ", working))
    parts = THUOC_RE.split(working, maxsplit=1)
    if len(parts) == 2:
        working = parts[0]
        if parent is None:
            parent = _extract_parent(parts[1], locked=False)
    return working, parent


def sanitize_source_segment(segment: str) -> str:
    """Rewrite a source segment into a uniform comma-separated unit list."""

    text = normalize_whitespace(segment)
    text = ENUMERATION_RE.sub("", text)
    text = LEADING_VERB_RE.sub("", text)
    text = SEGMENT_LEAD_IN_RE.sub("", text)
    text = PLURAL_TYPE_RE.sub(r"\1", text)
    text = GLUED_TYPE_RE.sub(" ", text)
    text = CONJUNCTION_RE.sub(", ", text)
    text = COMMA_SPACING_RE.sub(r"\1 ", text)
    return normalize_whitespace(text).strip(" ,;")


def split_top_level(segment: str) -> list[str]:
    """Split on ``,``/``;`` outside parentheses.

    A separator inside an open parenthetical stays part of the current token, so
    ``xã A (thuộc huyện X, tỉnh Y)`` is a single token.
    """

    tokens: list[str] = []
    buf: list[str] = []
    depth = 0
    for ch in segment:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)

        if ch in ",;" and depth == 0:
            tokens.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)

    if buf:
        tokens.append("".join(buf).strip())
    return [token for token in tokens if token]


def _strip_token_prefixes(token: str) -> str:
    """Apply the ordered prefix-removal patterns until nothing changes."""

    text = normalize_whitespace(token)
    while True:
        previous = text
        for pattern in TOKEN_PREFIX_PATTERNS:
            text = pattern.sub("", text).strip()
        if text == previous:
            return text


def _raw_label(kind: AdministrativeUnitKind | None, type_text: str | None, name: str) -> str:
    prefix = kind.alias if kind is not None else normalize_whitespace(type_text or "")
    return f"{prefix} {name}".strip()


def _build_reference(
    cls: type[UnitReference],
    name_part: str,
    kind: AdministrativeUnitKind | None,
    type_text: str | None,
    parent: _Parent | None,
) -> UnitReference:
    cleaned = cleanup_name(name_part)
    return cls(
        raw=_raw_label(kind, type_text, cleaned),
        name=cleaned,
        normalized_name=normalize_name(cleaned),
        kind=kind,
        parent_name=parent.name if parent else None,
        normalized_parent_name=parent.normalized_name if parent else None,
        parent_kind=parent.kind if parent else None,
        parent_locked=parent.locked if parent else False,
    )


def parse_source_token(
    token: str,
    current_kind: AdministrativeUnitKind | None,
    current_type_text: str | None = None,
) -> tuple[ResolutionSource | None, AdministrativeUnitKind | None, str | None]:
    """Parse one list token into a source, tracking the propagated type.

    Args:
        token: One comma/semicolon separated item of the source list.
        current_kind: Type in force from earlier tokens of the clause.
        current_type_text: Raw spelling of that type (kept for ``đặc khu``).

    Returns:
        ``(source, kind, type_text)``; ``source`` is ``None`` for tokens that are
        bare type nouns, cross-references, province qualifiers or empty after
        cleanup. ``kind`` and ``type_text`` are the type in force for the
        following tokens.
    """

    text = _strip_token_prefixes(token)
    match = TYPE_PREFIX_RE.match(text)
    if match:
        current_type_text = match.group(1)
        current_kind = detect_kind(current_type_text)
        text = _strip_token_prefixes(match.group(2))

    normalized = normalize_name(PAREN_RE.sub(" ", text))
    if (
        not normalized
        or normalized in TYPE_NOUNS
        or CROSS_REFERENCE_ONLY_RE.match(normalized)
        or PROVINCE_TOKEN_RE.match(text)
    ):
        return None, current_kind, current_type_text

    name_part, parent = split_parent(text)
    source = _build_reference(ResolutionSource, name_part, current_kind, current_type_text, parent)
    if not source.normalized_name:
        return None, current_kind, current_type_text
    return source, current_kind, current_type_text


def _types_compatible(left: AdministrativeUnitKind | None, right: AdministrativeUnitKind | None) -> bool:
    return left is None or right is None or left == right


def _propagate_once(sources: Sequence[ResolutionSource]) -> tuple[ResolutionSource, ...]:
    """One directional pass of parent propagation; returns a new tuple."""

    result: list[ResolutionSource] = []
    context: ResolutionSource | None = None
    for source in sources:
        if source.parent_name and not source.parent_inherited:
            context = source
        elif context is None or not _types_compatible(source.kind, context.kind):
            context = None
        elif source.parent_name is None or (context.parent_locked and not source.parent_locked):
            source = replace(
                source,
                parent_name=context.parent_name,
                normalized_parent_name=context.normalized_parent_name,
                parent_kind=context.parent_kind,
                parent_locked=context.parent_locked,
                parent_inherited=True,
            )
        result.append(source)
    return tuple(result)


def propagate_parent_context(sources: Sequence[ResolutionSource]) -> tuple[ResolutionSource, ...]:
    """Spread stated parents to neighbouring sources of the same clause.

    A forward pass then a backward pass; each stops at a type mismatch. A
    source's own parent is never replaced, and a locked (parenthetical) parent
    wins over an unlocked one when both reach the same source.
    """

    forward = _propagate_once(sources)
    backward = _propagate_once(tuple(reversed(forward)))
    return tuple(reversed(backward))


def extract_sources(segment: str) -> tuple[ResolutionSource, ...]:
    """Parse a cleaned source segment into sources with inherited type and parent."""

    sources: list[ResolutionSource] = []
    current_kind: AdministrativeUnitKind | None = None
    current_type_text: str | None = None
    for token in split_top_level(segment):
        source, current_kind, current_type_text = parse_source_token(token, current_kind, current_type_text)
        if source is not None:
            sources.append(source)
    return propagate_parent_context(sources)


def parse_fragment(fragment: str, resolution_ref: str) -> ResolutionClause:
    """Parse one segmented fragment into a clause.

    Raises:
        ParseDiscard: If the fragment is not a merger clause.
        ClauseParseError: If the destination name is empty after cleanup.
    """

    transition = TRANSITION_RE.search(fragment)
    if transition is None:
        raise ParseDiscard("no 'thành <type>' destination")

    sources = extract_sources(sanitize_source_segment(fragment[: transition.start()]))
    if not sources:
        raise ParseDiscard("no source units before destination")

    remainder = fragment[transition.end():]
    name_match = DESTINATION_NAME_RE.search(remainder)
    destination_raw = name_match.group(0) if name_match else remainder
    destination_type = transition.group(1)
    name_part, parent = split_parent(destination_raw)
    target = _build_reference(ResolutionTarget, name_part, detect_kind(destination_type), destination_type, parent)
    if not target.normalized_name:
        raise ClauseParseError(f"Empty destination name in clause: {fragment}")

    return ResolutionClause(
        sources=sources,
        target=target,
        note=fragment,
        resolution_ref=resolution_ref,
    )


def segment_document(raw_text: str) -> list[str]:
    """Split a document into fragments that may hold a merger clause."""

    text = unicodedata.normalize("NFC", raw_text).replace("\r\n", "\n").replace("\r", "\n")
    fragments = (normalize_whitespace(fragment) for fragment in CLAUSE_SPLIT_RE.split(text))
    return [fragment for fragment in fragments if fragment and MERGER_WORD_RE.search(fragment)]


def parse_resolution_document(raw_text: str, resolution_ref: str) -> ParsedDocument:
    """Parse a full resolution document, keeping discard statistics."""

    clauses: list[ResolutionClause] = []
    discarded = 0
    for fragment in segment_document(raw_text):
        try:
            clauses.append(parse_fragment(fragment, resolution_ref))
        except ParseDiscard as reason:
            discarded += 1
            logger.debug("Discarded fragment (%s): %s", reason, fragment)
    logger.debug("Parsed %d clauses from %s (%d fragments discarded)", len(clauses), resolution_ref, discarded)
    return ParsedDocument(clauses=tuple(clauses), discarded_fragments=discarded)


def parse_resolution_text(raw_text: str, resolution_ref: str) -> tuple[ResolutionClause, ...]:
    """Parse a resolution document into its merger clauses in document order.

    Args:
        raw_text: Full document text.
        resolution_ref: Reference id stored on every clause.

    Returns:
        Ordered clauses; non-merger fragments are skipped.

    Raises:
        ClauseParseError: If a merger clause has an empty destination name.
    """

    return parse_resolution_document(raw_text, resolution_ref).clauses
