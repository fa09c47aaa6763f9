"""Name normalization helpers shared by the loaders, parser and resolver.

Every lookup key in the engine is produced here, so the functions are pure and
total: any input string yields a string, and applying ``normalize_name`` twice
gives the same result as applying it once.
"""

from __future__ import annotations

import re
import unicodedata

PUNCTUATION_RE = re.compile(r"[-.'’,]")
WHITESPACE_RE = re.compile(r"\s+")
TONE_MARKS_RE = re.compile("[\u0300\u0301\u0303\u0309\u0323\u0340\u0341]")

ROMAN_NUMERALS = (
    ("xx", "20"),
    ("xix", "19"),
    ("xviii", "18"),
    ("xvii", "17"),
    ("xvi", "16"),
    ("xv", "15"),
    ("xiv", "14"),
    ("xiii", "13"),
    ("xii", "12"),
    ("xi", "11"),
    ("x", "10"),
    ("ix", "9"),
    ("viii", "8"),
    ("vii", "7"),
    ("vi", "6"),
    ("v", "5"),
    ("iv", "4"),
    ("iii", "3"),
    ("ii", "2"),
    ("i", "1"),
)
ROMAN_NUMERAL_RE = re.compile(
    r"\b(" + "|".join(roman for roman, _ in ROMAN_NUMERALS) + r")\b", re.IGNORECASE
)
ROMAN_TO_DIGIT = dict(ROMAN_NUMERALS)


def strip_accents(value: str) -> str:
    """Remove every combining mark after canonical decomposition.

    ``đ``/``Đ`` is a base letter rather than a decomposable accent, so it is
    mapped to ``d``/``D`` explicitly.
    """

    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace("đ", "d").replace("Đ", "D")


def strip_tone_marks(value: str) -> str:
    """Remove Vietnamese tone marks while keeping vowel-shape diacritics.

    ``Phú Thạnh`` and ``Phu Thanh`` stay distinct (``ư``/``â`` style marks are
    preserved) but ``Hoà`` and ``Hòa`` collapse to the same ``Hoa``.

    Args:
        value: Any string.

    Returns:
        NFC string without grave, acute, tilde, hook-above or dot-below marks.
    """

    decomposed = unicodedata.normalize("NFD", value)
    return unicodedata.normalize("NFC", TONE_MARKS_RE.sub("", decomposed))


def normalize_whitespace(value: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""

    return WHITESPACE_RE.sub(" ", value).strip()


def exact_key(value: str) -> str:
    """Return the spelling-preserving lookup key (NFC, lower-case, single spaced)."""

    return normalize_whitespace(unicodedata.normalize("NFC", value)).lower()


def _replace_roman_numerals(value: str) -> str:
    return ROMAN_NUMERAL_RE.sub(lambda match: ROMAN_TO_DIGIT[match.group(1).lower()], value)


def normalize_name(value: str) -> str:
    """Canonicalize a unit name into the primary matching key.

    Steps: strip accents, lower-case, convert word-bounded Roman numerals I-XX
    to digits, turn hyphens/apostrophes/periods/commas into spaces, collapse
    whitespace.

    Args:
        value: Raw unit, district or province name.

    Returns:
        Normalized key such as ``"quan 12"`` for ``"Quận XII"``. May be empty.
    """

    lowered = strip_accents(value).lower()
    converted = _replace_roman_numerals(lowered)
    scrubbed = PUNCTUATION_RE.sub(" ", converted)
    return normalize_whitespace(scrubbed)
