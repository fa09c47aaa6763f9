"""Reading resolution documents from text or PDF files."""

from __future__ import annotations

from pathlib import Path

import pdfplumber

PDF_SUFFIX = ".pdf"


def extract_pdf_text(pdf_path: Path) -> str:
    """Concatenate the text of every page, one page per block of lines.

    Pages without a text layer are skipped.
    """

    page_texts: list[str] = []
    with pdfplumber.open(pdf_path) as pdf:
        for page in pdf.pages:
            text = page.extract_text(x_tolerance=1, y_tolerance=1)
            if not text:
                continue
            page_texts.append(text)
    return "\n".join(page_texts)


def read_resolution_text(path: Path) -> str:
    """Load a resolution document as text.

    Args:
        path: ``.pdf`` files go through ``pdfplumber``; anything else is read
            as UTF-8.

    Returns:
        Document text.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """

    if not path.exists():
        raise FileNotFoundError(f"Resolution document not found: {path}")
    if path.suffix.lower() == PDF_SUFFIX:
        return extract_pdf_text(path)
    return path.read_text(encoding="utf-8")
