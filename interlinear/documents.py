"""Raw text extraction for the supported input formats."""

from __future__ import annotations

import pathlib
from typing import List

from .errors import InterlinearError, UnsupportedFileTypeError

PLAIN_TEXT_SUFFIXES = frozenset({".txt", ".md", ".csv"})


def _import_docx():
    try:
        from docx import Document  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise InterlinearError(
            "python-docx is required to process .docx files. "
            "Install it with `pip install python-docx`."
        ) from exc
    return Document


def _docx_lines(path: pathlib.Path) -> List[str]:
    """Body paragraphs followed by table cell paragraphs, one per line."""

    Document = _import_docx()
    document = Document(str(path))
    lines = [paragraph.text for paragraph in document.paragraphs]

    processed_cells = set()
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                cell_key = id(cell._tc)  # type: ignore[attr-defined]
                if cell_key in processed_cells:
                    continue
                processed_cells.add(cell_key)
                lines.extend(paragraph.text for paragraph in cell.paragraphs)
    return lines


def extract_text(path: pathlib.Path | str) -> str:
    """Return the raw text of a plain-text or Word document."""

    source = pathlib.Path(path)
    suffix = source.suffix.lower()
    if suffix in PLAIN_TEXT_SUFFIXES:
        return source.read_text(encoding="utf-8", errors="replace")
    if suffix == ".docx":
        return "\n".join(_docx_lines(source))
    raise UnsupportedFileTypeError(
        "This file type isn't supported. Please use .txt, .md, .csv or .docx."
    )
