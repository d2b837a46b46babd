"""Local checks on uploaded PDFs before they are sent to the backend."""

from __future__ import annotations

from dataclasses import dataclass

import pymupdf

from wartungsteile.errors import ClientValidationError

PDF_CONTENT_TYPE = "application/pdf"
NOT_A_PDF = "Bitte wählen Sie eine PDF-Datei aus."
UNREADABLE_PDF = "Die Datei ist keine lesbare PDF-Datei."
PREVIEW_CHARS = 300


@dataclass
class PdfFile:
    name: str
    content: bytes
    page_count: int
    preview: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    def multipart(self) -> tuple:
        return (self.name, self.content, PDF_CONTENT_TYPE)


def _first_page_preview(doc: "pymupdf.Document") -> str:
    if doc.page_count == 0:
        return ""
    # sort=True gives reading order on two-column work orders
    blocks = doc[0].get_text("blocks", sort=True)
    text = " ".join(b[4].strip() for b in blocks if b[6] == 0)
    return " ".join(text.split())[:PREVIEW_CHARS]


def inspect_pdf(name: str, content: bytes, content_type: str) -> PdfFile:
    """Accept one PDF upload, or raise :class:`ClientValidationError`.

    There is no size limit; the file only has to open as a PDF.
    """
    if content_type != PDF_CONTENT_TYPE:
        raise ClientValidationError([NOT_A_PDF])
    try:
        with pymupdf.open(stream=content, filetype="pdf") as doc:
            return PdfFile(name=name, content=content, page_count=doc.page_count, preview=_first_page_preview(doc))
    except (RuntimeError, ValueError) as ex:
        raise ClientValidationError([UNREADABLE_PDF]) from ex
