# docanalysis/memory/extractors.py

"""
Text extraction per document type.

Supports:
- PDF files (pypdf)
- CSV files (with a column header hint)
- Plain text

Word, Excel and image files have no extractor; they produce a degraded
result built from the document description and file metadata.
"""

import csv
import io
import logging
import os
from typing import Dict, Optional, Protocol

from pypdf import PdfReader

from docanalysis.config import MAX_DOCUMENT_CHARACTERS
from docanalysis.errors import ExtractionError
from docanalysis.models import DocumentType, ExtractionResult

logger = logging.getLogger(__name__)


_EXTENSION_TYPES = {
    ".pdf": DocumentType.pdf,
    ".doc": DocumentType.word,
    ".docx": DocumentType.word,
    ".odt": DocumentType.word,
    ".xls": DocumentType.excel,
    ".xlsx": DocumentType.excel,
    ".ods": DocumentType.excel,
    ".csv": DocumentType.csv,
    ".jpg": DocumentType.image,
    ".jpeg": DocumentType.image,
    ".png": DocumentType.image,
    ".gif": DocumentType.image,
    ".webp": DocumentType.image,
    ".tif": DocumentType.image,
    ".tiff": DocumentType.image,
}


def detect_document_type(filename: str, content_type: Optional[str] = None) -> DocumentType:

    content_type = (content_type or "").lower()

    if "pdf" in content_type:
        return DocumentType.pdf
    if "csv" in content_type:
        return DocumentType.csv
    if "spreadsheet" in content_type or "excel" in content_type:
        return DocumentType.excel
    if "word" in content_type or "officedocument.wordprocessing" in content_type:
        return DocumentType.word
    if content_type.startswith("image/"):
        return DocumentType.image

    extension = os.path.splitext(filename or "")[1].lower()

    return _EXTENSION_TYPES.get(extension, DocumentType.other)


# ============================================================
# SAFETY: CHARACTER LIMIT
# ============================================================

def enforce_character_limit(text: str, limit: int = MAX_DOCUMENT_CHARACTERS) -> str:

    if not text:
        return ""

    if len(text) > limit:
        logger.warning(
            "Extracted text exceeds max character limit, truncating",
            extra={"original_length": len(text), "max_allowed": limit},
        )
        return text[:limit]

    return text


def _decode(data: bytes) -> str:

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# ============================================================
# EXTRACTORS
# ============================================================

class TextExtractor(Protocol):

    def extract(self, data: bytes) -> str: ...


class PdfTextExtractor:

    def extract(self, data: bytes) -> str:

        parts = []

        try:

            reader = PdfReader(io.BytesIO(data))

            for page in reader.pages:

                text = page.extract_text()

                if text:
                    parts.append(text)

        except Exception as e:
            raise ExtractionError(f"Unreadable PDF: {e}") from e

        return "\n\n".join(parts)


class CsvTextExtractor:

    def extract(self, data: bytes) -> str:

        text = _decode(data)

        rows = list(csv.reader(io.StringIO(text)))

        if not rows:
            return ""

        header = ", ".join(cell.strip() for cell in rows[0])
        body = "\n".join(" | ".join(cell.strip() for cell in row) for row in rows[1:] if row)

        return f"[Tabla CSV] Columnas: {header}\n\n{body}".strip()


class PlainTextExtractor:

    def extract(self, data: bytes) -> str:
        return _decode(data)


DEFAULT_EXTRACTORS: Dict[DocumentType, TextExtractor] = {
    DocumentType.pdf: PdfTextExtractor(),
    DocumentType.csv: CsvTextExtractor(),
    DocumentType.other: PlainTextExtractor(),
}


def describe_file(filename: str, file_type: DocumentType, file_size: int, description: str = "") -> str:
    """
    Metadata-only stand-in for a document without extracted text.
    """

    summary = f"Documento {filename} ({file_type.value.upper()}, {file_size / 1024:.2f} KB)."

    if description:
        return f"{summary} {description}"

    return f"{summary} Sin contenido extraído disponible."


class ExtractorRegistry:
    """
    Maps document types to extractors and wraps their output in an
    ExtractionResult.
    """

    def __init__(
        self,
        extractors: Optional[Dict[DocumentType, TextExtractor]] = None,
        max_characters: int = MAX_DOCUMENT_CHARACTERS,
    ):
        self._extractors = dict(DEFAULT_EXTRACTORS if extractors is None else extractors)
        self._max_characters = max_characters

    def register(self, file_type: DocumentType, extractor: TextExtractor):
        self._extractors[file_type] = extractor

    def supports(self, file_type: DocumentType) -> bool:
        return file_type in self._extractors

    def extract(
        self,
        data: bytes,
        file_type: DocumentType,
        filename: str = "",
        description: str = "",
    ) -> ExtractionResult:

        extractor = self._extractors.get(file_type)

        if extractor is None:

            logger.info(
                "No extractor for document type, using degraded extraction",
                extra={"file_type": file_type.value, "file_name": filename},
            )

            return self._degraded(filename, file_type, len(data), description)

        try:

            text = extractor.extract(data)

        except Exception as e:

            logger.warning(
                "Text extraction failed",
                extra={
                    "file_type": file_type.value,
                    "file_name": filename,
                    "error": str(e),
                },
            )

            return self._degraded(filename, file_type, len(data), description, error=str(e))

        text = enforce_character_limit(text.strip(), self._max_characters)

        if not text:
            return self._degraded(filename, file_type, len(data), description)

        return ExtractionResult(text=text, degraded=False, source="extracted")

    def _degraded(
        self,
        filename: str,
        file_type: DocumentType,
        file_size: int,
        description: str,
        error: Optional[str] = None,
    ) -> ExtractionResult:

        if description and description.strip():
            return ExtractionResult(
                text=description.strip(),
                degraded=True,
                source="description",
                error=error,
            )

        return ExtractionResult(
            text=describe_file(filename, file_type, file_size),
            degraded=True,
            source="metadata",
            error=error,
        )
