"""Text extraction for uploaded files."""

import csv
import io
import re
from typing import Optional

from rag_core.config import Settings, get_settings
from rag_core.models.document import ExtractedText, SourceFile
from rag_core.utils.errors import ExtractionError, ValidationError
from rag_core.utils.html import html_to_text
from rag_core.utils.logging import get_logger

logger = get_logger("extraction_service")

IMAGE_TYPES = {"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff"}

MIME_TO_TYPE = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
    "text/markdown": "md",
    "text/x-markdown": "md",
    "text/csv": "csv",
    "text/html": "html",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}

TEXT_ENCODINGS = ["utf-8", "latin-1", "cp1252"]


class ExtractionService:
    """
    Extract plain text from uploaded files.

    Supports:
    - PDF (`.pdf`) - PyPDF2
    - DOCX (`.docx`) - python-docx
    - TXT / MD (`.txt`, `.text`, `.md`, `.markdown`) - decoded as text
    - CSV (`.csv`) - rows rendered as `a | b | c`
    - HTML (`.html`, `.htm`) - BeautifulSoup
    - Images - no text; flagged `is_binary` for placeholder indexing
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.allowed_types = settings.allowed_file_types
        self.max_size = settings.max_file_size_bytes

    def resolve_type(self, file: SourceFile) -> str:
        """File type from the extension, falling back to the MIME type."""
        ext = file.extension
        if ext in self.allowed_types:
            return ext
        mime = (file.mime_type or "").split(";")[0].strip().lower()
        return MIME_TO_TYPE.get(mime, ext)

    def validate(self, file: SourceFile) -> str:
        """
        Check name, size and type before any parsing.

        Returns:
            The resolved file type

        Raises:
            ValidationError: If the file cannot be accepted
        """
        if not file.name or not file.name.strip():
            raise ValidationError("File name is required")
        if file.size == 0:
            raise ValidationError(f"File is empty: {file.name}", errors={"file": file.name})
        if file.size > self.max_size:
            raise ValidationError(
                f"File exceeds maximum size of {self.max_size // (1024 * 1024)}MB: {file.name}",
                errors={"file": file.name, "size": file.size, "max_size": self.max_size},
            )
        file_type = self.resolve_type(file)
        if file_type not in self.allowed_types:
            raise ValidationError(
                f"Unsupported file type: {file_type or 'unknown'}. "
                f"Allowed types: {', '.join(self.allowed_types)}",
                errors={"file": file.name, "file_type": file_type},
            )
        return file_type

    async def extract(self, file: SourceFile) -> ExtractedText:
        """
        Extract text from a file.

        Raises:
            ValidationError: If the file fails validation
            ExtractionError: If parsing fails or yields no text
        """
        file_type = self.validate(file)
        logger.info(f"Extracting text: type={file_type}, filename={file.name}")

        if file_type in IMAGE_TYPES:
            return ExtractedText(file_type=file_type, is_binary=True)

        try:
            if file_type == "pdf":
                result = self._extract_pdf(file.content)
            elif file_type == "docx":
                result = self._extract_docx(file.content)
            elif file_type in ("txt", "text", "md", "markdown"):
                result = ExtractedText(text=self._decode(file.content, file_type), file_type=file_type)
            elif file_type == "csv":
                result = self._extract_csv(file.content)
            elif file_type in ("html", "htm"):
                _, text = html_to_text(self._decode(file.content, file_type))
                result = ExtractedText(text=text, file_type=file_type)
            else:
                raise ExtractionError(f"No extractor for file type: {file_type}", file_type=file_type)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error extracting {file.name}: {e}", exc_info=True)
            raise ExtractionError(f"Failed to extract text: {e}", file_type=file_type) from e

        if not result.text.strip():
            raise ExtractionError(f"No text could be extracted from {file.name}", file_type=file_type)

        result.word_count = len(re.findall(r"\b\w+\b", result.text))
        logger.info(f"Extracted {file.name}: words={result.word_count}, chars={len(result.text)}")
        return result

    def _decode(self, data: bytes, file_type: str) -> str:
        for encoding in TEXT_ENCODINGS:
            try:
                text = data.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        else:
            raise ExtractionError("Failed to decode text file. Unsupported encoding.", file_type=file_type)
        # Remove BOM if present
        return text[1:] if text.startswith("\ufeff") else text

    def _extract_pdf(self, data: bytes) -> ExtractedText:
        import PyPDF2

        try:
            reader = PyPDF2.PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except PyPDF2.errors.PdfReadError as e:
            raise ExtractionError(f"PDF file is corrupted or invalid: {e}", file_type="pdf") from e

        text = "\n\n".join(p for p in pages if p.strip())
        if not text:
            raise ExtractionError(
                "No text could be extracted from PDF. The file may be image-based or corrupted.",
                file_type="pdf",
            )
        return ExtractedText(text=text, file_type="pdf", page_count=len(reader.pages))

    def _extract_docx(self, data: bytes) -> ExtractedText:
        from docx import Document

        doc = Document(io.BytesIO(data))
        parts = [p.text for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                row_text = " | ".join(cell.text.strip() for cell in row.cells if cell.text.strip())
                if row_text:
                    parts.append(row_text)
        return ExtractedText(text="\n\n".join(parts), file_type="docx")

    def _extract_csv(self, data: bytes) -> ExtractedText:
        reader = csv.reader(io.StringIO(self._decode(data, "csv")))
        lines = []
        for row in reader:
            cells = [cell.strip() for cell in row]
            if any(cells):
                lines.append(" | ".join(cells))
        return ExtractedText(text="\n".join(lines), file_type="csv")
