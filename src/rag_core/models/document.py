"""Document models for uploaded files and scraped pages."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle of a Document metadata row."""

    PROCESSING = "PROCESSING"
    READY = "READY"
    ERROR = "ERROR"


class SourceType(str, Enum):
    """Where a Document's content came from."""

    DOCUMENT = "document"
    LINK = "link"


class SourceFile(BaseModel):
    """An uploaded file waiting to be indexed."""

    name: str = Field(..., description="Original file name, including extension")
    content: bytes = Field(..., description="Raw file bytes")
    mime_type: str = Field(default="application/octet-stream", description="Declared MIME type")
    source_type: SourceType = Field(default=SourceType.DOCUMENT)
    source_url: Optional[str] = Field(default=None, description="Page URL for scraped links")
    text: Optional[str] = Field(default=None, description="Already-extracted text; skips extraction")

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


class ExtractedText(BaseModel):
    """Text pulled out of a SourceFile."""

    text: str = Field(default="", description="Extracted text content")
    file_type: str = Field(..., description="Resolved file type (pdf, docx, txt, ...)")
    is_binary: bool = Field(default=False, description="True for images, which carry no text")
    page_count: Optional[int] = Field(None, description="Number of pages (for PDF)")
    word_count: Optional[int] = Field(None, description="Approximate word count")


class ScrapedContent(BaseModel):
    """Readable content of a web page."""

    url: str
    title: str
    text: str
    content_type: str = Field(default="text/html")


class DocumentInfo(BaseModel):
    """Read model for a Document row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    thread_id: str
    filename: str
    original_name: str
    size: int
    mime_type: str
    status: DocumentStatus
    source_type: SourceType
    source_url: Optional[str] = None
    chunk_count: int = 0
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
