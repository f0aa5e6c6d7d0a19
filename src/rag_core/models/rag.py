"""Result models returned by the RAG facade."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from rag_core.models.vector import ContextChunk


class IndexingResult(BaseModel):
    """Outcome of indexing a batch of files into one thread."""

    success: bool
    documents_indexed: int = 0
    chunks_created: int = 0
    document_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class Source(BaseModel):
    """A cited file and how similar its chunk was to the query."""

    file_name: str
    similarity: float


class RetrievalResult(BaseModel):
    """Context assembled for one query."""

    context_text: str = ""
    sources: List[Source] = Field(default_factory=list)
    chunks: List[ContextChunk] = Field(default_factory=list)
    grounded: bool = Field(default=True, description="False when no knowledge base was consulted")

    @property
    def is_empty(self) -> bool:
        return not self.chunks


class GenerateResult(BaseModel):
    """An answer and the context it was grounded on."""

    response: str
    context: RetrievalResult = Field(default_factory=RetrievalResult)
    success: bool = True
    error: Optional[str] = None
    error_code: Optional[str] = None


class DeletionResult(BaseModel):
    """Outcome of deleting a file from a thread."""

    success: bool
    deleted_count: int = 0
    vectors_deleted: int = 0
    message: str = ""
    vector_error: Optional[str] = None


class JobStatus(str, Enum):
    """Status of a background ingestion job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Job(BaseModel):
    """A tracked background ingestion job."""

    id: str
    thread_id: str
    status: JobStatus = JobStatus.QUEUED
    document_ids: List[str] = Field(default_factory=list)
    result: Optional[IndexingResult] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
