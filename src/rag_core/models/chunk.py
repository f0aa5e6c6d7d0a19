"""Chunk models for the indexing pipeline."""

from typing import Any, Dict

from pydantic import BaseModel, Field


class ChunkingPolicy(BaseModel):
    """Token budget and segmentation method for one split call."""

    chunk_size: int = Field(default=1024, description="Maximum tokens per chunk")
    chunk_overlap: int = Field(default=200, description="Tokens shared between consecutive chunks")
    method: str = Field(default="sentence", description="sentence, paragraph, or fixed")


class TextChunk(BaseModel):
    """A chunk of text produced by the chunking service."""

    chunk_index: int = Field(..., ge=0, description="0-based index of this chunk within the document")
    total_chunks: int = Field(..., ge=1, description="Number of chunks the document was split into")
    text: str = Field(..., description="Chunk text content")
    token_count: int = Field(..., ge=0, description="Token count of the chunk text")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="file_name, content_type, uploaded_at, etc."
    )
