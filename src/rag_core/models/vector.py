"""Vector store records and retrieved context."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """One embedded chunk as written to the vector store."""

    id: str = Field(..., description="Point id (uuid5 of document_id:chunk_index)")
    vector: List[float] = Field(default_factory=list, description="Embedding vector")
    content: str = Field(..., description="Chunk text")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"content": self.content, **self.metadata}


class ContextChunk(BaseModel):
    """A retrieved passage with its similarity score."""

    id: str
    content: str
    score: float
    source: str = Field(default="", description="Display label, usually the file name")
    metadata: Dict[str, Any] = Field(default_factory=dict)
