"""Custom exception classes for the RAG core."""

from typing import Any, Dict, Optional


class RAGException(Exception):
    """Base exception for all RAG core errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class ValidationError(RAGException):
    """Malformed input, rejected before any store is touched."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 422,
        code: str = "VALIDATION_ERROR",
    ):
        error_details = details or {}
        if errors:
            error_details["validation_errors"] = errors
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details=error_details,
        )


class InvalidStatusTransition(ValidationError):
    """Exception raised when a document status change is not allowed."""

    def __init__(self, current: str, requested: str, document_id: Optional[str] = None):
        details: Dict[str, Any] = {"current": current, "requested": requested}
        if document_id:
            details["document_id"] = document_id
        super().__init__(
            message=f"Invalid status transition: {current} -> {requested}",
            details=details,
            status_code=409,
            code="INVALID_STATUS_TRANSITION",
        )


class NotFoundError(RAGException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message += f" with id: {resource_id}"
        error_details = details or {}
        error_details["resource"] = resource
        if resource_id:
            error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            status_code=404,
            code="NOT_FOUND",
            details=error_details,
        )


class ExtractionError(RAGException):
    """Exception raised when text cannot be extracted from a file."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        file_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if file_type:
            error_details["file_type"] = file_type
        super().__init__(
            message=message,
            status_code=422,
            code="EXTRACTION_ERROR",
            details=error_details,
        )


class ChunkingError(RAGException):
    """Exception raised for text chunking errors."""

    def __init__(
        self,
        message: str = "Text chunking failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="CHUNKING_ERROR",
            details=details,
        )


class EmbeddingError(RAGException):
    """Exception raised for embedding generation errors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
        )


class VectorStoreError(RAGException):
    """Exception raised for vector store (Qdrant) operation errors."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="VECTOR_STORE_ERROR",
            details=details,
        )


class MetadataStoreError(RAGException):
    """Exception raised for relational metadata store errors."""

    def __init__(
        self,
        message: str = "Metadata store operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="METADATA_STORE_ERROR",
            details=details,
        )


class RetrievalError(RAGException):
    """Exception raised when context retrieval fails (not the same as "no matches")."""

    def __init__(
        self,
        message: str = "Context retrieval failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="RETRIEVAL_ERROR",
            details=details,
        )


class GenerationError(RAGException):
    """Exception raised when the language model call fails."""

    def __init__(
        self,
        message: str = "Answer generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="GENERATION_ERROR",
            details=error_details,
        )


class ScrapingError(RAGException):
    """Exception raised when a web link cannot be scraped."""

    def __init__(
        self,
        message: str = "Web scraping failed",
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if url:
            error_details["url"] = url
        super().__init__(
            message=message,
            status_code=502,
            code="SCRAPING_ERROR",
            details=error_details,
        )
