"""Text chunking service for RAG ingestion."""

import re
from typing import Any, Dict, List, Optional

import tiktoken

from rag_core.config import Settings, get_settings
from rag_core.models.chunk import ChunkingPolicy, TextChunk
from rag_core.utils.errors import ChunkingError
from rag_core.utils.logging import get_logger

logger = get_logger("chunking_service")

VALID_METHODS = ("sentence", "paragraph", "fixed")


class ChunkingService:
    """
    Service for chunking text into token-sized segments with overlap.

    Supported methods:
    - sentence: sentence-aware packing into token-sized chunks
    - paragraph: paragraph-aware packing into token-sized chunks
    - fixed: raw token slicing (fastest, least structure-aware)

    Sentences and paragraphs are never cut. A single segment larger than the
    budget becomes one oversized chunk.
    """

    def __init__(self, settings: Optional[Settings] = None, encoding_name: str = "cl100k_base"):
        """
        Initialize the chunking service.

        Args:
            settings: Source of the default policy
            encoding_name: tiktoken encoding name to use for token counting/slicing
        """
        settings = settings or get_settings()
        self.default_policy = ChunkingPolicy(
            chunk_size=settings.chunking.chunk_size,
            chunk_overlap=settings.chunking.chunk_overlap,
            method=settings.chunking.chunking_method,
        )
        self._encoding = tiktoken.get_encoding(encoding_name)

    def split(
        self,
        text: Optional[str],
        policy: Optional[ChunkingPolicy] = None,
        base_metadata: Optional[Dict[str, Any]] = None,
    ) -> List[TextChunk]:
        """
        Split text according to the policy.

        Args:
            text: Input text to chunk
            policy: Token budget and method (defaults to the configured policy)
            base_metadata: Metadata copied onto every chunk

        Returns:
            List of TextChunk, empty for empty or whitespace-only text

        Raises:
            ChunkingError: If the policy is invalid
        """
        policy = policy or self.default_policy
        self._validate_policy(policy)

        normalized = (text or "").strip()
        if not normalized:
            return []

        method = policy.method.lower()
        metadata = {**(base_metadata or {}), "chunking_method": method}

        logger.debug(
            "Chunking text",
            extra={"method": method, "chunk_size": policy.chunk_size, "overlap": policy.chunk_overlap},
        )

        if method == "fixed":
            texts = self._chunk_fixed(normalized, policy.chunk_size, policy.chunk_overlap)
        elif method == "paragraph":
            texts = self._pack_segments(
                self._split_paragraphs(normalized), policy.chunk_size, policy.chunk_overlap, "\n\n"
            )
        else:
            texts = self._pack_segments(
                self._split_sentences(normalized), policy.chunk_size, policy.chunk_overlap, " "
            )

        total = len(texts)
        return [
            TextChunk(
                chunk_index=i,
                total_chunks=total,
                text=chunk_text,
                token_count=self.count_tokens(chunk_text),
                metadata={**metadata},
            )
            for i, chunk_text in enumerate(texts)
        ]

    def placeholder_chunk(
        self,
        file_name: str,
        content_type: str,
        base_metadata: Optional[Dict[str, Any]] = None,
    ) -> TextChunk:
        """Single descriptive chunk for files that carry no text (images)."""
        if "." in file_name:
            label = file_name.rsplit(".", 1)[-1]
        else:
            label = content_type.split("/")[-1]
        text = f"[{label.upper()} file: {file_name}]"
        return TextChunk(
            chunk_index=0,
            total_chunks=1,
            text=text,
            token_count=self.count_tokens(text),
            metadata={**(base_metadata or {}), "chunking_method": "placeholder"},
        )

    def count_tokens(self, text: str) -> int:
        return len(self._encoding.encode(text))

    @staticmethod
    def _validate_policy(policy: ChunkingPolicy) -> None:
        if policy.chunk_size <= 0:
            raise ChunkingError("chunk_size must be > 0", details={"chunk_size": policy.chunk_size})
        if policy.chunk_overlap < 0:
            raise ChunkingError("overlap must be >= 0", details={"overlap": policy.chunk_overlap})
        if policy.chunk_overlap >= policy.chunk_size:
            raise ChunkingError(
                "overlap must be less than chunk_size",
                details={"overlap": policy.chunk_overlap, "chunk_size": policy.chunk_size},
            )
        if policy.method.lower() not in VALID_METHODS:
            raise ChunkingError(
                "Unsupported chunking method",
                details={"method": policy.method, "valid": list(VALID_METHODS)},
            )

    def _split_paragraphs(self, text: str) -> List[str]:
        # split on one or more blank lines
        parts = [p.strip() for p in re.split(r"\n\s*\n+", text) if p.strip()]
        return parts if parts else [text]

    def _split_sentences(self, text: str) -> List[str]:
        # keeps punctuation at the end of each sentence
        candidates = re.split(r"(?<=[.!?])\s+", text)
        parts = [c.strip() for c in candidates if c and c.strip()]
        return parts if parts else [text]

    def _chunk_fixed(self, text: str, chunk_size: int, overlap: int) -> List[str]:
        tokens = self._encoding.encode(text)
        step = chunk_size - overlap
        out: List[str] = []
        start = 0
        while start < len(tokens):
            chunk_text = self._encoding.decode(tokens[start : start + chunk_size]).strip()
            if chunk_text:
                out.append(chunk_text)
            if start + chunk_size >= len(tokens):
                break
            start += step
        return out

    def _pack_segments(
        self,
        segments: List[str],
        chunk_size: int,
        overlap: int,
        separator: str,
    ) -> List[str]:
        seg_lens = [self.count_tokens(s) for s in segments]
        sep_len = self.count_tokens(separator)

        out: List[str] = []
        current: List[str] = []
        current_lens: List[int] = []
        current_tokens = 0
        # Segments in `current` that have not been emitted yet
        fresh = 0

        def flush() -> None:
            if current and fresh:
                out.append(separator.join(current))

        for seg, seg_len in zip(segments, seg_lens):
            if seg_len > chunk_size:
                flush()
                out.append(seg)
                current, current_lens, current_tokens, fresh = [], [], 0, 0
                continue

            needed = seg_len + (sep_len if current else 0)
            if current_tokens + needed <= chunk_size:
                current.append(seg)
                current_lens.append(seg_len)
                current_tokens += needed
                fresh += 1
                continue

            flush()

            # overlap window: whole trailing segments that still leave room for seg
            budget = max(0, chunk_size - seg_len)
            window: List[str] = []
            window_lens: List[int] = []
            window_tokens = 0
            for part, part_len in zip(reversed(current), reversed(current_lens)):
                cost = part_len + sep_len
                if window_tokens + cost > overlap or window_tokens + cost > budget:
                    break
                window.insert(0, part)
                window_lens.insert(0, part_len)
                window_tokens += cost

            current = window + [seg]
            current_lens = window_lens + [seg_len]
            current_tokens = window_tokens + seg_len
            fresh = 1

        flush()
        return out
