"""Grounded answer generation."""

from typing import AsyncIterator, Optional, Tuple

from rag_core.models.rag import GenerateResult, RetrievalResult
from rag_core.services.context_providers import ContextSource
from rag_core.services.llm_service import LLMService
from rag_core.services.prompt_service import PromptService
from rag_core.utils.errors import ValidationError
from rag_core.utils.logging import get_logger

logger = get_logger("generation_service")


class GenerationOrchestrator:
    """
    Retrieve thread context, build the grounding prompt and call the model.

    Retrieval failures raise RetrievalError and model failures raise
    GenerationError; an empty context is not a failure.
    """

    def __init__(
        self,
        context_source: ContextSource,
        llm_service: LLMService,
        prompt_service: Optional[PromptService] = None,
    ) -> None:
        self.context_source = context_source
        self.llm_service = llm_service
        self.prompt_service = prompt_service or PromptService()

    @staticmethod
    def _check_query(query: str) -> str:
        if not query or not query.strip():
            raise ValidationError("Query is required")
        return query.strip()

    async def _grounded_messages(self, query: str, thread_id: str):
        query = self._check_query(query)
        context = await self.context_source.retrieve(query, thread_id)
        if context.is_empty:
            logger.info(f"No relevant context for thread {thread_id}; answering with insufficient-context prompt")
        system_prompt = self.prompt_service.build_grounded_prompt(context.context_text)
        return context, self.prompt_service.build_messages(system_prompt, query)

    async def generate(self, query: str, thread_id: str) -> GenerateResult:
        """Answer the query from the thread's knowledge base."""
        context, messages = await self._grounded_messages(query, thread_id)
        response = await self.llm_service.complete(messages)
        logger.info(f"Generated answer for thread {thread_id} with {len(context.sources)} sources")
        return GenerateResult(response=response, context=context)

    async def generate_ungrounded(self, query: str) -> GenerateResult:
        """Answer without knowledge-base context."""
        query = self._check_query(query)
        messages = self.prompt_service.build_messages(self.prompt_service.build_ungrounded_prompt(), query)
        response = await self.llm_service.complete(messages)
        return GenerateResult(response=response, context=RetrievalResult(grounded=False))

    async def open_stream(self, query: str, thread_id: str) -> Tuple[RetrievalResult, AsyncIterator[str]]:
        """Retrieve first, then hand back the context and the model's delta stream."""
        context, messages = await self._grounded_messages(query, thread_id)
        return context, self.llm_service.stream(messages)

    async def stream(self, query: str, thread_id: str) -> AsyncIterator[str]:
        """Yield answer text deltas."""
        _, deltas = await self.open_stream(query, thread_id)
        async for delta in deltas:
            yield delta
