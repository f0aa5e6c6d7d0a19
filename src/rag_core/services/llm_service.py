"""LLM service for chat completions through LiteLLM.

Talks to any OpenAI-compatible gateway (LLM_BASE_URL) or a provider that
LiteLLM routes natively, with retries and an optional fallback model.
"""

from typing import Any, AsyncIterator, Dict, List, Optional

from litellm import acompletion
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from rag_core.config import Settings, get_settings
from rag_core.utils.errors import GenerationError
from rag_core.utils.logging import get_logger

logger = get_logger("llm_service")


def _field(obj: Any, name: str) -> Any:
    """Read a field from a LiteLLM response object or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_content(response: Any) -> str:
    """Message content of a non-streamed completion."""
    choices = _field(response, "choices") or []
    if not choices:
        return ""
    return _field(_field(choices[0], "message"), "content") or ""


def extract_delta(chunk: Any) -> str:
    """Text delta of one streamed completion chunk."""
    choices = _field(chunk, "choices") or []
    if not choices:
        return ""
    return _field(_field(choices[0], "delta"), "content") or ""


class LLMService:
    """Service for LLM calls.

    Handles:
    - Gateway credentials (falls back to the embedding gateway settings)
    - Retry logic with exponential backoff
    - Automatic fallback to a secondary model on failure
    - Streaming responses
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize LLM service with configuration."""
        self.settings = settings or get_settings()
        self.default_model = self.settings.llm.model
        self.fallback_model = self.settings.llm.fallback_model
        self.enable_fallbacks = self.settings.llm.enable_fallbacks

    def _models(self) -> List[str]:
        models = [self.default_model]
        if self.enable_fallbacks and self.fallback_model and self.fallback_model != self.default_model:
            models.append(self.fallback_model)
        return models

    def _params(self, model: str, messages: List[Dict[str, str]], stream: bool, **kwargs) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": stream,
            "temperature": self.settings.llm.temperature,
            "max_tokens": self.settings.llm.max_tokens,
            "timeout": self.settings.llm.timeout,
        }
        if self.settings.llm_base_url:
            params["api_base"] = self.settings.llm_base_url
        if self.settings.llm_api_key:
            params["api_key"] = self.settings.llm_api_key
        params.update(kwargs)
        return params

    async def _call_llm(self, model: str, messages: List[Dict[str, str]], stream: bool, **kwargs) -> Any:
        """Call LiteLLM with retry logic.

        Raises:
            GenerationError: If the call still fails after retries.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, self.settings.llm.max_retries)),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                reraise=True,
            ):
                with attempt:
                    logger.debug(f"Calling LLM model: {model}, stream={stream}")
                    return await acompletion(**self._params(model, messages, stream, **kwargs))
        except Exception as e:
            logger.error(
                f"LLM call failed for model {model}: {e}",
                extra={"model": model, "error_type": type(e).__name__},
            )
            raise GenerationError(
                message=f"LLM call failed: {e}",
                model=model,
                details={"error_type": type(e).__name__},
            ) from e

    async def _call_with_fallback(self, messages: List[Dict[str, str]], stream: bool, **kwargs) -> Any:
        models = self._models()
        last_error: Optional[GenerationError] = None
        for model in models:
            try:
                response = await self._call_llm(model, messages, stream, **kwargs)
                logger.info(f"LLM call succeeded with model: {model}")
                return response
            except GenerationError as e:
                last_error = e
                if model != models[-1]:
                    logger.warning(
                        f"Model {model} failed, attempting fallback: {models[-1]}",
                        extra={"primary_model": model, "fallback_model": models[-1]},
                    )
        raise last_error

    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        """Return the full completion text for the messages."""
        response = await self._call_with_fallback(messages, stream=False, **kwargs)
        return extract_content(response)

    async def stream(self, messages: List[Dict[str, str]], **kwargs) -> AsyncIterator[str]:
        """Yield completion text deltas.

        Raises:
            GenerationError: If the call fails or the stream breaks.
        """
        response = await self._call_with_fallback(messages, stream=True, **kwargs)
        try:
            async for chunk in response:
                delta = extract_delta(chunk)
                if delta:
                    yield delta
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"LLM stream interrupted: {e}")
            raise GenerationError(f"LLM stream interrupted: {e}", model=self.default_model) from e
