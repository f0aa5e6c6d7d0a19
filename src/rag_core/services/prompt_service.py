"""System prompts for grounded and ungrounded answers."""

from typing import Dict, List, Optional

BASE_PERSONA_PROMPT = """You are a helpful assistant that answers questions about the documents and links \
the user has added to this conversation.

Be concise and accurate."""

GROUNDING_PROMPT = """Answer using ONLY the context below. Each passage is numbered like [1].
Cite the passages you rely on by their number.
If the context does not contain the answer, say that you have insufficient context to answer \
instead of guessing.

Context:
{context}"""

INSUFFICIENT_CONTEXT_PROMPT = """No relevant context was found in this conversation's knowledge base \
for the user's question.
You must reply that you have insufficient context to answer the question. \
Do not answer from general knowledge."""

UNGROUNDED_PROMPT = """The conversation's knowledge base could not be consulted for this question.
Answer from general knowledge and tell the user that the answer is not based on their documents."""


class PromptService:
    """Builds the system prompt and message list sent to the model."""

    def __init__(self, base_persona: Optional[str] = None) -> None:
        self.base_persona = (base_persona or BASE_PERSONA_PROMPT).strip()

    def build_grounded_prompt(self, context_text: str) -> str:
        """System prompt containing the retrieved context verbatim.

        With empty context the prompt tells the model to report insufficient context.
        """
        if not context_text.strip():
            return f"{self.base_persona}\n\n{INSUFFICIENT_CONTEXT_PROMPT}"
        return f"{self.base_persona}\n\n{GROUNDING_PROMPT.format(context=context_text)}"

    def build_ungrounded_prompt(self) -> str:
        return f"{self.base_persona}\n\n{UNGROUNDED_PROMPT}"

    @staticmethod
    def build_messages(
        system_prompt: str,
        query: str,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": query})
        return messages
