"""Answer generation over retrieved chunks.

Formats the top-ranked chunks into a grounded prompt and streams the
language model's answer.
"""
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

import structlog

from docqa import config
from docqa.llm_client import OllamaClient, ollama_client
from docqa.rag.engine import RAGEngine
from docqa.rag.store import Chunk, SearchResult

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n---\n\n"
NOT_FOUND_ANSWER = "I cannot find that information in the documents."

SYSTEM_PROMPT = f"""You are a precise and helpful assistant.
Use the provided context documents below to answer the user's question.

Rules:
1. Answer strictly based on the context provided, but make sure you explain those answers.
2. If the answer is not in the context, say "{NOT_FOUND_ANSWER}"
3. Do not make up facts or use outside knowledge.
4. Keep your answer concise and direct."""

USER_PROMPT_TEMPLATE = """Context information is below:
---------------------
{context}
---------------------

Question: {question}

Answer:"""


def build_context(chunks: Sequence[Chunk]) -> str:
    """Join chunk texts, in rank order, into one context block."""
    return CONTEXT_SEPARATOR.join(chunk.text for chunk in chunks)


def build_user_prompt(question: str, context: str) -> str:
    return USER_PROMPT_TEMPLATE.format(context=context, question=question)


def build_messages(question: str, chunks: Sequence[Chunk]) -> List[Dict[str, str]]:
    """Chat messages (system rules + user prompt) for a question."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(question, build_context(chunks))},
    ]


@dataclass
class Answer:
    """A complete answer with the chunks it was grounded on."""

    question: str
    text: str
    sources: List[SearchResult] = field(default_factory=list)


class Answerer:
    """Retrieves context from a RAGEngine and asks the chat model."""

    def __init__(
        self,
        engine: RAGEngine,
        client: Optional[OllamaClient] = None,
        model: str = None,
        top_k: int = None,
    ):
        """Initialize the answerer.

        Args:
            engine: Engine holding the current document
            client: Ollama client (default: shared client)
            model: Chat model name (default from config)
            top_k: Chunks injected into the prompt (default from config)
        """
        self.engine = engine
        self.client = client or ollama_client
        self.model = model or config.CHAT_MODEL
        self.top_k = top_k or config.ASK_TOP_K

    async def retrieve(self, question: str, top_k: Optional[int] = None) -> List[SearchResult]:
        return await self.engine.search(question, limit=top_k or self.top_k)

    async def stream(
        self,
        question: str,
        sources: Optional[Sequence[SearchResult]] = None,
    ) -> AsyncIterator[str]:
        """Stream answer fragments for a question.

        Args:
            question: User question
            sources: Pre-retrieved results (retrieved here when omitted)

        Raises:
            RetrievalUnavailable: If the question cannot be embedded
            httpx.HTTPError: If the chat model fails
        """
        if sources is None:
            sources = await self.retrieve(question)

        messages = build_messages(question, [s.chunk for s in sources])

        logger.info(
            "answer_generation_started",
            question_length=len(question),
            context_chunks=len(sources),
            prompt_length=len(messages[1]["content"]),
        )

        async for fragment in self.client.chat_stream(messages, model=self.model):
            yield fragment

    async def answer(self, question: str, top_k: Optional[int] = None) -> Answer:
        """Retrieve context and collect the full answer."""
        sources = await self.retrieve(question, top_k)

        fragments = []
        async for fragment in self.stream(question, sources=sources):
            fragments.append(fragment)

        text = "".join(fragments).strip()

        logger.info(
            "answer_generated",
            question_length=len(question),
            answer_length=len(text),
            sources=len(sources),
        )

        return Answer(question=question, text=text, sources=list(sources))
