"""Embedding generation through an OpenAI-compatible API."""

from typing import List

from langchain_openai import OpenAIEmbeddings

from ..core.config import Settings


class EmbeddingService:
    """Wraps LangChain's OpenAIEmbeddings with the configured model and limits."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.max_chars = settings.EMBEDDINGS_MAX_CHARS

        api_key = settings.EMBEDDINGS_API_KEY or settings.OPENAI_API_KEY
        base = (settings.EMBEDDINGS_BASE_URL or "").lower()
        if not api_key and ("127.0.0.1" in base or "localhost" in base):
            api_key = "lm-studio"
        self.api_key = api_key

        self.embeddings = OpenAIEmbeddings(
            base_url=settings.EMBEDDINGS_BASE_URL,
            api_key=api_key or "unset",
            model=settings.EMBEDDINGS_MODEL,
            dimensions=settings.EMBEDDINGS_DIMENSIONS,
            # Local servers expect raw strings rather than token arrays.
            tiktoken_enabled=False,
            check_embedding_ctx_length=False,
        )

    def is_available(self) -> bool:
        return bool(self.api_key)

    def prepare(self, text: str) -> str:
        """Clip text to the embedding input limit."""
        return (text or "")[: self.max_chars]

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        return await self.embeddings.aembed_documents([self.prepare(t) for t in texts])

    async def embed_query(self, text: str) -> List[float]:
        return await self.embeddings.aembed_query(self.prepare(text))
