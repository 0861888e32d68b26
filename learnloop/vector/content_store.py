"""Content Vector Store

One ChromaDB collection holds an embedding per content section, tagged with
its content id. Chroma's client is synchronous, so every call is pushed to a
worker thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

import chromadb
from chromadb.config import Settings as ChromaSettings
from langchain_chroma import Chroma

from ..core.config import Settings
from ..db.models import ContentSection
from ..db.repository import Repository
from .embeddings import EmbeddingService
from .search import SectionHit

logger = logging.getLogger(__name__)


class ContentVectorStore:
    """
    Similarity search over content sections.

    Stored in ``<VECTOR_DB_PATH>/`` in the ``content_sections`` collection.
    """

    COLLECTION_SECTIONS = "content_sections"
    UPSERT_BATCH_SIZE = 100

    def __init__(
        self,
        settings: Settings,
        embeddings: Optional[EmbeddingService] = None,
        client: Optional[Any] = None,
    ):
        self.settings = settings
        self.embedding_service = embeddings or EmbeddingService(settings)

        if client is None:
            persist_dir = Path(settings.VECTOR_DB_PATH)
            persist_dir.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(
                path=str(persist_dir),
                settings=ChromaSettings(anonymized_telemetry=False),
            )
        self.client = client
        self._vector_store: Optional[Chroma] = None

    def is_available(self) -> bool:
        return self.embedding_service.is_available()

    def get_collection(self):
        return self.client.get_or_create_collection(
            name=self.COLLECTION_SECTIONS,
            metadata={"hnsw:space": "cosine"},
        )

    def get_vector_store(self) -> Chroma:
        """LangChain wrapper over the sections collection."""
        if self._vector_store is None:
            self._vector_store = Chroma(
                client=self.client,
                collection_name=self.COLLECTION_SECTIONS,
                embedding_function=self.embedding_service.embeddings,
                collection_metadata={"hnsw:space": "cosine"},
            )
        return self._vector_store

    async def index_sections(self, content_id: str, sections: Sequence[ContentSection]) -> int:
        """
        Replace the stored embeddings of one content item.

        Returns:
            Number of sections embedded
        """
        if not self.is_available():
            logger.warning("Embeddings API key not configured, skipping indexing of %s", content_id)
            return 0

        await self.delete_content(content_id)
        if not sections:
            return 0

        vector_store = self.get_vector_store()
        for start in range(0, len(sections), self.UPSERT_BATCH_SIZE):
            batch = sections[start:start + self.UPSERT_BATCH_SIZE]
            await asyncio.to_thread(
                vector_store.add_texts,
                texts=[
                    self.embedding_service.prepare(f"{s.title}\n\n{s.content_text}")
                    for s in batch
                ],
                metadatas=[
                    {
                        "content_id": content_id,
                        "section_id": s.id,
                        "index": start + offset,
                    }
                    for offset, s in enumerate(batch)
                ],
                ids=[s.id for s in batch],
            )

        logger.info("Stored %d section embeddings for content %s", len(sections), content_id)
        return len(sections)

    async def search(
        self,
        query: str,
        content_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[SectionHit]:
        """Rank sections by cosine similarity to `query`."""
        if not self.is_available():
            return []

        vector_store = self.get_vector_store()
        results = await asyncio.to_thread(
            vector_store.similarity_search_with_score,
            query,
            k=limit,
            filter={"content_id": content_id} if content_id else None,
        )

        hits = []
        for document, distance in results:
            section_id = (document.metadata or {}).get("section_id")
            if section_id:
                hits.append(SectionHit(section_id=str(section_id), score=1.0 - float(distance)))
        return hits

    async def delete_content(self, content_id: str) -> None:
        collection = self.get_collection()
        await asyncio.to_thread(collection.delete, where={"content_id": content_id})


async def index_content(repository: Repository, store: ContentVectorStore, content_id: str) -> int:
    """Embed every section of a content item. Used as a background task."""
    sections = await repository.get_sections(content_id)
    if not sections:
        logger.warning("No sections found for content %s", content_id)
        return 0
    return await store.index_sections(content_id, sections)
