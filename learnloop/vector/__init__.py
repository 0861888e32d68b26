"""Vector database operations using ChromaDB.

This module provides:
- The SectionSearch contract used by context assembly
- ContentVectorStore, the Chroma-backed implementation
"""

from .content_store import ContentVectorStore, index_content
from .embeddings import EmbeddingService
from .search import SectionHit, SectionSearch

__all__ = [
    "ContentVectorStore",
    "EmbeddingService",
    "SectionHit",
    "SectionSearch",
    "index_content",
]
