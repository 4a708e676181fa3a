"""
Retrieval — vector storage and multi-collection search.

This module wraps the vector store behind a clean interface so that
callers never need to know which DB is backing retrieval.

Public surface
--------------
- :class:`SemanticRetriever` — query one or all source collections.
- :class:`VectorStoreBase` — abstract backend.
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`SearchResult`, :class:`ChunkMetadata` — data models.
"""

from docfeed.retrieval.base import VectorStoreBase
from docfeed.retrieval.models import ChunkMetadata, SearchResult
from docfeed.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "ChunkMetadata",
    "SearchResult",
    "SemanticRetriever",
    "VectorStoreBase",
]


def __getattr__(name: str) -> type:
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from docfeed.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
