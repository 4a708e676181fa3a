"""Application context: the one place clients are built and released.

Entry points create a single :class:`AppContext`, open it, and hand its
members to whatever needs them::

    with AppContext(get_settings()) as ctx:
        ctx.indexer.index_source("docs-python-org-3")
        hits = ctx.retriever.search("asyncio timeouts")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docfeed.config import Settings
from docfeed.documents import get_document
from docfeed.ingestion.chunker import MarkdownChunker, TokenCounter
from docfeed.ingestion.embedder import EmbeddingBatcher
from docfeed.ingestion.pipeline import Indexer
from docfeed.retrieval.retriever import SemanticRetriever
from docfeed.sources import Source, SourceRegistry

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from docfeed.retrieval.base import VectorStoreBase
    from docfeed.retrieval.models import SearchResult

logger = logging.getLogger(__name__)


class AppContext:
    """Owns the registry, embedder, vector store, indexer and retriever.

    Parameters
    ----------
    settings:
        Resolved configuration.
    provider:
        Embedding provider override (tests pass a fake).
    store:
        Vector store override.  Defaults to a Chroma store from *settings*.
    token_counter:
        Chunker token counter override.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: Embeddings | None = None,
        store: VectorStoreBase | None = None,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self.settings = settings
        self.registry = SourceRegistry(settings.registry_path)
        self.embedder = EmbeddingBatcher.from_settings(settings, provider)
        if store is None:
            from docfeed.retrieval.chroma_store import ChromaVectorStore

            store = ChromaVectorStore.from_settings(settings, embedder=self.embedder)
        self.store = store
        self.chunker = MarkdownChunker(
            settings.chunk_size,
            settings.chunk_overlap,
            token_counter=token_counter,
            min_chunk_chars=settings.min_chunk_chars,
        )
        self.indexer = Indexer(
            registry=self.registry,
            chunker=self.chunker,
            embedder=self.embedder,
            store=self.store,
            data_dir=settings.data_dir,
        )
        self.retriever = SemanticRetriever(
            self.store,
            self.embedder,
            default_limit=settings.search_limit,
        )
        self._open = False

    # -- lifecycle --------------------------------------------------------------

    def open(self) -> AppContext:
        if not self._open:
            self.store.open()
            self._open = True
        return self

    def close(self) -> None:
        if self._open:
            self.store.close()
            self._open = False

    def __enter__(self) -> AppContext:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- query surface ----------------------------------------------------------

    def list_sources(self) -> list[Source]:
        return self.registry.list_sources()

    def search(self, query: str, *, source: str | None = None, limit: int | None = None) -> list[SearchResult]:
        return self.retriever.search(query, source=source, limit=limit)

    def get_document(self, locator: str) -> str:
        return get_document(locator, self.registry.list_sources(), self.settings.data_dir)
