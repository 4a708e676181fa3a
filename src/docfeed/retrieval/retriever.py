"""Semantic retriever: fan a query out over source collections and merge.

Usage::

    retriever = SemanticRetriever(store, embedder)
    for hit in retriever.search("How do I configure retries?", limit=5):
        print(hit.metadata.source_id, hit.distance, hit.content[:80])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docfeed.retrieval.base import VectorStoreBase
from docfeed.retrieval.models import SearchResult

if TYPE_CHECKING:
    from docfeed.ingestion.embedder import EmbeddingBatcher

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """Query one or every collection of a :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        An opened vector-store backend.
    embedder:
        Turns query text into a vector.  Falls back to ``store.embedder``.
    default_limit:
        Number of results when the caller does not pass ``limit``.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingBatcher | None = None,
        *,
        default_limit: int = 5,
    ) -> None:
        self._store = store
        self._embedder = embedder or store.embedder
        self.default_limit = default_limit

    # -- public API -------------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        source: str | None = None,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """Embed *query* once and return the closest chunks.

        Parameters
        ----------
        query:
            Natural-language search text.
        source:
            Restrict the search to this collection.  ``None`` searches all.
        limit:
            Maximum number of results (defaults to ``self.default_limit``).

        Returns
        -------
        list[SearchResult]
            Ascending distance.  Empty when nothing is indexed.
        """
        if self._embedder is None:
            raise ValueError("SemanticRetriever needs an embedder for text queries")
        limit = self._check_limit(limit)
        vector = self._embedder.embed_query(query)
        return self.search_by_embedding(vector, source=source, limit=limit)

    def search_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        source: str | None = None,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        limit = self._check_limit(limit)
        if source is not None:
            return self._store.query(source, embedding, limit)[:limit]

        collections = self._store.list_collections()
        merged: list[SearchResult] = []
        for name in collections:
            try:
                merged.extend(self._store.query(name, embedding, limit))
            except Exception:
                logger.warning("Skipping collection %s: query failed", name, exc_info=True)

        # sort is stable: equal distances keep collection order
        merged.sort(key=lambda hit: hit.distance)
        logger.debug("Merged %d hits from %d collections", len(merged), len(collections))
        return merged[:limit]

    # -- internals --------------------------------------------------------------

    def _check_limit(self, limit: int | None) -> int:
        limit = self.default_limit if limit is None else limit
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        return limit
