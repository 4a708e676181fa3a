"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`VectorStoreBase` and
implementing the abstract methods.  Text queries, the staging-collection
swap used on re-index and the ``open()`` / ``close()`` context-manager
protocol are shared.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docfeed.errors import InvalidSourceSpecError, VectorStoreError
from docfeed.retrieval.models import SearchResult, StoredChunk

if TYPE_CHECKING:
    from docfeed.ingestion.embedder import EmbeddingBatcher
    from docfeed.ingestion.models import Chunk

logger = logging.getLogger(__name__)

STAGING_SUFFIX = "--staging"
# chromadb rejects longer collection names
MAX_COLLECTION_NAME = 63


def staging_name(collection: str) -> str:
    """Name of the collection a re-index is written into before the swap."""
    return f"{collection}{STAGING_SUFFIX}"


def is_staging(collection: str) -> bool:
    return collection.endswith(STAGING_SUFFIX)


def check_collection_name(collection: str) -> None:
    """Raise when *collection* cannot be rebuilt because its staging name is too long."""
    if len(staging_name(collection)) > MAX_COLLECTION_NAME:
        limit = MAX_COLLECTION_NAME - len(STAGING_SUFFIX)
        raise InvalidSourceSpecError(
            f"Source ID {collection!r} is {len(collection)} characters long; the limit is {limit}",
            hint="Add the source with a shorter URL (for example the docs root) or repository name.",
        )


class VectorStoreBase(ABC):
    """Backend-agnostic, collection-scoped vector-store interface.

    Parameters
    ----------
    embedder:
        Used by :meth:`query_text` to turn a query into a vector.
    embedding_model:
        Recorded on every collection this store creates.
    """

    def __init__(
        self,
        *,
        embedder: EmbeddingBatcher | None = None,
        embedding_model: str = "",
    ) -> None:
        self.embedder = embedder
        self.embedding_model = embedding_model or (embedder.model_name if embedder else "")

    # -- lifecycle --------------------------------------------------------------

    @abstractmethod
    def open(self) -> None:
        """Acquire the underlying connection."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection.  Safe to call twice."""

    def __enter__(self) -> VectorStoreBase:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- required overrides -----------------------------------------------------

    @abstractmethod
    def upsert(self, collection: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        """Store ``chunks[i]`` with ``vectors[i]``; create *collection* on first write.

        Raises ``ValueError`` when the sequences differ in length.  Empty
        input is a no-op.
        """

    @abstractmethod
    def query(self, collection: str, vector: Sequence[float], limit: int = 5) -> list[SearchResult]:
        """Return up to *limit* nearest chunks, ascending cosine distance.

        A collection that does not exist yields ``[]``.
        """

    @abstractmethod
    def get_documents(self, collection: str, offset: int = 0, limit: int = 20) -> list[StoredChunk]:
        """Page through *collection* in storage order, without a query.

        A missing collection or a page past the end yields ``[]``.
        """

    @abstractmethod
    def delete_collection(self, collection: str) -> None:
        """Drop *collection*.  Dropping a missing collection succeeds."""

    @abstractmethod
    def rename_collection(self, old: str, new: str) -> None:
        """Give collection *old* the name *new* (which must be free)."""

    @abstractmethod
    def count(self, collection: str) -> int:
        """Number of chunks in *collection*; 0 when it does not exist."""

    @abstractmethod
    def _all_collections(self) -> list[str]:
        """Every collection name, staging ones included."""

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""

    # -- shared behaviour -------------------------------------------------------

    def list_collections(self) -> list[str]:
        """Live collection names (collections mid re-index are hidden)."""
        return [name for name in self._all_collections() if not is_staging(name)]

    def query_text(self, collection: str, text: str, limit: int = 5) -> list[SearchResult]:
        """Embed *text* with the configured embedder, then :meth:`query`."""
        if self.embedder is None:
            raise VectorStoreError(f"{type(self).__name__} has no embedder for text queries")
        return self.query(collection, self.embedder.embed_query(text), limit)

    def replace_collection(
        self,
        collection: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> int:
        """Swap the contents of *collection* for a new chunk set.

        Everything is written to a staging collection first.  The live
        collection is only dropped once the staging copy is complete, so a
        failure while writing leaves the previous contents searchable.
        """
        if not chunks:
            raise ValueError(f"Refusing to replace {collection!r} with an empty chunk set")
        check_collection_name(collection)

        staging = staging_name(collection)
        self.delete_collection(staging)
        try:
            self.upsert(staging, chunks, vectors)
        except Exception:
            logger.warning("Writing %s failed; keeping the current collection", staging)
            self.delete_collection(staging)
            raise

        self.delete_collection(collection)
        self.rename_collection(staging, collection)
        logger.info("Collection %s now holds %d chunks", collection, len(chunks))
        return len(chunks)
