"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docfeed.errors import VectorStoreError
from docfeed.retrieval.base import VectorStoreBase
from docfeed.retrieval.models import ChunkMetadata, SearchResult, StoredChunk

if TYPE_CHECKING:
    from docfeed.config import Settings
    from docfeed.ingestion.embedder import EmbeddingBatcher
    from docfeed.ingestion.models import Chunk

logger = logging.getLogger(__name__)

DISTANCE_METRIC = "cosine"
UPSERT_BATCH_SIZE = 5000


def _collection_names(listed: Sequence[Any]) -> list[str]:
    # chromadb 0.6 returns names, other releases return Collection objects.
    return [item if isinstance(item, str) else item.name for item in listed]


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store, one Chroma collection per source.

    Parameters
    ----------
    path:
        Directory of an embedded, file-backed store.  Ignored when *host*
        is set.
    host, port:
        Address of a Chroma server.
    client:
        Pre-built Chroma client; skips connection setup in :meth:`open`.
    embedder:
        Used for text queries.
    embedding_model:
        Recorded on created collections; defaults to the embedder's model.
    """

    def __init__(
        self,
        *,
        path: str | Path | None = None,
        host: str | None = None,
        port: int = 8000,
        client: Any = None,
        embedder: EmbeddingBatcher | None = None,
        embedding_model: str = "",
        upsert_batch_size: int = UPSERT_BATCH_SIZE,
    ) -> None:
        super().__init__(embedder=embedder, embedding_model=embedding_model)
        if path is None and host is None and client is None:
            raise ValueError("ChromaVectorStore needs a path, a host or a client")
        self._path = Path(path) if path is not None else None
        self._host = host
        self._port = port
        self._client = client
        self._owns_client = client is None
        self.upsert_batch_size = upsert_batch_size

    @classmethod
    def from_settings(cls, settings: Settings, embedder: EmbeddingBatcher | None = None) -> ChromaVectorStore:
        if settings.vector_backend == "http":
            return cls(
                host=settings.chroma_host,
                port=settings.chroma_port,
                embedder=embedder,
                embedding_model=settings.embedding_model,
            )
        return cls(path=settings.vectordb_path, embedder=embedder, embedding_model=settings.embedding_model)

    # -- lifecycle --------------------------------------------------------------

    def open(self) -> None:
        if self._client is not None:
            return
        import chromadb

        if self._host is not None:
            logger.info("Connecting to Chroma at %s:%d", self._host, self._port)
            self._client = chromadb.HttpClient(host=self._host, port=self._port)
        elif self._path is not None:
            self._path.mkdir(parents=True, exist_ok=True)
            logger.info("Opening Chroma store in %s", self._path)
            self._client = chromadb.PersistentClient(path=str(self._path))
        else:
            raise VectorStoreError(
                "Vector store has no path or host to open",
                hint="Pass a fresh client, or construct the store with a path or host.",
            )

    def close(self) -> None:
        if self._owns_client:
            self._client = None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise VectorStoreError(
                "Vector store is not open",
                hint="Call open() (or use the store as a context manager) before querying it.",
            )
        return self._client

    # -- helpers ----------------------------------------------------------------

    def _all_collections(self) -> list[str]:
        return _collection_names(self.client.list_collections())

    def _get(self, collection: str) -> Any | None:
        if collection not in self._all_collections():
            return None
        return self.client.get_collection(collection)

    def _get_or_create(self, collection: str, dimension: int) -> Any:
        existing = self._get(collection)
        if existing is None:
            return self.client.create_collection(
                collection,
                metadata={
                    "hnsw:space": DISTANCE_METRIC,
                    "embedding_model": self.embedding_model,
                    "embedding_dim": dimension,
                },
            )

        meta = existing.metadata or {}
        stored_dim = meta.get("embedding_dim")
        stored_model = meta.get("embedding_model")
        if stored_dim is not None and stored_dim != dimension:
            raise VectorStoreError(
                f"Collection {collection!r} holds {stored_dim}-dim vectors, got {dimension}",
                hint=f'Re-index the source with "docfeed sync {collection}".',
            )
        if stored_model and self.embedding_model and stored_model != self.embedding_model:
            raise VectorStoreError(
                f"Collection {collection!r} was built with {stored_model!r}, "
                f"not {self.embedding_model!r}",
                hint=f'Re-index the source with "docfeed sync {collection}".',
            )
        return existing

    # -- VectorStoreBase overrides ----------------------------------------------

    def upsert(self, collection: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        if len(chunks) != len(vectors):
            raise ValueError(
                f"Chunks and vectors must have the same length ({len(chunks)} != {len(vectors)})"
            )
        if not chunks:
            return

        dimension = len(vectors[0])
        if any(len(v) != dimension for v in vectors):
            raise VectorStoreError("All vectors written to one collection must share a dimension")

        target = self._get_or_create(collection, dimension)

        stamp = time.time_ns()
        ids = [f"chunk_{stamp}_{i}" for i in range(len(chunks))]
        documents = [chunk.content for chunk in chunks]
        metadatas = [ChunkMetadata.from_chunk(chunk).to_store() for chunk in chunks]
        embeddings = [[float(x) for x in v] for v in vectors]

        for start in range(0, len(ids), self.upsert_batch_size):
            end = start + self.upsert_batch_size
            try:
                target.upsert(
                    ids=ids[start:end],
                    embeddings=embeddings[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )
            except Exception as exc:
                raise VectorStoreError(f"Failed to add chunks to {collection!r}: {exc}") from exc
            logger.debug("  upserted %s[%d:%d]", collection, start, min(end, len(ids)))

    def query(self, collection: str, vector: Sequence[float], limit: int = 5) -> list[SearchResult]:
        if limit < 1:
            return []
        target = self._get(collection)
        if target is None:
            return []
        size = target.count()
        if size == 0:
            return []

        results = target.query(
            query_embeddings=[[float(x) for x in vector]],
            n_results=min(limit, size),
            include=["documents", "metadatas", "distances"],
        )

        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits: list[SearchResult] = []
        for content, meta, dist in zip(docs, metas, distances):
            hits.append(
                SearchResult(
                    content=content or "",
                    metadata=ChunkMetadata.from_store(meta, default_source=collection),
                    # float error can put identical vectors a hair below zero
                    distance=max(0.0, float(dist)),
                )
            )
        return hits

    def get_documents(self, collection: str, offset: int = 0, limit: int = 20) -> list[StoredChunk]:
        target = self._get(collection)
        if target is None or limit < 1:
            return []
        page = target.get(limit=limit, offset=max(0, offset), include=["documents", "metadatas"])
        docs = page.get("documents") or []
        metas = page.get("metadatas") or []
        return [
            StoredChunk(content=content or "", metadata=ChunkMetadata.from_store(meta, default_source=collection))
            for content, meta in zip(docs, metas)
        ]

    def delete_collection(self, collection: str) -> None:
        if collection in self._all_collections():
            self.client.delete_collection(collection)
            logger.info("Deleted collection %s", collection)

    def rename_collection(self, old: str, new: str) -> None:
        target = self._get(old)
        if target is None:
            raise VectorStoreError(f"Cannot rename missing collection {old!r}")
        target.modify(name=new)

    def count(self, collection: str) -> int:
        target = self._get(collection)
        return 0 if target is None else int(target.count())

    def health_check(self) -> bool:
        try:
            self.client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
