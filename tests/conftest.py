"""Shared pytest configuration, fakes and fixtures."""

from __future__ import annotations

import math
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
from langchain_core.embeddings import Embeddings

from docfeed.config import Settings
from docfeed.errors import VectorStoreError
from docfeed.ingestion.chunker import TokenCounter
from docfeed.ingestion.models import Chunk
from docfeed.retrieval.base import VectorStoreBase
from docfeed.retrieval.models import ChunkMetadata, SearchResult, StoredChunk


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


def count_words(text: str) -> int:
    """Whitespace token counter; no tokenizer download needed."""
    return len(text.split())


# ── Fake embedding provider ─────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Deterministic letter-histogram vectors; no network."""

    def __init__(self, dim: int = 8, *, healthy: bool = True, fail_on: str | None = None) -> None:
        self.dim = dim
        self.healthy = healthy
        self.fail_on = fail_on
        self.model = "fake-embed"
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed_query(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError(f"provider rejected {text[:20]!r}")
        vector = [0.0] * self.dim
        for ch in text.lower():
            if ch.isalnum():
                vector[ord(ch) % self.dim] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]

    def check_health(self) -> bool:
        return self.healthy


# ── In-memory vector store ──────────────────────────────────────────────


def _cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return max(0.0, 1.0 - dot / norm) if norm else 1.0


class InMemoryVectorStore(VectorStoreBase):
    """Exact cosine search over Python lists."""

    def __init__(self, embedder: Any = None) -> None:
        super().__init__(embedder=embedder, embedding_model="fake-embed")
        self.collections: dict[str, list[tuple[str, dict[str, Any], list[float]]]] = {}
        self.failing_queries: set[str] = set()
        self.fail_upserts = False
        self.opened = False

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.opened = False

    def upsert(self, collection: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        if len(chunks) != len(vectors):
            raise ValueError("length mismatch")
        if not chunks:
            return
        if self.fail_upserts:
            raise VectorStoreError("disk full")
        rows = self.collections.setdefault(collection, [])
        for chunk, vector in zip(chunks, vectors):
            rows.append((chunk.content, ChunkMetadata.from_chunk(chunk).to_store(), list(vector)))

    def query(self, collection: str, vector: Sequence[float], limit: int = 5) -> list[SearchResult]:
        if collection in self.failing_queries:
            raise VectorStoreError(f"{collection} is corrupt")
        rows = self.collections.get(collection, [])
        hits = [
            SearchResult(
                content=content,
                metadata=ChunkMetadata.from_store(meta),
                distance=_cosine_distance(vector, stored),
            )
            for content, meta, stored in rows
        ]
        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    def get_documents(self, collection: str, offset: int = 0, limit: int = 20) -> list[StoredChunk]:
        rows = self.collections.get(collection, [])[max(0, offset) : max(0, offset) + max(0, limit)]
        return [StoredChunk(content=content, metadata=ChunkMetadata.from_store(meta)) for content, meta, _ in rows]

    def delete_collection(self, collection: str) -> None:
        self.collections.pop(collection, None)

    def rename_collection(self, old: str, new: str) -> None:
        self.collections[new] = self.collections.pop(old)

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection, []))

    def _all_collections(self) -> list[str]:
        return list(self.collections)

    def health_check(self) -> bool:
        return True


class FixedDistanceStore(InMemoryVectorStore):
    """Rows carry their distance as a one-element vector; the query vector is ignored."""

    def query(self, collection: str, vector: Sequence[float], limit: int = 5) -> list[SearchResult]:
        if collection in self.failing_queries:
            raise VectorStoreError(f"{collection} is corrupt")
        rows = self.collections.get(collection, [])
        hits = [
            SearchResult(content=content, metadata=ChunkMetadata.from_store(meta), distance=stored[0])
            for content, meta, stored in rows
        ]
        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    def add_hits(self, collection: str, distances: Sequence[float]) -> None:
        """Seed *collection* with one row per distance, in the given order."""
        rows = self.collections.setdefault(collection, [])
        for i, d in enumerate(distances):
            meta = ChunkMetadata(source_id=collection, title=f"{collection}-{i}").to_store()
            rows.append((f"{collection} chunk {i}", meta, [d]))


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def fake_provider() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        registry_path=tmp_path / "feedd.config.json",
        embedding_dim=0,
        chunk_size=200,
        chunk_overlap=20,
        min_chunk_chars=20,
        _env_file=None,
    )


@pytest.fixture()
def docs_dir(tmp_path: Path) -> Path:
    """A small crawled-site directory with two documents."""
    root = tmp_path / "site"
    (root / "guide").mkdir(parents=True)
    (root / "guide" / "install.md").write_text(
        "---\n"
        "title: Installation\n"
        "url: https://docs.example.com/guide/install\n"
        "---\n"
        "# Installation\n\n"
        "Install the package with pip and verify the version afterwards.\n\n"
        "## Configuration\n\n"
        "Configuration lives in a TOML file next to your project settings.\n",
        encoding="utf-8",
    )
    (root / "usage.md").write_text(
        "# Usage\n\n"
        "Call the client with a timeout so slow servers never block forever.\n\n"
        "## Retries\n\n"
        "Retries use exponential backoff with jitter between every attempt.\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def make_provider() -> type[FakeEmbeddings]:
    """The fake provider class, for tests that need non-default behaviour."""
    return FakeEmbeddings


@pytest.fixture()
def fixed_store() -> FixedDistanceStore:
    return FixedDistanceStore()


@pytest.fixture()
def word_counter() -> TokenCounter:
    return count_words
