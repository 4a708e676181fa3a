"""Domain models for stored chunks and search results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from docfeed.ingestion.models import Chunk

# Stored in place of None: the vector store only accepts scalar metadata
# and every record must carry every field.
_EMPTY_TEXT = ""
_UNKNOWN_TOKENS = -1


class ChunkMetadata(BaseModel):
    """Provenance stored next to every chunk vector.

    Attributes
    ----------
    source_id:
        Source (and collection) the chunk belongs to.
    title:
        Title of the originating document.
    url:
        Page URL for crawled sources.
    h1, h2, h3:
        Heading path the chunk sits under.
    file_path:
        Original file path, repo-relative where known.
    tokens:
        Token count of the chunk content.
    chunk_index:
        Creation order within the source.
    """

    source_id: str
    title: str = ""
    url: str | None = None
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None
    file_path: str = ""
    tokens: int | None = None
    chunk_index: int | None = None

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> ChunkMetadata:
        return cls(
            source_id=chunk.source_id,
            title=chunk.title,
            url=chunk.url,
            h1=chunk.h1,
            h2=chunk.h2,
            h3=chunk.h3,
            file_path=chunk.file_path,
            tokens=chunk.tokens,
            chunk_index=chunk.chunk_index,
        )

    def to_store(self) -> dict[str, str | int]:
        """Flat record with every field present and no ``None`` values."""
        return {
            "source_id": self.source_id,
            "title": self.title,
            "url": self.url or _EMPTY_TEXT,
            "h1": self.h1 or _EMPTY_TEXT,
            "h2": self.h2 or _EMPTY_TEXT,
            "h3": self.h3 or _EMPTY_TEXT,
            "file_path": self.file_path,
            "tokens": _UNKNOWN_TOKENS if self.tokens is None else self.tokens,
            "chunk_index": _UNKNOWN_TOKENS if self.chunk_index is None else self.chunk_index,
        }

    @classmethod
    def from_store(cls, record: dict[str, Any] | None, *, default_source: str = "") -> ChunkMetadata:
        """Inverse of :meth:`to_store`; tolerates records written by older versions."""
        record = record or {}

        def text(key: str) -> str | None:
            value = record.get(key)
            return str(value) if value not in (None, _EMPTY_TEXT) else None

        def number(key: str) -> int | None:
            value = record.get(key)
            return int(value) if isinstance(value, (int, float)) and value >= 0 else None

        return cls(
            source_id=str(record.get("source_id") or default_source),
            title=str(record.get("title") or ""),
            url=text("url"),
            h1=text("h1"),
            h2=text("h2"),
            h3=text("h3"),
            file_path=str(record.get("file_path") or ""),
            tokens=number("tokens"),
            chunk_index=number("chunk_index"),
        )

    @property
    def locator(self) -> str:
        """Argument for ``get_document`` that fetches the originating file."""
        return self.url or f"{self.source_id}:{self.file_path}"


class SearchResult(BaseModel):
    """One retrieved chunk.  Smaller ``distance`` means more similar."""

    content: str
    metadata: ChunkMetadata
    distance: float = Field(ge=0.0)

    def __str__(self) -> str:
        heading = self.metadata.h3 or self.metadata.h2 or self.metadata.h1 or self.metadata.title
        return f"[{self.metadata.source_id} › {heading}] ({self.distance:.4f}) {self.content[:120]}…"


class StoredChunk(BaseModel):
    """One chunk as read back from a collection, without a query."""

    content: str
    metadata: ChunkMetadata
