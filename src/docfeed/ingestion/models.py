"""Records flowing through the ingestion pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Frontmatter(BaseModel):
    """Known frontmatter keys.  Anything else in the block is dropped by the loader."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str | None = None
    url: str | None = None
    description: str | None = None
    h1: str | None = None


class NormalizedDocument(BaseModel):
    """One parsed markdown file.

    Attributes
    ----------
    body:
        Markdown content with the frontmatter block removed.
    title:
        Frontmatter title, else the first H1, else the filename stem.
    h1, h2, h3:
        First heading of each level in document order.
    path:
        Absolute (or caller-supplied) path of the file.
    url:
        Explicit page URL from the frontmatter (crawled sources).
    relative_path:
        Path relative to the source root (repository sources).
    """

    model_config = ConfigDict(frozen=True)

    body: str
    title: str
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None
    path: str
    url: str | None = None
    relative_path: str | None = None
    frontmatter: Frontmatter = Frontmatter()

    @property
    def locator(self) -> str:
        """Where a reader can fetch the original: URL first, then relative path."""
        return self.url or self.relative_path or self.path


class Chunk(BaseModel):
    """A bounded-size retrievable unit with the headings it sits under."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_id: str
    chunk_index: int
    title: str = ""
    url: str | None = None
    file_path: str = ""
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None
    tokens: int | None = None

    @property
    def header_path(self) -> str:
        """``h1 > h2 > h3`` for the headings that are set, or the title."""
        parts = [h for h in (self.h1, self.h2, self.h3) if h]
        return " > ".join(parts) if parts else self.title

    @property
    def embedding_text(self) -> str:
        """Text handed to the embedding model: header context, blank line, content."""
        prefix = self.header_path
        return f"{prefix}\n\n{self.content}" if prefix else self.content
