"""Header-aware, token-bounded markdown chunking."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docfeed.ingestion.models import Chunk, NormalizedDocument

if TYPE_CHECKING:
    import tiktoken

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]

# Coarsest first: paragraph, line, sentence, word, character.
SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")

DEFAULT_ENCODING = "cl100k_base"
MIN_CHUNK_CHARS = 50

_HEADING_RE = re.compile(r"^(#{1,3})[ \t]+(.*)$")


@lru_cache(maxsize=4)
def _encoding(name: str) -> tiktoken.Encoding:
    import tiktoken

    return tiktoken.get_encoding(name)


def tiktoken_counter(encoding_name: str = DEFAULT_ENCODING) -> TokenCounter:
    """Token counter backed by a ``tiktoken`` BPE (GPT-4 family by default).

    The encoding is loaded on first use, not at construction.
    """

    def count(text: str) -> int:
        return len(_encoding(encoding_name).encode(text, disallowed_special=()))

    return count


@dataclass
class Section:
    """Body lines that sit under one combination of H1/H2/H3."""

    h1: str | None = None
    h2: str | None = None
    h3: str | None = None
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()


def iter_sections(markdown: str) -> Iterator[Section]:
    """Walk *markdown* line by line, tracking the current heading path.

    A heading line ends the section in progress.  ``#`` resets H2 and H3,
    ``##`` resets H3.  Heading lines themselves are not section content.
    """
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None
    lines: list[str] = []

    for line in markdown.split("\n"):
        match = _HEADING_RE.match(line)
        if match is None:
            lines.append(line)
            continue

        if lines:
            yield Section(h1=h1, h2=h2, h3=h3, lines=lines)
            lines = []

        level, title = len(match.group(1)), match.group(2).strip()
        if level == 1:
            h1, h2, h3 = title, None, None
        elif level == 2:
            h2, h3 = title, None
        else:
            h3 = title

    if lines:
        yield Section(h1=h1, h2=h2, h3=h3, lines=lines)


class MarkdownChunker:
    """Split normalised documents into overlapping, token-bounded chunks.

    Parameters
    ----------
    chunk_size:
        Maximum tokens per chunk.
    chunk_overlap:
        Tokens shared between consecutive chunks of the same section.
    token_counter:
        ``str -> int``.  Defaults to the ``cl100k_base`` tokenizer.
    min_chunk_chars:
        Chunks whose stripped content is shorter than this are dropped.
    """

    def __init__(
        self,
        chunk_size: int = 1800,
        chunk_overlap: int = 270,
        *,
        token_counter: TokenCounter | None = None,
        min_chunk_chars: int = MIN_CHUNK_CHARS,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and < chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.min_chunk_chars = min_chunk_chars
        self.count_tokens = token_counter or tiktoken_counter()
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=self.count_tokens,
            separators=list(SEPARATORS),
        )

    def split_text(self, text: str) -> list[str]:
        """Recursive-separator split of a single section body."""
        return self._splitter.split_text(text)

    def chunk(
        self,
        document: NormalizedDocument,
        source_id: str,
        *,
        start_index: int = 0,
    ) -> Iterator[Chunk]:
        """Yield the chunks of *document* lazily, in document order."""
        index = start_index
        fallback_h1 = document.frontmatter.h1
        for section in iter_sections(document.body):
            text = section.text
            if not text:
                continue
            for piece in self.split_text(text):
                piece = piece.strip()
                if len(piece) < self.min_chunk_chars:
                    logger.debug(
                        "Dropping %d-char chunk from %s (%s)",
                        len(piece),
                        document.path,
                        section.h3 or section.h2 or section.h1 or "preamble",
                    )
                    continue
                yield Chunk(
                    content=piece,
                    source_id=source_id,
                    chunk_index=index,
                    title=document.title,
                    url=document.url,
                    file_path=document.relative_path or document.path,
                    h1=section.h1 or fallback_h1,
                    h2=section.h2,
                    h3=section.h3,
                    tokens=self.count_tokens(piece),
                )
                index += 1


def chunk_documents(
    documents: Iterable[NormalizedDocument],
    source_id: str,
    chunker: MarkdownChunker,
) -> Iterator[Chunk]:
    """Chunk many documents with a single running ``chunk_index``."""
    index = 0
    for document in documents:
        for chunk in chunker.chunk(document, source_id, start_index=index):
            index = chunk.chunk_index + 1
            yield chunk
