"""Ingestion pipeline: discover → chunk → embed → store for one source.

Each phase is a plain call into the ingestion / retrieval modules; this
class only sequences them, records status transitions in the registry and
annotates failures with the phase that broke.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from docfeed.errors import ConfigurationError, IndexingError, NoContentError
from docfeed.ingestion.chunker import MarkdownChunker, chunk_documents
from docfeed.ingestion.loader import find_markdown_files, load_markdown_file
from docfeed.retrieval.base import check_collection_name
from docfeed.sources import Source, looks_like_url, parse_repo_spec, source_id_from_repo, source_id_from_url

if TYPE_CHECKING:
    from docfeed.ingestion.embedder import EmbeddingBatcher
    from docfeed.retrieval.base import VectorStoreBase
    from docfeed.sources import SourceRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexReport:
    """Outcome of one successful ingestion run."""

    source_id: str
    files: int
    chunks: int
    elapsed_seconds: float

    def __str__(self) -> str:
        return (
            f"Indexed {self.chunks} chunks from {self.files} files "
            f"into '{self.source_id}' in {self.elapsed_seconds:.1f}s"
        )


class Indexer:
    """Build and rebuild source collections.

    Parameters
    ----------
    registry:
        Source records; status, counts and errors are written back here.
    chunker:
        Splits normalised documents.
    embedder:
        Embeds chunk texts.  Its availability is checked before bulk work.
    store:
        An opened vector store.
    data_dir:
        Root under which each source's markdown files live.
    """

    def __init__(
        self,
        *,
        registry: SourceRegistry,
        chunker: MarkdownChunker,
        embedder: EmbeddingBatcher,
        store: VectorStoreBase,
        data_dir: Path,
    ) -> None:
        self.registry = registry
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.data_dir = Path(data_dir)

    # -- public API -------------------------------------------------------------

    def add_source(
        self,
        spec: str,
        *,
        root: Path | None = None,
        branch: str | None = None,
        max_depth: int | None = None,
        max_pages: int | None = None,
    ) -> IndexReport:
        """Register *spec* (a URL or ``owner/repo[@branch]``) and index it."""
        if looks_like_url(spec):
            check_collection_name(source_id_from_url(spec))
            source = self.registry.add_web(spec, max_depth=max_depth, max_pages=max_pages)
        else:
            owner, repo, parsed_branch = parse_repo_spec(spec)
            branch = branch or parsed_branch
            check_collection_name(source_id_from_repo(owner, repo, branch))
            source = self.registry.add_repo(owner, repo, branch)
        return self.index_source(source.id, root=root)

    def index_source(self, source_id: str, *, root: Path | None = None) -> IndexReport:
        """(Re-)index a registered source from the markdown files under *root*.

        *root* defaults to the directory an earlier run was given, else the
        directory the fetcher fills for the source.  An explicit *root* is
        recorded on the source.
        The previous collection stays searchable until the new one is
        completely written.

        Raises
        ------
        SourceNotFoundError
            *source_id* is not registered; nothing is attempted.
        IndexingError
            Any later failure, with ``phase`` set to ``discover``, ``chunk``,
            ``embed`` or ``store``.  The source is left in ``error`` status.
        """
        source = self.registry.require(source_id)
        changes: dict[str, object] = {"status": "indexing", "error": None}
        if root is not None:
            root = Path(root).resolve()
            # get_document resolves <source_id>:<path> locators against this root
            changes["root"] = None if root == source.root_dir(self.data_dir).resolve() else root
        source = self.registry.update(source.id, **changes)
        root = source.content_dir(self.data_dir)
        logger.info(
            "Indexing %s from %s (chunk_size=%d, overlap=%d tokens)",
            source.id,
            root,
            self.chunker.chunk_size,
            self.chunker.chunk_overlap,
        )

        t0 = time.monotonic()
        phase = "discover"
        try:
            files = find_markdown_files(root)
            if not files:
                raise NoContentError(
                    f"No markdown files found in {root}",
                    hint="Make sure the source was crawled or cloned successfully.",
                )
            logger.info("Found %d markdown files", len(files))

            phase = "chunk"
            documents = (load_markdown_file(path, root) for path in files)
            chunks = list(chunk_documents(documents, source.id, self.chunker))
            if not chunks:
                raise NoContentError(
                    "No content to index",
                    hint="The documents produced no chunks; check that they contain prose.",
                )
            logger.info("Produced %d chunks from %d documents", len(chunks), len(files))

            phase = "embed"
            self.embedder.ensure_available()
            vectors = self.embedder.embed([chunk.embedding_text for chunk in chunks])

            phase = "store"
            self.store.replace_collection(source.id, chunks, vectors)
        except Exception as exc:
            self.registry.update(source.id, status="error", error=str(exc))
            raise IndexingError(source.id, phase, exc) from exc

        self.registry.update(
            source.id,
            status="ready",
            doc_count=len(chunks),
            last_updated=datetime.now(timezone.utc),
            error=None,
        )
        report = IndexReport(
            source_id=source.id,
            files=len(files),
            chunks=len(chunks),
            elapsed_seconds=time.monotonic() - t0,
        )
        logger.info("%s", report)
        return report

    def remove_source(self, source_id: str, *, delete_files: bool = True) -> Source:
        """Drop a source's collection, its markdown files and its registry entry.

        Only the managed directory under ``data_dir`` is deleted.  A directory
        the source was indexed from with ``root=`` belongs to the user and is
        left in place.
        """
        source = self.registry.require(source_id)
        managed = source.root_dir(self.data_dir).resolve()
        if delete_files and not managed.is_relative_to(self.data_dir.resolve()):
            raise ConfigurationError(f"Refusing to delete {managed}: outside {self.data_dir}")

        self.store.delete_collection(source.id)

        if delete_files:
            if managed.exists():
                shutil.rmtree(managed)
                logger.info("Deleted %s", managed)
            if source.root is not None:
                logger.info("Leaving %s in place; it was not created by docfeed", source.root)

        self.registry.remove(source.id)
        return source
