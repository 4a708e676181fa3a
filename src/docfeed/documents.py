"""Full-document lookup for search results."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from docfeed.errors import DocumentNotFoundError
from docfeed.ingestion.loader import find_markdown_files, split_frontmatter
from docfeed.sources import Source

logger = logging.getLogger(__name__)


def get_document(locator: str, sources: Iterable[Source], data_dir: Path) -> str:
    """Return the raw markdown of the document behind *locator*.

    *locator* is either a page URL (matched against each file's ``url``
    frontmatter) or ``<source_id>:<relative path>`` as found in
    :attr:`ChunkMetadata.locator`.
    """
    sources = list(sources)
    source_id, sep, relative = locator.partition(":")
    by_id = {s.id: s for s in sources}

    if sep and source_id in by_id and not relative.startswith("//"):
        root = by_id[source_id].content_dir(data_dir).resolve()
        target = (root / relative).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            raise DocumentNotFoundError(locator)
        return target.read_text(encoding="utf-8", errors="replace")

    for source in sources:
        for path in find_markdown_files(source.content_dir(data_dir)):
            text = path.read_text(encoding="utf-8", errors="replace")
            frontmatter, _ = split_frontmatter(text.replace("\r\n", "\n"))
            if frontmatter.url == locator:
                logger.debug("Resolved %s to %s", locator, path)
                return text

    raise DocumentNotFoundError(locator)
