"""Exception hierarchy.

Every error carries an optional ``hint``, the corrective action shown to the
user next to the message by the CLI and the REST layer.
"""

from __future__ import annotations


class DocfeedError(Exception):
    """Base class for all docfeed errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


# -- configuration ------------------------------------------------------------


class ConfigurationError(DocfeedError):
    """A source or setting is missing or invalid; nothing was attempted."""


class SourceNotFoundError(ConfigurationError):
    def __init__(self, source_id: str) -> None:
        super().__init__(
            f'Source with ID "{source_id}" not found',
            hint='Run "docfeed list" to see registered sources.',
        )
        self.source_id = source_id


class DuplicateSourceError(ConfigurationError):
    def __init__(self, source_id: str) -> None:
        super().__init__(
            f'Source with ID "{source_id}" already exists',
            hint=f'Use "docfeed sync {source_id}" to re-index it.',
        )
        self.source_id = source_id


class InvalidSourceSpecError(ConfigurationError):
    """A repository spec or URL could not be parsed."""


# -- embedding ----------------------------------------------------------------


class ProviderUnavailableError(DocfeedError):
    """The embedding provider is unreachable or the model is not resident."""


class EmbeddingError(DocfeedError):
    """The provider failed while embedding a batch."""


class EmbeddingDimensionError(EmbeddingError):
    """A vector of the wrong size came back from the provider."""


# -- storage ------------------------------------------------------------------


class VectorStoreError(DocfeedError):
    """The vector store rejected an operation."""


# -- ingestion ----------------------------------------------------------------


class NoContentError(DocfeedError):
    """A source produced no markdown files or no chunks."""


class IndexingError(DocfeedError):
    """An ingestion run failed; ``phase`` names the step that broke."""

    def __init__(self, source_id: str, phase: str, cause: Exception) -> None:
        hint = cause.hint if isinstance(cause, DocfeedError) else None
        super().__init__(f"Indexing {source_id!r} failed during {phase}: {cause}", hint=hint)
        self.source_id = source_id
        self.phase = phase


class DocumentNotFoundError(DocfeedError):
    def __init__(self, locator: str) -> None:
        super().__init__(
            f'Document "{locator}" not found',
            hint="Pass a document URL or <source_id>:<relative path> taken from a search result.",
        )
        self.locator = locator
