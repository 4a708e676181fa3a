"""Source records, source identity and the JSON-file registry."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from docfeed.errors import DuplicateSourceError, InvalidSourceSpecError, SourceNotFoundError

logger = logging.getLogger(__name__)

SourceStatus = Literal["pending", "crawling", "indexing", "ready", "error"]
SourceKind = Literal["web", "repo"]

DEFAULT_BRANCH = "main"
DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Source(BaseModel):
    """One indexed corpus: a crawled site or a repository at a branch."""

    id: str
    kind: SourceKind = "web"
    url: str = ""
    owner: str | None = None
    repo: str | None = None
    branch: str | None = None
    status: SourceStatus = "pending"
    doc_count: int = 0
    added_at: datetime = Field(default_factory=_now)
    last_updated: datetime | None = None
    max_depth: int | None = None
    max_pages: int | None = None
    error: str | None = None
    # set when indexed from a directory outside the managed data layout
    root: Path | None = None

    @property
    def label(self) -> str:
        if self.kind == "repo":
            return f"{self.owner}/{self.repo}@{self.branch}"
        return self.url or self.id

    def root_dir(self, data_dir: Path) -> Path:
        """Directory the crawler or git fetcher fills with markdown files."""
        if self.kind == "repo" and self.owner and self.repo:
            return data_dir / "repos" / self.owner / self.repo / (self.branch or DEFAULT_BRANCH)
        return data_dir / "raw" / self.id

    def content_dir(self, data_dir: Path) -> Path:
        """Directory the markdown files were last indexed from."""
        return self.root or self.root_dir(data_dir)


# -- identity -----------------------------------------------------------------


def source_id_from_url(url: str) -> str:
    """``https://www.docs.example.com/guide/x`` → ``docs-example-com-guide``."""
    parsed = urlparse(url)
    if parsed.scheme and parsed.hostname:
        hostname = re.sub(r"^www\.", "", parsed.hostname)
        first_segment = next((p for p in parsed.path.split("/") if p), "")
        source_id = hostname.replace(".", "-")
        if first_segment:
            source_id = f"{source_id}-{first_segment}"
        return source_id.lower()
    return re.sub(r"[^a-z0-9]", "-", url, flags=re.IGNORECASE).lower()


def parse_repo_spec(spec: str) -> tuple[str, str, str]:
    """Split ``owner/repo[@branch]``; the branch defaults to ``main``."""
    path, _, branch = spec.partition("@")
    owner, _, repo = path.partition("/")
    if not owner or not repo or "/" in repo:
        raise InvalidSourceSpecError(
            f"Invalid repo specification: {spec}",
            hint="Expected owner/repo or owner/repo@branch, e.g. facebook/react@v18.2.0",
        )
    return owner, repo, branch or DEFAULT_BRANCH


def source_id_from_repo(owner: str, repo: str, branch: str = DEFAULT_BRANCH) -> str:
    return re.sub(r"[^a-z0-9-]", "-", f"{owner}-{repo}-{branch}", flags=re.IGNORECASE).lower()


def looks_like_url(spec: str) -> bool:
    return spec.startswith(("http://", "https://"))


# -- registry -----------------------------------------------------------------


class _RegistryFile(BaseModel):
    sources: list[Source] = Field(default_factory=list)


class SourceRegistry:
    """Source records persisted as a flat JSON file.

    Every call reads the file and every mutation writes it back, so two
    registries on the same path never disagree.  A missing file is created
    empty on first load.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> _RegistryFile:
        if not self.path.exists():
            registry = _RegistryFile()
            self._save(registry)
            return registry
        return _RegistryFile.model_validate_json(self.path.read_text(encoding="utf-8"))

    def _save(self, registry: _RegistryFile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(registry.model_dump(mode="json"), indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def list_sources(self) -> list[Source]:
        return self._load().sources

    def get(self, source_id: str) -> Source | None:
        return next((s for s in self._load().sources if s.id == source_id), None)

    def require(self, source_id: str) -> Source:
        source = self.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def add(self, source: Source) -> Source:
        registry = self._load()
        if any(s.id == source.id for s in registry.sources):
            raise DuplicateSourceError(source.id)
        registry.sources.append(source)
        self._save(registry)
        logger.info("Registered source %s", source.id)
        return source

    def add_web(
        self,
        url: str,
        *,
        max_depth: int | None = None,
        max_pages: int | None = None,
    ) -> Source:
        return self.add(
            Source(
                id=source_id_from_url(url),
                kind="web",
                url=url,
                max_depth=DEFAULT_MAX_DEPTH if max_depth is None else max_depth,
                max_pages=DEFAULT_MAX_PAGES if max_pages is None else max_pages,
            )
        )

    def add_repo(self, owner: str, repo: str, branch: str = DEFAULT_BRANCH) -> Source:
        return self.add(
            Source(
                id=source_id_from_repo(owner, repo, branch),
                kind="repo",
                url=f"https://github.com/{owner}/{repo}",
                owner=owner,
                repo=repo,
                branch=branch,
            )
        )

    def update(self, source_id: str, **changes: object) -> Source:
        registry = self._load()
        for i, source in enumerate(registry.sources):
            if source.id == source_id:
                updated = Source.model_validate({**source.model_dump(), **changes})
                registry.sources[i] = updated
                self._save(registry)
                return updated
        raise SourceNotFoundError(source_id)

    def remove(self, source_id: str) -> None:
        registry = self._load()
        remaining = [s for s in registry.sources if s.id != source_id]
        if len(remaining) == len(registry.sources):
            raise SourceNotFoundError(source_id)
        registry.sources = remaining
        self._save(registry)
        logger.info("Removed source %s", source_id)
