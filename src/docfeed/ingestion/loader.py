"""Markdown loading: frontmatter, heading summary and file discovery."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import yaml

from docfeed.ingestion.models import Frontmatter, NormalizedDocument

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        ".next",
        "out",
        "coverage",
        ".cache",
        "vendor",
        "__pycache__",
    }
)

_FENCE = "---"
_H1_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
_H2_RE = re.compile(r"^##[ \t]+(.+)$", re.MULTILINE)
_H3_RE = re.compile(r"^###[ \t]+(.+)$", re.MULTILINE)


def split_frontmatter(text: str) -> tuple[Frontmatter, str]:
    """Separate a leading ``---`` YAML block from the body.

    Anything that is not a complete block (no opening fence on the first
    line, no closing fence, invalid YAML, or YAML that is not a mapping)
    leaves the whole text as body.  Only the keys of :class:`Frontmatter`
    are kept.
    """
    lines = text.split("\n")
    if not lines or lines[0].strip() != _FENCE:
        return Frontmatter(), text

    try:
        closing = next(i for i in range(1, len(lines)) if lines[i].strip() == _FENCE)
    except StopIteration:
        return Frontmatter(), text

    try:
        data = yaml.safe_load("\n".join(lines[1:closing])) or {}
    except yaml.YAMLError as exc:
        logger.debug("Ignoring malformed frontmatter: %s", exc)
        return Frontmatter(), text
    if not isinstance(data, dict):
        return Frontmatter(), text

    fields: dict[str, str] = {}
    for key, value in data.items():
        if key not in Frontmatter.model_fields:
            logger.debug("Ignoring unknown frontmatter key %r", key)
            continue
        if value is None or isinstance(value, (dict, list)):
            continue
        value = str(value).strip()
        if value:
            fields[key] = value

    body = "\n".join(lines[closing + 1 :])
    return Frontmatter(**fields), body


def extract_headings(markdown: str) -> tuple[str | None, str | None, str | None]:
    """First H1, H2 and H3 in document order (not per section)."""

    def first(pattern: re.Pattern[str]) -> str | None:
        match = pattern.search(markdown)
        return match.group(1).strip() if match else None

    return first(_H1_RE), first(_H2_RE), first(_H3_RE)


def parse_markdown(
    raw: bytes | str,
    path: str | Path,
    root: str | Path | None = None,
) -> NormalizedDocument:
    """Normalise one markdown file.

    Parameters
    ----------
    raw:
        File content.  Bytes are decoded as UTF-8 with replacement.
    path:
        Where the content came from; its stem is the last-resort title.
    root:
        Source root.  When given, ``relative_path`` is set relative to it.

    Returns
    -------
    NormalizedDocument
        Never raises for malformed content.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = text.replace("\r\n", "\n")
    if text.startswith("\ufeff"):
        text = text[1:]

    frontmatter, body = split_frontmatter(text)
    h1, h2, h3 = extract_headings(body)
    path = Path(path)

    relative_path: str | None = None
    if root is not None:
        try:
            relative_path = path.relative_to(root).as_posix()
        except ValueError:
            relative_path = None

    return NormalizedDocument(
        body=body,
        title=frontmatter.title or h1 or path.stem,
        h1=h1,
        h2=h2,
        h3=h3,
        path=str(path),
        url=frontmatter.url,
        relative_path=relative_path,
        frontmatter=frontmatter,
    )


def load_markdown_file(path: str | Path, root: str | Path | None = None) -> NormalizedDocument:
    """Read *path* from disk and normalise it."""
    return parse_markdown(Path(path).read_bytes(), path, root)


def find_markdown_files(root: str | Path) -> list[Path]:
    """Recursively list ``*.md`` files under *root* in a stable order.

    Vendored and build directories are skipped; unreadable directories are
    logged and skipped.  A missing *root* yields an empty list.
    """
    root = Path(root)
    if not root.is_dir():
        return []

    def _on_error(exc: OSError) -> None:
        logger.warning("Could not read directory %s: %s", exc.filename, exc.strerror)

    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        files.extend(Path(dirpath) / name for name in sorted(filenames) if name.endswith(".md"))
    return files
