"""Static extraction of R package references from source files.

Pure text scanning: no R interpreter is needed on the host.  Recognised
forms are ``library(pkg)``/``require(pkg)``/``requireNamespace("pkg")``,
namespace calls ``pkg::fn`` / ``pkg:::fn`` and roxygen ``@import`` /
``@importFrom`` tags.  Output is raw and may contain duplicates or junk;
run it through :class:`~renvsentinel.engines.dependency_validator.normalizer.Normalizer`.
"""

from __future__ import annotations

import fnmatch
import os
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

import structlog

log = structlog.get_logger("renvsentinel.engine")

_COMMENT_LINE_RE = re.compile(r"^\s*#")

# Closing parenthesis is required so half-typed calls are not picked up.
_LOAD_CALL_RE = re.compile(
    r"\b(?:library|require|requireNamespace)\s*\(\s*[\"']?([A-Za-z][A-Za-z0-9.]*)[\"']?\s*[,)]"
)

_NAMESPACE_RE = re.compile(r"(?<![A-Za-z0-9._])([A-Za-z][A-Za-z0-9.]*):::?")

_ROXYGEN_IMPORT_RE = re.compile(r"#'\s*@import(?:From)?\s+([A-Za-z][A-Za-z0-9.]*)")

# Directory names never worth descending into.
_SKIP_DIRS = {".git", "renv", ".Rproj.user", ".cache", "node_modules", "__pycache__"}


def extract_from_text(content: str) -> list[str]:
    """Return every package token referenced in one file's *content*."""
    tokens: list[str] = []
    for line in content.splitlines():
        roxygen = _ROXYGEN_IMPORT_RE.search(line)
        if roxygen:
            tokens.append(roxygen.group(1))
            continue
        if _COMMENT_LINE_RE.match(line):
            continue
        tokens.extend(_LOAD_CALL_RE.findall(line))
        tokens.extend(_NAMESPACE_RE.findall(line))
    return tokens


def iter_source_files(
    project_dir: Path,
    roots: Iterable[str],
    extensions: Iterable[str],
    skip_patterns: Iterable[str],
) -> Iterator[Path]:
    """Yield R source files under *roots*, each at most once.

    ``"."`` means the top level of *project_dir* only; every other root is
    walked recursively.  Paths are matched against *skip_patterns* in the
    ``./relative/path`` form so patterns like ``*/renv/*`` behave like
    ``find -path``.
    """
    suffixes = {f".{ext}" for ext in extensions}
    patterns = list(skip_patterns)
    seen: set[Path] = set()

    for root in roots:
        base = (project_dir / root) if root != "." else project_dir
        if not base.is_dir():
            continue

        if root == ".":
            candidates: Iterable[Path] = sorted(p for p in base.iterdir() if p.is_file())
        else:
            candidates = _walk(base)

        for path in candidates:
            if path.suffix not in suffixes:
                continue
            resolved = path.resolve()
            if resolved in seen:
                continue
            rel = "./" + path.relative_to(project_dir).as_posix()
            if any(fnmatch.fnmatch(rel, pat) for pat in patterns):
                log.debug("extractor.skip_file", path=rel)
                continue
            seen.add(resolved)
            yield path


def _walk(base: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


def extract_code_packages(
    project_dir: Path,
    roots: Iterable[str],
    extensions: Iterable[str],
    skip_patterns: Iterable[str],
) -> list[str]:
    """Scan source files and return raw package tokens (with duplicates)."""
    tokens: list[str] = []
    file_count = 0
    for path in iter_source_files(project_dir, roots, extensions, skip_patterns):
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.warning("extractor.read_failed", path=str(path), error=str(exc))
            continue
        file_count += 1
        tokens.extend(extract_from_text(content))
    log.debug("extractor.scanned", files=file_count, tokens=len(tokens))
    return tokens
