"""Filter raw extractor tokens down to a canonical package-name set."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

log = structlog.get_logger("renvsentinel.engine")

_PACKAGE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9.]*$")
_LOWERCASE_RE = re.compile(r"^[a-z]+$")

MIN_NAME_LENGTH = 3


def is_valid_package_name(name: str) -> bool:
    """R package naming rules: letter first, letters/digits/dots, no trailing dot, ≥ 3 chars."""
    return (
        len(name) >= MIN_NAME_LENGTH
        and _PACKAGE_NAME_RE.match(name) is not None
        and not name.endswith(".")
    )


@dataclass
class NormalizeResult:
    names: list[str]
    invalid: int  # tokens rejected for format, reported only as a count


class Normalizer:
    """Apply format rules and the configured exclusion sets.

    *project_name* is the ``Package:`` value of the project's own
    DESCRIPTION; a project never depends on itself.
    """

    def __init__(
        self,
        base_packages: Iterable[str],
        placeholder_packages: Iterable[str],
        generic_words: Iterable[str] = (),
        example_suffixes: Iterable[str] = (),
        project_name: str | None = None,
    ) -> None:
        self.base_packages = frozenset(base_packages)
        placeholders = set(placeholder_packages)
        if project_name:
            placeholders.add(project_name)
        self.placeholder_packages = frozenset(placeholders)
        self.generic_words = frozenset(generic_words)
        self.example_suffixes = tuple(example_suffixes)

    def is_excluded(self, name: str) -> bool:
        if name in self.base_packages:
            return True
        if name in self.placeholder_packages:
            log.debug("normalizer.placeholder", package=name)
            return True
        if name in self.generic_words:
            log.debug("normalizer.generic_word", package=name)
            return True
        # Real packages with these suffixes tend to be CamelCase
        if _LOWERCASE_RE.match(name) and name.endswith(self.example_suffixes):
            log.debug("normalizer.example_name", package=name)
            return True
        return False

    def normalize(self, tokens: Iterable[str]) -> NormalizeResult:
        names: set[str] = set()
        invalid = 0
        for token in tokens:
            token = token.strip()
            if not token:
                continue
            if not is_valid_package_name(token):
                invalid += 1
                continue
            if self.is_excluded(token):
                continue
            names.add(token)
        return NormalizeResult(names=sorted(names), invalid=invalid)
