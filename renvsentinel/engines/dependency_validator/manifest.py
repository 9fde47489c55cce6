"""Format-preserving reader/editor for the DESCRIPTION declared-dependency field.

DESCRIPTION uses Debian Control File layout: ``Field:`` markers in column 0,
values continuing on indented lines until the next field.  Edits split the
file into ``{preamble, block, postamble}``, change only the block, and
re-join, so every unrelated line survives byte for byte.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from renvsentinel.engines.dependency_validator.fsutil import atomic_write_text
from renvsentinel.engines.dependency_validator.models import Declaration
from renvsentinel.exceptions import ManifestError

log = structlog.get_logger("renvsentinel.engine")

DEFAULT_INDENT = "    "

_ENTRY_RE = re.compile(r"^\s*([^\s,(]+)\s*(\(.*\))?\s*$", re.DOTALL)
_LEADING_NAME_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9.]*)\s*(?:\([^)]*\))?\s*,?\s*$")
_ENCODING_RE = re.compile(rb"^Encoding:[ \t]*(\S+)", re.MULTILINE)


@dataclass
class _Split:
    preamble: list[str]
    block: list[str]  # header line followed by its continuation lines
    postamble: list[str]
    trailing_newline: bool

    def join(self) -> str:
        text = "\n".join(self.preamble + self.block + self.postamble)
        return text + "\n" if self.trailing_newline or not text else text


def _split_top_level(value: str) -> list[str]:
    """Split on commas that are not inside a parenthesised constraint."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p for p in (part.strip() for part in parts) if p]


def parse_field_value(value: str) -> list[Declaration]:
    """Parse ``"a (>= 1.0), b"`` into declarations; constraints kept verbatim."""
    declarations: list[Declaration] = []
    for entry in _split_top_level(value):
        m = _ENTRY_RE.match(entry)
        if not m:
            continue
        constraint = m.group(2)
        declarations.append(
            Declaration(name=m.group(1), constraint=" ".join(constraint.split()) if constraint else None)
        )
    return declarations


class Manifest:
    """A DESCRIPTION file and one of its dependency fields (``Imports`` by default)."""

    def __init__(self, path: Path, field: str = "Imports") -> None:
        self.path = path
        self.field = field
        self._header_re = re.compile(rf"^{re.escape(field)}:")
        self._encoding = "utf-8"

    # ── reading ──────────────────────────────────────────────────────────

    def parse(self) -> list[Declaration]:
        """Declared dependencies in file order; empty when file or field is absent."""
        split = self._try_read_split()
        if split is None or not split.block:
            return []
        return parse_field_value(self._block_value(split.block))

    def declared_names(self) -> set[str]:
        return {d.name for d in self.parse()}

    def package_name(self) -> str | None:
        """The ``Package:`` field, used to keep a project from depending on itself."""
        try:
            text = self._read_text()
        except ManifestError:
            return None
        for line in text.splitlines():
            if line.startswith("Package:"):
                return line[len("Package:") :].strip() or None
        return None

    def verify(self, require_write: bool = False) -> None:
        """Raise :class:`ManifestError` with recovery steps if the file is unusable."""
        if not self.path.is_file():
            raise ManifestError(
                f"DESCRIPTION file not found: {self.path}",
                remediation=[
                    f"DESCRIPTION lists the packages your project depends on ({self.field} field).",
                    "Create one with:",
                    "  printf 'Package: myproject\\nVersion: 0.1.0\\nTitle: My Project\\n' > DESCRIPTION",
                ],
            )
        if require_write and not os.access(self.path, os.W_OK):
            raise ManifestError(
                f"DESCRIPTION file not writable: {self.path}",
                remediation=[
                    f"  1. Check file permissions: ls -la {self.path}",
                    f"  2. Make writable: chmod u+w {self.path}",
                    f"  3. Verify your user owns it: chown $USER {self.path}",
                ],
            )

    # ── writing ──────────────────────────────────────────────────────────

    def add_declaration(self, name: str) -> bool:
        """Declare *name*; returns False when it was already declared.

        Follows the block's existing trailing-comma convention and
        indentation.  A missing field is created at the end of the file.
        """
        self.verify(require_write=True)
        split = self._read_split()

        if split.block and name in {d.name for d in parse_field_value(self._block_value(split.block))}:
            return False

        if not split.block:
            # A blank line would start a new DCF paragraph
            while split.preamble and not split.preamble[-1].strip():
                split.preamble.pop()
            split.preamble.extend([f"{self.field}:", f"{DEFAULT_INDENT}{name}"])
            split.trailing_newline = True
        else:
            self._append_to_block(split.block, name)

        self._write(split)
        log.info("manifest.added", package=name, field=self.field)
        return True

    def remove_declarations(self, names: Iterable[str], protected: Iterable[str] = ()) -> list[str]:
        """Remove *names* from the field, never touching *protected* ones.

        Lines that end up empty are dropped; lines holding none of the
        names are left exactly as they were.  Returns the removed names in
        file order.
        """
        to_remove = set(names) - set(protected)
        if not to_remove:
            return []
        self.verify(require_write=True)
        split = self._read_split()
        if not split.block:
            return []

        removed: list[str] = []
        new_block: list[str] = []
        header, *continuation = split.block

        prefix = f"{self.field}:"
        header_value = header[len(prefix) :]
        kept, dropped = self._filter_entries(header_value, to_remove)
        if dropped:
            removed.extend(dropped)
            trailing = "," if header_value.rstrip().endswith(",") and kept else ""
            header = prefix + (" " + ", ".join(kept) + trailing if kept else "")
        new_block.append(header)

        for line in continuation:
            kept, dropped = self._filter_entries(line, to_remove)
            if not dropped:
                new_block.append(line)
                continue
            removed.extend(dropped)
            if kept:
                indent = line[: len(line) - len(line.lstrip())]
                trailing = "," if line.rstrip().endswith(",") else ""
                new_block.append(indent + ", ".join(kept) + trailing)

        if not removed:
            return []
        split.block = new_block
        self._write(split)
        log.info("manifest.removed", packages=removed, field=self.field)
        return removed

    # ── internal ─────────────────────────────────────────────────────────

    def _read_text(self) -> str:
        """Decode the file using its ``Encoding:`` field, else UTF-8, else latin-1.

        The chosen encoding is remembered so rewrites keep the file's bytes.
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            raise ManifestError(f"DESCRIPTION file not found: {self.path}") from None
        except OSError as exc:
            raise ManifestError(f"cannot read {self.path}: {exc}") from exc

        candidates = ["utf-8", "latin-1"]
        declared = _ENCODING_RE.search(data)
        if declared:
            candidates.insert(0, declared.group(1).decode("ascii", errors="replace"))
        for encoding in candidates:
            try:
                text = data.decode(encoding)
            except (LookupError, UnicodeDecodeError):
                continue
            self._encoding = encoding
            return text
        raise ManifestError(f"cannot decode {self.path}")

    def _try_read_split(self) -> _Split | None:
        """Soft read: ``None`` when the file is absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            return self._read_split()
        except ManifestError as exc:
            log.warning("manifest.read_failed", path=str(self.path), error=str(exc))
            return None

    def _read_split(self) -> _Split:
        text = self._read_text()
        # Split on "\n" only; latin-1 text may hold characters splitlines() breaks on
        lines = text.split("\n")
        trailing_newline = text.endswith("\n")
        if trailing_newline:
            lines.pop()
        start = next((i for i, line in enumerate(lines) if self._header_re.match(line)), None)
        if start is None:
            return _Split(lines, [], [], trailing_newline)

        end = start + 1
        while end < len(lines) and lines[end][:1] in (" ", "\t"):
            end += 1
        return _Split(lines[:start], lines[start:end], lines[end:], trailing_newline)

    def _block_value(self, block: list[str]) -> str:
        header, *continuation = block
        return " ".join([header[len(self.field) + 1 :], *continuation])

    def _append_to_block(self, block: list[str], name: str) -> None:
        content_rows = [i for i, line in enumerate(block) if i > 0 and line.strip()]
        if not content_rows:
            header_value = block[0][len(self.field) + 1 :].strip()
            if not header_value:
                block.append(f"{DEFAULT_INDENT}{name}")
            elif header_value.endswith(","):
                block[0] = f"{block[0].rstrip()} {name},"
            else:
                block[0] = f"{block[0].rstrip()}, {name}"
            return

        last = content_rows[-1]
        line = block[last]
        indent = line[: len(line) - len(line.lstrip())] or DEFAULT_INDENT
        if line.rstrip().endswith(","):
            block.insert(last + 1, f"{indent}{name},")
        else:
            block[last] = line.rstrip() + ","
            block.insert(last + 1, f"{indent}{name}")

    @staticmethod
    def _filter_entries(text: str, to_remove: set[str]) -> tuple[list[str], list[str]]:
        """Split one line's entries into (kept raw entries, removed names)."""
        kept: list[str] = []
        dropped: list[str] = []
        for entry in _split_top_level(text):
            m = _LEADING_NAME_RE.match(entry)
            if m and m.group(1) in to_remove:
                dropped.append(m.group(1))
            else:
                kept.append(entry)
        return kept, dropped

    def _write(self, split: _Split) -> None:
        try:
            atomic_write_text(self.path, split.join(), self._encoding)
        except (OSError, UnicodeError) as exc:
            raise ManifestError(
                f"failed to update {self.path}: {exc}",
                remediation=[f"Add the package manually to the {self.field} field of {self.path}"],
            ) from exc
