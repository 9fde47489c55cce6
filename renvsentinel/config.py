"""Validator configuration: defaults plus an optional ``.renvsentinel.toml``.

Every filter list (base packages, placeholders, protected names, ...) is data
so a project can extend it without patching code.  Keys prefixed with
``extra_`` extend the matching default list; plain keys replace the value.

Example ``.renvsentinel.toml``::

    manifest_field = "Imports"
    extra_placeholder_packages = ["mylab"]
    extra_protected_packages = ["targets"]
    bioconductor_version = "3.19"
"""

from __future__ import annotations

import sys
from dataclasses import MISSING, dataclass, field, fields
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from renvsentinel.exceptions import ConfigError

CONFIG_FILENAME = ".renvsentinel.toml"

# Base R packages ship with every R installation and never need declaring.
DEFAULT_BASE_PACKAGES = (
    "base", "utils", "stats", "graphics", "grDevices",
    "methods", "datasets", "tools", "grid", "parallel",
)

# Generic names that show up in documentation examples.
DEFAULT_PLACEHOLDER_PACKAGES = (
    "package", "pkg", "mypackage", "myproject", "yourpackage",
    "project", "data", "result", "output", "input",
    "test", "example", "sample", "demo", "template",
    "local", "any", "all", "none", "NULL",
    "foo", "bar", "baz", "qux",
    "renvsentinel",
)

DEFAULT_GENERIC_WORDS = (
    "my", "your", "his", "her", "our", "their", "the", "this", "that",
    "file", "dir", "path", "name", "value", "object", "function", "method", "class",
)

# Lower-case names with these suffixes are almost always example projects.
DEFAULT_EXAMPLE_SUFFIXES = ("analysis", "project", "study", "trial")

DEFAULT_PROTECTED_PACKAGES = ("renv",)

DEFAULT_STANDARD_DIRS = (".", "R", "scripts", "analysis")
DEFAULT_STRICT_DIRS = (".", "R", "scripts", "analysis", "tests", "vignettes", "inst")

DEFAULT_SKIP_PATTERNS = (
    "*/README.Rmd",
    "*/README.md",
    "*/examples/*",
    "*/inst/examples/*",
    "*/man/examples/*",
    "*/renv/*",
    "*/.cache/*",
    "*/.git/*",
)

DEFAULT_FILE_EXTENSIONS = ("R", "Rmd", "qmd", "Rnw")


@dataclass
class ValidatorConfig:
    """All tunables of a validation run."""

    manifest_filename: str = "DESCRIPTION"
    manifest_field: str = "Imports"
    lockfile_filename: str = "renv.lock"

    base_packages: list[str] = field(default_factory=lambda: list(DEFAULT_BASE_PACKAGES))
    placeholder_packages: list[str] = field(
        default_factory=lambda: list(DEFAULT_PLACEHOLDER_PACKAGES)
    )
    generic_words: list[str] = field(default_factory=lambda: list(DEFAULT_GENERIC_WORDS))
    example_suffixes: list[str] = field(default_factory=lambda: list(DEFAULT_EXAMPLE_SUFFIXES))
    protected_packages: list[str] = field(
        default_factory=lambda: list(DEFAULT_PROTECTED_PACKAGES)
    )

    standard_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_STANDARD_DIRS))
    strict_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_STRICT_DIRS))
    skip_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_SKIP_PATTERNS))
    file_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS))

    default_r_version: str = "4.5.1"
    default_repository_name: str = "CRAN"
    default_repository_url: str = "https://cloud.r-project.org"

    cran_url: str = "https://crandb.r-pkg.org"
    bioconductor_url: str = "https://www.bioconductor.org/packages/json"
    bioconductor_version: str = "3.17"
    github_api_url: str = "https://api.github.com"
    http_timeout: float = 10.0
    max_workers: int = 1


_LIST_FIELDS = {f.name for f in fields(ValidatorConfig) if f.default_factory is not MISSING}
_SCALAR_FIELDS = {f.name for f in fields(ValidatorConfig)} - _LIST_FIELDS


def load_config(project_dir: Path, path: Path | None = None) -> ValidatorConfig:
    """Build a :class:`ValidatorConfig` for *project_dir*.

    Reads *path* when given, otherwise ``<project_dir>/.renvsentinel.toml``
    if it exists.  A missing default file yields the built-in defaults;
    a missing explicit file is an error.
    """
    config = ValidatorConfig()
    if path is None:
        path = project_dir / CONFIG_FILENAME
        if not path.is_file():
            return config
    elif not path.is_file():
        raise ConfigError(f"config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc

    return apply_overrides(config, data)


def apply_overrides(config: ValidatorConfig, data: dict) -> ValidatorConfig:
    """Apply a parsed TOML mapping to *config* in place and return it."""
    for key, value in data.items():
        if key.startswith("extra_") and key[len("extra_") :] in _LIST_FIELDS:
            target = key[len("extra_") :]
            _require_str_list(key, value)
            current = getattr(config, target)
            current.extend(v for v in value if v not in current)
        elif key in _LIST_FIELDS:
            _require_str_list(key, value)
            setattr(config, key, list(value))
        elif key in _SCALAR_FIELDS:
            setattr(config, key, value)
        else:
            raise ConfigError(f"unknown config key: {key!r}")
    return config


def _require_str_list(key: str, value: object) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"config key {key!r} must be a list of strings")
