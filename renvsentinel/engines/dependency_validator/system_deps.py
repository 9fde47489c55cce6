"""System dependency check: R packages whose apt libraries are missing from the Dockerfile."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import structlog

log = structlog.get_logger("renvsentinel.engine")


@dataclass(frozen=True)
class SystemRequirements:
    build: tuple[str, ...] = ()  # -dev headers needed to compile
    runtime: tuple[str, ...] = ()  # shared libraries needed to load


# Debian/Ubuntu package names for common R packages with native code.
DEFAULT_SYSTEM_DEPS: dict[str, SystemRequirements] = {
    "curl": SystemRequirements(("libcurl4-openssl-dev",), ("libcurl4",)),
    "httr": SystemRequirements(("libcurl4-openssl-dev", "libssl-dev"), ("libcurl4", "libssl3")),
    "openssl": SystemRequirements(("libssl-dev",), ("libssl3",)),
    "xml2": SystemRequirements(("libxml2-dev",), ("libxml2",)),
    "sf": SystemRequirements(
        ("libgdal-dev", "libgeos-dev", "libproj-dev", "libudunits2-dev"),
        ("libgdal32", "libgeos-c1v5", "libproj25", "libudunits2-0"),
    ),
    "terra": SystemRequirements(
        ("libgdal-dev", "libgeos-dev", "libproj-dev"),
        ("libgdal32", "libgeos-c1v5", "libproj25"),
    ),
    "units": SystemRequirements(("libudunits2-dev",), ("libudunits2-0",)),
    "magick": SystemRequirements(("libmagick++-dev",), ("libmagick++-6.q16-8",)),
    "RPostgres": SystemRequirements(("libpq-dev",), ("libpq5",)),
    "RMySQL": SystemRequirements(("libmariadb-dev",), ("libmariadb3",)),
    "odbc": SystemRequirements(("unixodbc-dev",), ("unixodbc",)),
    "gert": SystemRequirements(("libgit2-dev",), ("libgit2-1.5",)),
    "ragg": SystemRequirements(
        ("libfreetype6-dev", "libpng-dev", "libtiff5-dev", "libjpeg-dev"),
        ("libfreetype6", "libpng16-16", "libtiff6", "libjpeg62-turbo"),
    ),
    "textshaping": SystemRequirements(
        ("libharfbuzz-dev", "libfribidi-dev"), ("libharfbuzz0b", "libfribidi0")
    ),
    "systemfonts": SystemRequirements(("libfontconfig1-dev",), ("libfontconfig1",)),
    "rJava": SystemRequirements(("default-jdk",), ("default-jre",)),
    "gsl": SystemRequirements(("libgsl-dev",), ("libgsl27",)),
    "V8": SystemRequirements(("libnode-dev",), ("libnode108",)),
}


@dataclass
class MissingSystemDeps:
    package: str
    build: list[str] = field(default_factory=list)
    runtime: list[str] = field(default_factory=list)


def check_dockerfile(
    packages: Iterable[str],
    dockerfile: Path,
    mapping: Mapping[str, SystemRequirements] | None = None,
) -> list[MissingSystemDeps] | None:
    """Return packages whose system libraries are not mentioned in *dockerfile*.

    ``None`` means the check was skipped because the Dockerfile is absent.
    """
    if not dockerfile.is_file():
        log.warning("system_deps.no_dockerfile", path=str(dockerfile))
        return None

    mapping = DEFAULT_SYSTEM_DEPS if mapping is None else mapping
    content = dockerfile.read_text(encoding="utf-8", errors="replace")
    missing: list[MissingSystemDeps] = []
    for package in packages:
        reqs = mapping.get(package)
        if reqs is None:
            continue
        entry = MissingSystemDeps(
            package=package,
            build=[dep for dep in reqs.build if dep not in content],
            runtime=[dep for dep in reqs.runtime if dep not in content],
        )
        if entry.build or entry.runtime:
            missing.append(entry)
    log.debug("system_deps.checked", dockerfile=str(dockerfile), missing=len(missing))
    return missing


def render_instructions(missing: list[MissingSystemDeps]) -> list[str]:
    """Dockerfile snippets that would install every missing library."""
    lines: list[str] = ["Missing system dependencies detected!", ""]
    for entry in missing:
        lines.append(f"  Package: {entry.package}")
        if entry.build:
            lines.append(f"    Build-time: {' '.join(entry.build)}")
        if entry.runtime:
            lines.append(f"    Runtime:    {' '.join(entry.runtime)}")

    build = sorted({dep for e in missing for dep in e.build})
    runtime = sorted({dep for e in missing for dep in e.runtime})
    lines += ["", "To fix missing system dependencies:", "", "1. Edit the Dockerfile", ""]
    if build:
        lines += ["2. Add to the builder stage:", *_apt_snippet(build), ""]
    if runtime:
        lines += ["3. Add to the runtime stage:", *_apt_snippet(runtime), ""]
    lines += ["4. Rebuild Docker image:", "   make docker-build"]
    return lines


def _apt_snippet(deps: list[str]) -> list[str]:
    return [
        "   RUN apt-get update && \\",
        "       apt-get install -y --no-install-recommends \\",
        *(f"           {dep} \\" for dep in deps),
        "       && rm -rf /var/lib/apt/lists/*",
    ]
