"""renv.lock store: structured JSON read/write with atomic replacement."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from renvsentinel.engines.dependency_validator.fsutil import atomic_write_text
from renvsentinel.engines.dependency_validator.runtime_probe import RuntimeProbe
from renvsentinel.exceptions import LockfileError, RuntimeProbeError

log = structlog.get_logger("renvsentinel.engine")

# Entry that must match the reference image so renv is not rebuilt from source.
BOOTSTRAP_PACKAGE = "renv"

_MISSING_LOCK_REMEDIATION = [
    "renv.lock records exact package versions so collaborators install the same packages.",
    "Create it with:",
    '  R -e "renv::init()"',
    "Or snapshot current packages:",
    '  R -e "renv::snapshot()"',
]


class Lockfile:
    """The ``renv.lock`` document of one project."""

    def __init__(
        self,
        path: Path,
        default_r_version: str = "4.5.1",
        default_repository_name: str = "CRAN",
        default_repository_url: str = "https://cloud.r-project.org",
    ) -> None:
        self.path = path
        self.default_r_version = default_r_version
        self.default_repository_name = default_repository_name
        self.default_repository_url = default_repository_url

    # ── reading ──────────────────────────────────────────────────────────

    def list_packages(self) -> list[str]:
        """Sorted package keys, creating a minimal lockfile first if none exists.

        A lockfile that cannot be created or parsed is skipped with a
        warning and reads as empty; later upserts then fail per package.
        """
        try:
            if not self.path.exists():
                log.info("lockfile.missing_creating", path=str(self.path))
                self.create()
            data = self._load()
        except LockfileError as exc:
            log.warning("lockfile.unreadable_skipped", path=str(self.path), error=str(exc))
            return []
        return sorted(data.get("Packages", {}).keys())

    def get_package(self, name: str) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        return self._load().get("Packages", {}).get(name)

    # ── writing ──────────────────────────────────────────────────────────

    def create(self) -> None:
        """Write a minimal lockfile: R version, one repository, no packages."""
        document = {
            "R": {
                "Version": self.default_r_version,
                "Repositories": [
                    {"Name": self.default_repository_name, "URL": self.default_repository_url}
                ],
            },
            "Packages": {},
        }
        self._dump(document)
        log.info("lockfile.created", path=str(self.path), r_version=self.default_r_version)

    def upsert_package(
        self,
        name: str,
        version: str,
        source: str = "Repository",
        repository: str = "CRAN",
    ) -> None:
        """Insert or overwrite exactly one package entry; other entries are untouched."""
        if not self.path.exists():
            raise LockfileError(
                f"renv.lock not found: {self.path}", remediation=_MISSING_LOCK_REMEDIATION
            )
        data = self._load()
        packages = data.setdefault("Packages", {})
        packages[name] = {
            "Package": name,
            "Version": version,
            "Source": source,
            "Repository": repository,
        }
        self._dump(data)
        log.info("lockfile.upserted", package=name, version=version, repository=repository)

    def sync_runtime_version(self, reference_image: str, probe: RuntimeProbe | None = None) -> str | None:
        """Pin the ``renv`` entry to the version baked into *reference_image*.

        Returns the version written, or ``None`` when the step was skipped
        (no lockfile, no docker, or the image could not report a version).
        Unrelated fields of the entry (``Hash`` ...) are kept.
        """
        if not self.path.exists():
            log.debug("lockfile.sync_skipped_no_lock", path=str(self.path))
            return None

        probe = probe or RuntimeProbe()
        if not probe.available():
            log.warning("lockfile.sync_skipped_no_docker")
            return None

        log.info("lockfile.sync_querying", image=reference_image)
        try:
            version = probe.package_version(reference_image, BOOTSTRAP_PACKAGE)
        except RuntimeProbeError as exc:
            log.warning("lockfile.sync_skipped_probe_failed", image=reference_image, error=str(exc))
            return None

        data = self._load()
        entry = data.setdefault("Packages", {}).setdefault(BOOTSTRAP_PACKAGE, {"Package": BOOTSTRAP_PACKAGE})
        entry["Version"] = version
        entry["Source"] = "Repository"
        entry["Repository"] = "CRAN"
        self._dump(data)
        log.info("lockfile.sync_updated", package=BOOTSTRAP_PACKAGE, version=version)
        return version

    # ── internal ─────────────────────────────────────────────────────────

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LockfileError(
                f"cannot read {self.path}: {exc}",
                remediation=[f"Check that {self.path} is valid JSON (e.g. regenerate with renv::snapshot())"],
            ) from exc
        if not isinstance(data, dict):
            raise LockfileError(f"{self.path} is not a JSON object")
        return data

    def _dump(self, data: dict[str, Any]) -> None:
        try:
            atomic_write_text(self.path, json.dumps(data, indent=2) + "\n")
        except OSError as exc:
            raise LockfileError(
                f"failed to update {self.path}: {exc}",
                remediation=[f"Check that {self.path.parent} exists and is writable"],
            ) from exc
