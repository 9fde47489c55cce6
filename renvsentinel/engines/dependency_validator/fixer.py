"""Auto-fixer and pruner: the only code that mutates DESCRIPTION and renv.lock."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from renvsentinel.engines.dependency_validator.lockfile import Lockfile
from renvsentinel.engines.dependency_validator.manifest import Manifest
from renvsentinel.engines.dependency_validator.models import FixFailure
from renvsentinel.engines.dependency_validator.registry import RegistryValidator
from renvsentinel.exceptions import RenvSentinelError

log = structlog.get_logger("renvsentinel.engine")


def format_r_vector(packages: Iterable[str]) -> str:
    """``["a", "b"]`` → ``c("a", "b")`` for copy-paste into an R session."""
    return "c(" + ", ".join(f'"{p}"' for p in packages) + ")"


def _failure(name: str, exc: Exception) -> FixFailure:
    remediation = exc.remediation if isinstance(exc, RenvSentinelError) else []
    return FixFailure(name=name, reason=str(exc), remediation=remediation)


class AutoFixer:
    """Apply additions one name at a time.

    A failure is recorded and the next name is attempted; earlier
    successes are never rolled back.
    """

    def __init__(self, manifest: Manifest, lockfile: Lockfile, validator: RegistryValidator) -> None:
        self.manifest = manifest
        self.lockfile = lockfile
        self.validator = validator

    def add_to_manifest(self, names: Iterable[str]) -> tuple[list[str], list[FixFailure]]:
        added: list[str] = []
        failures: list[FixFailure] = []
        for name in names:
            try:
                if self.manifest.add_declaration(name):
                    added.append(name)
            except (RenvSentinelError, OSError) as exc:
                log.error("fixer.manifest_failed", package=name, error=str(exc))
                failures.append(_failure(name, exc))
        return added, failures

    def add_to_lockfile(self, names: Iterable[str]) -> tuple[dict[str, str], list[FixFailure]]:
        """Pin each installable name at its current CRAN version."""
        added: dict[str, str] = {}
        failures: list[FixFailure] = []
        for name in names:
            version = self.validator.fetch_version(name)
            if not version:
                log.error("fixer.version_unavailable", package=name)
                failures.append(
                    FixFailure(
                        name=name,
                        reason=f"could not fetch version metadata for '{name}' from CRAN",
                        remediation=[
                            f"  1. Verify the package exists on CRAN: https://cran.r-project.org/package={name}",
                            "  2. Check your internet connection: curl -I https://cran.r-project.org",
                            f'  3. Install it inside the container: renv::install("{name}")',
                        ],
                    )
                )
                continue
            try:
                self.lockfile.upsert_package(name, version)
            except (RenvSentinelError, OSError) as exc:
                log.error("fixer.lockfile_failed", package=name, error=str(exc))
                failures.append(_failure(name, exc))
                continue
            added[name] = version
        return added, failures


class Pruner:
    """Drop DESCRIPTION entries the code no longer uses."""

    def __init__(self, manifest: Manifest, protected: Iterable[str]) -> None:
        self.manifest = manifest
        self.protected = frozenset(protected)

    def unused(self, code_packages: Iterable[str]) -> list[str]:
        code = set(code_packages)
        return [
            d.name
            for d in self.manifest.parse()
            if d.name not in code and d.name not in self.protected
        ]

    def prune(self, code_packages: Iterable[str]) -> list[str]:
        """Remove unused entries and return them; failures are logged, never raised."""
        unused = self.unused(code_packages)
        if not unused:
            log.debug("pruner.nothing_to_remove")
            return []
        try:
            return self.manifest.remove_declarations(unused, protected=self.protected)
        except (RenvSentinelError, OSError) as exc:
            log.warning("pruner.skipped", error=str(exc), packages=unused)
            return []
