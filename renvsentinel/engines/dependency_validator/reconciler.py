"""Reconciler: diff code usage, DESCRIPTION and renv.lock, then drive fixes.

State machine of one run::

    Scan → Diff → (ManifestFix?) → (RegistryValidate → LockFix?) → Prune → Report

Terminal verdicts: PASSED, FAILED_MANIFEST_FIX, FAILED_LOCK_FIX,
FAILED_NO_FIX.  Pruning never changes the verdict.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import structlog

from renvsentinel.config import ValidatorConfig
from renvsentinel.engines.dependency_validator.extractor import extract_code_packages
from renvsentinel.engines.dependency_validator.fixer import AutoFixer, Pruner
from renvsentinel.engines.dependency_validator.lockfile import Lockfile
from renvsentinel.engines.dependency_validator.manifest import Manifest
from renvsentinel.engines.dependency_validator.models import (
    Provenance,
    ScanScope,
    ValidationOptions,
    ValidationReport,
    Verdict,
)
from renvsentinel.engines.dependency_validator.normalizer import NormalizeResult, Normalizer
from renvsentinel.engines.dependency_validator.registry import RegistryValidator

log = structlog.get_logger("renvsentinel.engine")


def compute_union(
    code: Iterable[str],
    manifest: Iterable[str],
    lock: Iterable[str],
    base_packages: Iterable[str] = (),
) -> dict[str, Provenance]:
    """Union of the three sources, code first, then manifest-only, then lock-only.

    Base packages never enter through the lockfile.
    """
    base = set(base_packages)
    union: dict[str, Provenance] = {}
    for name in code:
        union.setdefault(name, Provenance()).from_code = True
    for name in manifest:
        union.setdefault(name, Provenance()).from_manifest = True
    for name in lock:
        if name in union:
            union[name].from_lock = True
        elif name not in base:
            union[name] = Provenance(from_lock=True)
    return union


def missing_from(
    union: dict[str, Provenance],
    target: Iterable[str],
    exclude: Iterable[str] = (),
) -> list[str]:
    """Union members absent from *target*, in union order (never re-sorted)."""
    present = set(target)
    skipped = set(exclude)
    return [name for name in union if name not in present and name not in skipped]


class Reconciler:
    """One project directory: its sources, DESCRIPTION, renv.lock and registries."""

    def __init__(
        self,
        project_dir: Path,
        config: ValidatorConfig | None = None,
        validator: RegistryValidator | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.config = config or ValidatorConfig()
        self.manifest = Manifest(project_dir / self.config.manifest_filename, self.config.manifest_field)
        self.lockfile = Lockfile(
            project_dir / self.config.lockfile_filename,
            default_r_version=self.config.default_r_version,
            default_repository_name=self.config.default_repository_name,
            default_repository_url=self.config.default_repository_url,
        )
        self.validator = validator or RegistryValidator.from_config(self.config)
        self.fixer = AutoFixer(self.manifest, self.lockfile, self.validator)
        self.pruner = Pruner(self.manifest, self.config.protected_packages)

    # ── stages ───────────────────────────────────────────────────────────

    def scan(self, scope: ScanScope = ScanScope.STRICT) -> NormalizeResult:
        """Extract and normalise the package names used in code."""
        dirs = self.config.strict_dirs if scope is ScanScope.STRICT else self.config.standard_dirs
        log.info("reconciler.scanning", scope=scope.value, dirs=dirs)
        tokens = extract_code_packages(
            self.project_dir, dirs, self.config.file_extensions, self.config.skip_patterns
        )
        normalizer = Normalizer(
            base_packages=self.config.base_packages,
            placeholder_packages=self.config.placeholder_packages,
            generic_words=self.config.generic_words,
            example_suffixes=self.config.example_suffixes,
            project_name=self.manifest.package_name(),
        )
        return normalizer.normalize(tokens)

    def run(self, options: ValidationOptions | None = None) -> ValidationReport:
        options = options or ValidationOptions()
        report = ValidationReport(auto_fix=options.auto_fix)
        base = set(self.config.base_packages)
        protected = set(self.config.protected_packages)

        # ── Scan ─────────────────────────────────────────────────────────
        scanned = self.scan(options.scope)
        report.code_packages = scanned.names
        report.invalid_token_count = scanned.invalid
        report.manifest_packages = list(dict.fromkeys(d.name for d in self.manifest.parse()))
        report.lock_packages = self.lockfile.list_packages()
        log.info(
            "reconciler.sources",
            code=len(report.code_packages),
            manifest=len(report.manifest_packages),
            lock=len(report.lock_packages),
            invalid_tokens=report.invalid_token_count,
        )

        # ── Diff ─────────────────────────────────────────────────────────
        report.union = compute_union(
            report.code_packages, report.manifest_packages, report.lock_packages, base
        )
        report.missing_from_manifest = missing_from(report.union, report.manifest_packages, base)
        report.missing_from_lock = missing_from(
            report.union, report.lock_packages, base | protected
        )
        # Lock-only names are transitive pins from renv::snapshot(), not declarations
        report.lock_only = [n for n in report.missing_from_manifest if report.union[n].lock_only]
        manifest_targets = [n for n in report.missing_from_manifest if n not in report.lock_only]
        log.info(
            "reconciler.diff",
            union=len(report.union),
            missing_from_manifest=len(manifest_targets),
            lock_only=len(report.lock_only),
            missing_from_lock=len(report.missing_from_lock),
        )

        # ── ManifestFix ──────────────────────────────────────────────────
        if options.auto_fix and manifest_targets:
            log.info("reconciler.manifest_fix", count=len(manifest_targets))
            report.added_to_manifest, report.manifest_failures = self.fixer.add_to_manifest(
                manifest_targets
            )

        # ── RegistryValidate → LockFix ───────────────────────────────────
        if report.missing_from_lock:
            log.info("reconciler.registry_validate", count=len(report.missing_from_lock))
            results = self.validator.resolve_many(report.missing_from_lock)
            for name, result in results.items():
                if result.found:
                    report.installable.append(name)
                elif result.unverified:
                    report.unverified.append(name)
                else:
                    report.non_installable.append(name)

        if options.auto_fix and report.installable:
            log.info("reconciler.lock_fix", count=len(report.installable))
            report.added_to_lock, report.lock_failures = self.fixer.add_to_lockfile(
                report.installable
            )

        # ── Prune ────────────────────────────────────────────────────────
        if options.prune:
            report.pruned = self.pruner.prune(report.code_packages)

        report.verdict = self._verdict(report, manifest_targets, options.auto_fix)
        log.info("reconciler.done", verdict=report.verdict.value, mutated=report.mutated)
        return report

    # ── internal ─────────────────────────────────────────────────────────

    @staticmethod
    def _verdict(report: ValidationReport, manifest_targets: list[str], auto_fix: bool) -> Verdict:
        if not auto_fix:
            if manifest_targets or report.installable or report.unverified:
                return Verdict.FAILED_NO_FIX
            return Verdict.PASSED
        if report.manifest_failures:
            return Verdict.FAILED_MANIFEST_FIX
        if report.lock_failures or report.unverified:
            return Verdict.FAILED_LOCK_FIX
        return Verdict.PASSED
