"""Render a :class:`ValidationReport` as human-readable lines with remediation."""

from __future__ import annotations

from renvsentinel.engines.dependency_validator.fixer import format_r_vector
from renvsentinel.engines.dependency_validator.models import FixFailure, ValidationReport, Verdict

RULE = "━" * 74


def _bullets(names: list[str], marker: str = "-") -> list[str]:
    return [f"  {marker} {name}" for name in names]


def _failure_lines(title: str, failures: list[FixFailure]) -> list[str]:
    lines = [title]
    for failure in failures:
        lines.append(f"  - {failure.name}: {failure.reason}")
        lines.extend(f"      {step}" for step in failure.remediation)
    return lines


def non_installable_guidance(names: list[str]) -> list[str]:
    """Manual-install options for names no registry knows about."""
    lines = [
        RULE,
        "Non-installable packages detected (not in CRAN/Bioconductor/GitHub):",
        "",
        *_bullets(names, "•"),
        "",
        "These packages must be handled manually in your Docker container:",
        "",
        "  Option 1: Local package (development)",
        "    • Install in R: remotes::install_local('/path/to/pkg')",
        "",
        "  Option 2: GitHub package",
        "    • Use format 'owner/repo' in DESCRIPTION or:",
        "    • Install in R: remotes::install_github('owner/repo')",
        "",
        "  Option 3: Bioconductor package",
        "    • Install in R: BiocManager::install('pkgname')",
        "",
        "  Then snapshot to lock in renv.lock: renv::snapshot()",
        RULE,
    ]
    return lines


def render_report(report: ValidationReport, verbose: bool = False) -> list[str]:
    lines: list[str] = [
        f"Found {len(report.code_packages)} packages in code",
        f"Found {len(report.manifest_packages)} packages in DESCRIPTION",
        f"Found {len(report.lock_packages)} packages in renv.lock",
        f"Union of all packages: {len(report.union)} packages",
    ]
    if report.invalid_token_count:
        lines.append(f"Ignored {report.invalid_token_count} invalid package name token(s)")
    show_lists = verbose or report.auto_fix

    # ── DESCRIPTION ──────────────────────────────────────────────────────
    undeclared = [n for n in report.missing_from_manifest if n not in report.lock_only]
    if undeclared:
        lines += ["", f"{len(undeclared)} package(s) missing from DESCRIPTION"]
        if show_lists:
            lines += _bullets(undeclared)
        elif not report.auto_fix:
            lines.append("Run with --verbose to see the list of missing packages")
    if report.lock_only and verbose:
        lines += ["", f"{len(report.lock_only)} package(s) pinned only in renv.lock (not added):"]
        lines += _bullets(report.lock_only)
    if report.added_to_manifest:
        lines += ["", "Added to DESCRIPTION:", *_bullets(report.added_to_manifest)]
    if report.manifest_failures:
        lines += ["", *_failure_lines("Failed to add to DESCRIPTION:", report.manifest_failures)]

    # ── renv.lock ────────────────────────────────────────────────────────
    if report.installable:
        lines += ["", f"{len(report.installable)} installable package(s) missing from renv.lock"]
        if show_lists:
            lines += _bullets(report.installable)
        lines.append(
            "Missing installable packages break reproducibility! "
            "Collaborators cannot restore your environment."
        )
    if report.added_to_lock:
        lines += ["", "Added to renv.lock:"]
        lines += [f"  - {name} ({version})" for name, version in report.added_to_lock.items()]
    if report.lock_failures:
        failed = [f.name for f in report.lock_failures]
        lines += [
            "",
            *_failure_lines("Failed to add to renv.lock:", report.lock_failures),
            "Add them manually:",
            "  make docker-zsh",
            f"  R> renv::install({format_r_vector(failed)})",
            "  R> quit()",
        ]
    if report.unverified:
        lines += [
            "",
            "Could not reach any registry for:",
            *_bullets(report.unverified),
            "Check your network connection and re-run; these were not classified as non-installable.",
        ]
    if report.non_installable:
        lines += ["", *non_installable_guidance(report.non_installable)]

    # ── pruning ──────────────────────────────────────────────────────────
    if report.pruned:
        lines += [
            "",
            f"Removed {len(report.pruned)} unused package(s) from DESCRIPTION:",
            *_bullets(report.pruned),
            "Next renv::snapshot() will update renv.lock accordingly",
        ]

    lines += ["", *verdict_lines(report)]
    return lines


def verdict_lines(report: ValidationReport) -> list[str]:
    if report.verdict is Verdict.PASSED:
        lines = ["Package environment validation passed"]
        if report.added_to_lock:
            lines += [
                "Next steps:",
                "  1. Start R to auto-install packages: make r",
                "  2. Rebuild Docker image: make docker-build",
                "  3. Commit changes: git add DESCRIPTION renv.lock && git commit -m 'Add packages'",
            ]
        return lines

    lines = [f"Package environment validation failed ({report.verdict.value})"]
    if report.verdict is Verdict.FAILED_NO_FIX:
        lines += ["", "To fix missing packages, you can:", "  1. Re-run with --fix"]
        lines.append("  2. Add them manually to the DESCRIPTION Imports field")
        if report.installable:
            lines += [
                "  3. Inside the container:",
                f"     R> renv::install({format_r_vector(report.installable)})",
                "     R> quit()",
            ]
    return lines
