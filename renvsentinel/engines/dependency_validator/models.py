"""Data models for the dependency validator engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class Registry(str, enum.Enum):
    """Where a package name was confirmed installable."""

    PRIMARY = "CRAN"
    SECONDARY = "Bioconductor"
    VCS = "GitHub"
    NONE = "none"


class ProbeStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


class Verdict(str, enum.Enum):
    """Terminal state of a validation run."""

    PASSED = "passed"
    FAILED_MANIFEST_FIX = "failed_manifest_fix"
    FAILED_LOCK_FIX = "failed_lock_fix"
    FAILED_NO_FIX = "failed_no_fix"

    @property
    def exit_code(self) -> int:
        return 0 if self is Verdict.PASSED else 1


class ScanScope(str, enum.Enum):
    STANDARD = "standard"
    STRICT = "strict"


@dataclass
class ProbeOutcome:
    """Result of a single registry probe for one name."""

    status: ProbeStatus
    metadata: dict[str, Any] | None = None
    detail: str | None = None  # transport error text or HTTP status


@dataclass
class RegistryResult:
    """Outcome of the full registry cascade for one name."""

    name: str
    found: bool
    registry: Registry = Registry.NONE
    metadata: dict[str, Any] | None = None
    # Registries that could not be reached (vs. answered "not found")
    transport_errors: list[Registry] = field(default_factory=list)

    @property
    def unverified(self) -> bool:
        """True when nothing was found and at least one probe never got an answer."""
        return not self.found and bool(self.transport_errors)


@dataclass
class Declaration:
    """One entry of the DESCRIPTION declared-dependency field."""

    name: str
    constraint: str | None = None  # verbatim "(>= 1.0)" text, if any


@dataclass
class Provenance:
    from_code: bool = False
    from_manifest: bool = False
    from_lock: bool = False

    @property
    def lock_only(self) -> bool:
        return self.from_lock and not (self.from_code or self.from_manifest)


@dataclass
class FixFailure:
    """A single name whose manifest or lockfile write did not succeed."""

    name: str
    reason: str
    remediation: list[str] = field(default_factory=list)


@dataclass
class ValidationOptions:
    scope: ScanScope = ScanScope.STRICT
    auto_fix: bool = True
    prune: bool = True
    verbose: bool = False


@dataclass
class ValidationReport:
    """Everything a run observed, decided and changed."""

    code_packages: list[str] = field(default_factory=list)
    manifest_packages: list[str] = field(default_factory=list)
    lock_packages: list[str] = field(default_factory=list)
    union: dict[str, Provenance] = field(default_factory=dict)
    invalid_token_count: int = 0

    missing_from_manifest: list[str] = field(default_factory=list)
    missing_from_lock: list[str] = field(default_factory=list)
    # missing from the manifest but only pinned in the lockfile; never added
    lock_only: list[str] = field(default_factory=list)

    added_to_manifest: list[str] = field(default_factory=list)
    manifest_failures: list[FixFailure] = field(default_factory=list)

    installable: list[str] = field(default_factory=list)
    non_installable: list[str] = field(default_factory=list)
    unverified: list[str] = field(default_factory=list)
    added_to_lock: dict[str, str] = field(default_factory=dict)
    lock_failures: list[FixFailure] = field(default_factory=list)

    pruned: list[str] = field(default_factory=list)

    auto_fix: bool = False
    verdict: Verdict = Verdict.PASSED

    @property
    def mutated(self) -> bool:
        return bool(self.added_to_manifest or self.added_to_lock or self.pruned)
