"""Dependency validator engine: keep R code, DESCRIPTION and renv.lock in sync."""

from renvsentinel.engines.dependency_validator.models import (
    ScanScope,
    ValidationOptions,
    ValidationReport,
    Verdict,
)
from renvsentinel.engines.dependency_validator.reconciler import (
    Reconciler,
    compute_union,
    missing_from,
)

__all__ = [
    "Reconciler",
    "ScanScope",
    "ValidationOptions",
    "ValidationReport",
    "Verdict",
    "compute_union",
    "missing_from",
]
