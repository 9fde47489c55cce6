"""Registry validator: short-circuit cascade over CRAN, Bioconductor and GitHub.

Each probe is one blocking GET with no retry.  A non-2xx answer means
"not found"; a transport failure (DNS, refused, timeout) is recorded
separately so callers can tell a network outage from a genuinely unknown
package, but the cascade treats both the same way and moves on.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

import httpx
import structlog

from renvsentinel.config import ValidatorConfig
from renvsentinel.engines.dependency_validator.models import (
    ProbeOutcome,
    ProbeStatus,
    Registry,
    RegistryResult,
)

log = structlog.get_logger("renvsentinel.engine")

_OWNER_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_NOT_FOUND_MARKER = "Not Found"


class RegistryProbe(Protocol):
    """Interface every registry probe satisfies."""

    registry: Registry

    def applies_to(self, name: str) -> bool: ...

    def probe(self, client: httpx.Client, name: str) -> ProbeOutcome: ...


def _get(client: httpx.Client, url: str, headers: dict[str, str] | None = None) -> httpx.Response | ProbeOutcome:
    """GET *url*; returns the response, or a TRANSPORT_ERROR outcome."""
    try:
        return client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        return ProbeOutcome(ProbeStatus.TRANSPORT_ERROR, detail=f"{type(exc).__name__}: {exc}")


def _json_body(resp: httpx.Response) -> dict[str, Any] | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class PrimaryProbe:
    """CRAN metadata via crandb: ``<base>/<name>``."""

    registry = Registry.PRIMARY

    def __init__(self, base_url: str = "https://crandb.r-pkg.org") -> None:
        self.base_url = base_url.rstrip("/")

    def applies_to(self, name: str) -> bool:
        return "/" not in name

    def probe(self, client: httpx.Client, name: str) -> ProbeOutcome:
        resp = _get(client, f"{self.base_url}/{name}")
        if isinstance(resp, ProbeOutcome):
            return resp
        if not resp.is_success:
            return ProbeOutcome(ProbeStatus.NOT_FOUND, detail=f"HTTP {resp.status_code}")
        body = _json_body(resp)
        if body is None:
            return ProbeOutcome(ProbeStatus.NOT_FOUND, detail="empty or non-JSON body")
        return ProbeOutcome(ProbeStatus.FOUND, metadata=body)


class SecondaryProbe:
    """Bioconductor package JSON: ``<base>/<release>/<name>``."""

    registry = Registry.SECONDARY

    def __init__(
        self,
        base_url: str = "https://www.bioconductor.org/packages/json",
        release: str = "3.17",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.release = release

    def applies_to(self, name: str) -> bool:
        return "/" not in name

    def probe(self, client: httpx.Client, name: str) -> ProbeOutcome:
        resp = _get(client, f"{self.base_url}/{self.release}/{name}")
        if isinstance(resp, ProbeOutcome):
            return resp
        if not resp.is_success or not resp.content.strip():
            return ProbeOutcome(ProbeStatus.NOT_FOUND, detail=f"HTTP {resp.status_code}")
        return ProbeOutcome(ProbeStatus.FOUND, metadata=_json_body(resp) or {})


class VcsProbe:
    """GitHub repository lookup for ``owner/repo`` references."""

    registry = Registry.VCS

    def __init__(self, base_url: str = "https://api.github.com", token: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN")

    def applies_to(self, name: str) -> bool:
        return _OWNER_REPO_RE.match(name) is not None

    def probe(self, client: httpx.Client, name: str) -> ProbeOutcome:
        owner, repo = name.split("/", 1)
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        resp = _get(client, f"{self.base_url}/repos/{owner}/{repo}", headers=headers)
        if isinstance(resp, ProbeOutcome):
            return resp
        # GitHub sometimes answers 2xx with a "Not Found" message body
        if not resp.is_success or _NOT_FOUND_MARKER in resp.text:
            return ProbeOutcome(ProbeStatus.NOT_FOUND, detail=f"HTTP {resp.status_code}")
        return ProbeOutcome(ProbeStatus.FOUND, metadata=_json_body(resp) or {})


class RegistryValidator:
    """Decide whether a package name is installable from a known registry.

    Results are cached per exact name for the lifetime of the validator,
    which is one validation run.
    """

    def __init__(
        self,
        probes: list[RegistryProbe] | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        max_workers: int = 1,
    ) -> None:
        self.probes = probes if probes is not None else [PrimaryProbe(), SecondaryProbe(), VcsProbe()]
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.max_workers = max(1, max_workers)
        self._cache: dict[str, RegistryResult] = {}
        self._primary = next(
            (p for p in self.probes if p.registry is Registry.PRIMARY), PrimaryProbe()
        )

    @classmethod
    def from_config(
        cls, config: ValidatorConfig, client: httpx.Client | None = None
    ) -> RegistryValidator:
        return cls(
            probes=[
                PrimaryProbe(config.cran_url),
                SecondaryProbe(config.bioconductor_url, config.bioconductor_version),
                VcsProbe(config.github_api_url),
            ],
            client=client,
            timeout=config.http_timeout,
            max_workers=config.max_workers,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> RegistryValidator:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── public ─────────────────────────────────────────────────────────────

    def resolve(self, name: str) -> RegistryResult:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        result = self._cascade(name)
        self._cache[name] = result
        return result

    def resolve_many(self, names: Iterable[str]) -> dict[str, RegistryResult]:
        """Resolve every name, in input order.

        With ``max_workers > 1`` distinct uncached names are probed in
        parallel; each name's own cascade still runs in order.
        """
        ordered = list(dict.fromkeys(names))
        pending = [n for n in ordered if n not in self._cache]
        if self.max_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                for name, result in zip(pending, pool.map(self._cascade, pending)):
                    self._cache[name] = result
        return {name: self.resolve(name) for name in ordered}

    def fetch_version(self, name: str) -> str | None:
        """Fresh Primary round-trip for version metadata.

        A name confirmed by Bioconductor or GitHub has no CRAN version, so
        this returns ``None`` for it.
        """
        outcome = self._primary.probe(self._client, name)
        if outcome.status is not ProbeStatus.FOUND or not outcome.metadata:
            log.debug("registry.version_unavailable", package=name, status=outcome.status.value)
            return None
        version = outcome.metadata.get("Version")
        return str(version) if version else None

    # ── internal ───────────────────────────────────────────────────────────

    def _cascade(self, name: str) -> RegistryResult:
        transport_errors: list[Registry] = []
        for probe in self.probes:
            if not probe.applies_to(name):
                continue
            outcome = probe.probe(self._client, name)
            if outcome.status is ProbeStatus.FOUND:
                log.debug("registry.found", package=name, registry=probe.registry.value)
                return RegistryResult(
                    name=name,
                    found=True,
                    registry=probe.registry,
                    metadata=outcome.metadata,
                    transport_errors=transport_errors,
                )
            if outcome.status is ProbeStatus.TRANSPORT_ERROR:
                log.debug(
                    "registry.transport_error",
                    package=name,
                    registry=probe.registry.value,
                    detail=outcome.detail,
                )
                transport_errors.append(probe.registry)

        if transport_errors:
            log.warning(
                "registry.unreachable",
                package=name,
                registries=[r.value for r in transport_errors],
            )
        else:
            log.debug("registry.not_found", package=name)
        return RegistryResult(name=name, found=False, transport_errors=transport_errors)
