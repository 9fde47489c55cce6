"""Helpers that build throwaway R projects and fake registries for tests."""

from __future__ import annotations

import json
from pathlib import Path

import httpx

from renvsentinel.engines.dependency_validator.registry import RegistryValidator

CRAN = "https://crandb.r-pkg.org"
BIOC = "https://www.bioconductor.org/packages/json/3.17"
GITHUB = "https://api.github.com/repos"


class FakeRegistries:
    """URL → (status, body) table; unknown URLs answer 404 like crandb does.

    A body that is an exception instance is raised instead, to simulate a
    transport failure.
    """

    def __init__(self, responses: dict[str, tuple[int, object]] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        if url not in self.responses:
            return httpx.Response(404, json={"error": "not_found"})
        status, body = self.responses[url]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def validator(self, **kwargs) -> RegistryValidator:
        return RegistryValidator(client=self.client(), **kwargs)


def write_description(project: Path, imports: list[str] | None = None, name: str = "demoproj") -> Path:
    lines = [f"Package: {name}", "Version: 0.1.0", "Title: Demo Project"]
    if imports is not None:
        lines.append("Imports:")
        lines += [f"    {pkg}," for pkg in imports[:-1]]
        if imports:
            lines.append(f"    {imports[-1]}")
    lines.append("License: MIT")
    path = project / "DESCRIPTION"
    path.write_text("\n".join(lines) + "\n")
    return path


def write_lock(project: Path, packages: dict[str, str]) -> Path:
    document = {
        "R": {
            "Version": "4.5.1",
            "Repositories": [{"Name": "CRAN", "URL": "https://cloud.r-project.org"}],
        },
        "Packages": {
            name: {"Package": name, "Version": version, "Source": "Repository", "Repository": "CRAN"}
            for name, version in packages.items()
        },
    }
    path = project / "renv.lock"
    path.write_text(json.dumps(document, indent=2) + "\n")
    return path


def read_lock_versions(project: Path) -> dict[str, str]:
    data = json.loads((project / "renv.lock").read_text())
    return {name: entry["Version"] for name, entry in data["Packages"].items()}


def write_code(project: Path, relpath: str, content: str) -> Path:
    path = project / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path
