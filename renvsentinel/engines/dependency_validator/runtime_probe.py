"""Ask a reference Docker image which version of an R package it ships."""

from __future__ import annotations

import re
import shutil
import subprocess

from renvsentinel.exceptions import RuntimeProbeError

_VERSION_RE = re.compile(r"^\d+(?:[.-]\d+)+$")


class RuntimeProbe:
    """Thin wrapper around ``docker run --rm IMAGE R --slave -e ...``."""

    def __init__(self, docker: str = "docker", timeout: float = 300.0) -> None:
        self.docker = docker
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.docker) is not None

    def package_version(self, image: str, package: str) -> str:
        """Return ``packageVersion(package)`` inside *image*.

        Raises RuntimeProbeError if docker fails or prints something that
        is not a version string.
        """
        cmd = [
            self.docker, "run", "--rm", image,
            "R", "--slave", "-e", f"cat(as.character(packageVersion('{package}')))",
        ]
        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout, check=False
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RuntimeProbeError(f"docker run failed: {exc}") from exc

        if proc.returncode != 0:
            raise RuntimeProbeError(
                f"docker run exited {proc.returncode}: {proc.stderr.strip()}"
            )
        version = proc.stdout.strip()
        if not _VERSION_RE.match(version):
            raise RuntimeProbeError(f"unexpected version output: {version!r}")
        return version
