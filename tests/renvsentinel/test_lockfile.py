"""Tests for renv.lock handling and the reference-image runtime probe."""

from __future__ import annotations

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from rproject import read_lock_versions, write_lock

from renvsentinel.engines.dependency_validator.lockfile import BOOTSTRAP_PACKAGE, Lockfile
from renvsentinel.engines.dependency_validator.runtime_probe import RuntimeProbe
from renvsentinel.exceptions import LockfileError, RuntimeProbeError


def _probe(version: str | None = "1.1.4", available: bool = True, error: Exception | None = None):
    probe = MagicMock(spec=RuntimeProbe)
    probe.available.return_value = available
    if error is not None:
        probe.package_version.side_effect = error
    else:
        probe.package_version.return_value = version
    return probe


class TestListPackages:
    def test_creates_minimal_lockfile(self, tmp_path):
        lock = Lockfile(tmp_path / "renv.lock", default_r_version="4.4.2")
        assert lock.list_packages() == []
        data = json.loads((tmp_path / "renv.lock").read_text())
        assert data == {
            "R": {
                "Version": "4.4.2",
                "Repositories": [{"Name": "CRAN", "URL": "https://cloud.r-project.org"}],
            },
            "Packages": {},
        }

    def test_sorted_keys(self, tmp_path):
        write_lock(tmp_path, {"tidyr": "1.3.0", "dplyr": "1.1.4", "broom": "1.0.5"})
        assert Lockfile(tmp_path / "renv.lock").list_packages() == ["broom", "dplyr", "tidyr"]

    def test_corrupt_lockfile_reads_empty(self, tmp_path):
        (tmp_path / "renv.lock").write_text("{ not json")
        assert Lockfile(tmp_path / "renv.lock").list_packages() == []
        # left as found
        assert (tmp_path / "renv.lock").read_text() == "{ not json"

    def test_undecodable_lockfile_reads_empty(self, tmp_path):
        (tmp_path / "renv.lock").write_bytes(b'{"Packages": {"caf\xe9": {}}}')
        assert Lockfile(tmp_path / "renv.lock").list_packages() == []

    def test_uncreatable_lockfile_reads_empty(self, tmp_path):
        path = tmp_path / "missingdir" / "renv.lock"
        assert Lockfile(path).list_packages() == []
        assert not path.exists()

    def test_get_package(self, tmp_path):
        write_lock(tmp_path, {"dplyr": "1.1.4"})
        lock = Lockfile(tmp_path / "renv.lock")
        assert lock.get_package("dplyr")["Version"] == "1.1.4"
        assert lock.get_package("ggplot2") is None
        assert Lockfile(tmp_path / "absent.lock").get_package("dplyr") is None


class TestUpsertPackage:
    def test_inserts_and_preserves_others(self, tmp_path):
        path = write_lock(tmp_path, {"dplyr": "1.1.4"})
        data = json.loads(path.read_text())
        data["Packages"]["dplyr"]["Hash"] = "abc123"
        data["Extra"] = {"keep": True}
        path.write_text(json.dumps(data, indent=2) + "\n")

        Lockfile(path).upsert_package("ggplot2", "3.4.4")

        after = json.loads(path.read_text())
        assert after["Packages"]["dplyr"]["Hash"] == "abc123"
        assert after["Extra"] == {"keep": True}
        assert after["Packages"]["ggplot2"] == {
            "Package": "ggplot2",
            "Version": "3.4.4",
            "Source": "Repository",
            "Repository": "CRAN",
        }

    def test_overwrites_existing_entry(self, tmp_path):
        write_lock(tmp_path, {"dplyr": "1.0.0"})
        Lockfile(tmp_path / "renv.lock").upsert_package("dplyr", "1.1.4")
        assert read_lock_versions(tmp_path) == {"dplyr": "1.1.4"}

    def test_output_is_indented_json_with_newline(self, tmp_path):
        write_lock(tmp_path, {})
        Lockfile(tmp_path / "renv.lock").upsert_package("dplyr", "1.1.4")
        text = (tmp_path / "renv.lock").read_text()
        assert text.endswith("}\n")
        assert '\n  "Packages": {' in text

    def test_missing_lockfile_raises(self, tmp_path):
        with pytest.raises(LockfileError) as exc_info:
            Lockfile(tmp_path / "renv.lock").upsert_package("dplyr", "1.1.4")
        assert any("renv::init()" in line for line in exc_info.value.remediation)

    def test_corrupt_lockfile_raises(self, tmp_path):
        (tmp_path / "renv.lock").write_text("[")
        with pytest.raises(LockfileError):
            Lockfile(tmp_path / "renv.lock").upsert_package("dplyr", "1.1.4")

    def test_undecodable_lockfile_raises(self, tmp_path):
        (tmp_path / "renv.lock").write_bytes(b"\xff\xfe{}")
        with pytest.raises(LockfileError, match="cannot read"):
            Lockfile(tmp_path / "renv.lock").upsert_package("dplyr", "1.1.4")


class TestSyncRuntimeVersion:
    def test_pins_bootstrap_entry_and_keeps_hash(self, tmp_path):
        path = write_lock(tmp_path, {"renv": "1.0.0", "dplyr": "1.1.4"})
        data = json.loads(path.read_text())
        data["Packages"]["renv"]["Hash"] = "deadbeef"
        path.write_text(json.dumps(data))

        probe = _probe("1.1.4")
        assert Lockfile(path).sync_runtime_version("rocker/r-ver:4.4.2", probe=probe) == "1.1.4"

        probe.package_version.assert_called_once_with("rocker/r-ver:4.4.2", BOOTSTRAP_PACKAGE)
        entry = json.loads(path.read_text())["Packages"]["renv"]
        assert entry["Version"] == "1.1.4"
        assert entry["Hash"] == "deadbeef"
        assert read_lock_versions(tmp_path)["dplyr"] == "1.1.4"

    def test_adds_entry_when_absent(self, tmp_path):
        write_lock(tmp_path, {})
        Lockfile(tmp_path / "renv.lock").sync_runtime_version("img", probe=_probe("1.0.7"))
        assert read_lock_versions(tmp_path) == {"renv": "1.0.7"}

    def test_skipped_without_lockfile(self, tmp_path):
        probe = _probe()
        assert Lockfile(tmp_path / "renv.lock").sync_runtime_version("img", probe=probe) is None
        probe.available.assert_not_called()
        assert not (tmp_path / "renv.lock").exists()

    def test_skipped_without_docker(self, tmp_path):
        path = write_lock(tmp_path, {"renv": "1.0.0"})
        before = path.read_text()
        probe = _probe(available=False)
        assert Lockfile(path).sync_runtime_version("img", probe=probe) is None
        probe.package_version.assert_not_called()
        assert path.read_text() == before

    def test_skipped_on_probe_failure(self, tmp_path):
        path = write_lock(tmp_path, {"renv": "1.0.0"})
        before = path.read_text()
        probe = _probe(error=RuntimeProbeError("pull access denied"))
        assert Lockfile(path).sync_runtime_version("img", probe=probe) is None
        assert path.read_text() == before


class TestRuntimeProbe:
    def _completed(self, stdout="", returncode=0, stderr=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)

    def test_package_version(self):
        with patch("subprocess.run", return_value=self._completed("1.0.7")) as run:
            assert RuntimeProbe().package_version("rocker/r-ver:4.4.2", "renv") == "1.0.7"
        cmd = run.call_args.args[0]
        assert cmd[:4] == ["docker", "run", "--rm", "rocker/r-ver:4.4.2"]
        assert cmd[-1] == "cat(as.character(packageVersion('renv')))"

    def test_nonzero_exit(self):
        with patch("subprocess.run", return_value=self._completed(returncode=125, stderr="no such image")):
            with pytest.raises(RuntimeProbeError, match="no such image"):
                RuntimeProbe().package_version("img", "renv")

    def test_garbage_output(self):
        with patch("subprocess.run", return_value=self._completed("Error in library(renv)")):
            with pytest.raises(RuntimeProbeError, match="unexpected version"):
                RuntimeProbe().package_version("img", "renv")

    def test_timeout(self):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="docker", timeout=1)):
            with pytest.raises(RuntimeProbeError):
                RuntimeProbe(timeout=1).package_version("img", "renv")

    def test_available(self):
        with patch("shutil.which", return_value=None):
            assert RuntimeProbe().available() is False
        with patch("shutil.which", return_value="/usr/bin/docker"):
            assert RuntimeProbe().available() is True
