"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from renvsentinel.config import (
    CONFIG_FILENAME,
    DEFAULT_PROTECTED_PACKAGES,
    ValidatorConfig,
    apply_overrides,
    load_config,
)
from renvsentinel.exceptions import ConfigError


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path):
        config = load_config(tmp_path)
        assert config == ValidatorConfig()
        assert config.protected_packages == list(DEFAULT_PROTECTED_PACKAGES)

    def test_reads_project_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            'manifest_field = "Depends"\n'
            'extra_protected_packages = ["targets"]\n'
            'strict_dirs = ["R", "tests"]\n'
            "max_workers = 4\n"
        )
        config = load_config(tmp_path)
        assert config.manifest_field == "Depends"
        assert config.protected_packages == ["renv", "targets"]
        assert config.strict_dirs == ["R", "tests"]
        assert config.max_workers == 4

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "elsewhere.toml"
        path.write_text('bioconductor_version = "3.19"\n')
        assert load_config(tmp_path, path).bioconductor_version == "3.19"

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path, tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("this is = = not toml")
        with pytest.raises(ConfigError, match="cannot read config"):
            load_config(tmp_path)


class TestApplyOverrides:
    def test_extra_does_not_duplicate(self):
        config = apply_overrides(ValidatorConfig(), {"extra_placeholder_packages": ["foo", "mylab"]})
        assert config.placeholder_packages.count("foo") == 1
        assert config.placeholder_packages[-1] == "mylab"

    def test_defaults_not_shared_between_instances(self):
        apply_overrides(ValidatorConfig(), {"extra_base_packages": ["tcltk"]})
        assert "tcltk" not in ValidatorConfig().base_packages

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="unknown config key"):
            apply_overrides(ValidatorConfig(), {"colour": "blue"})

    def test_unknown_extra_key(self):
        with pytest.raises(ConfigError, match="unknown config key"):
            apply_overrides(ValidatorConfig(), {"extra_cran_url": ["x"]})

    @pytest.mark.parametrize("value", ["renv", ["renv", 1]])
    def test_list_fields_need_string_lists(self, value):
        with pytest.raises(ConfigError, match="list of strings"):
            apply_overrides(ValidatorConfig(), {"protected_packages": value})
