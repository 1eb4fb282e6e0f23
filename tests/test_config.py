"""Tests for afterpath.config: AfterpathConfig, TOML loading, CLI overrides."""

from pathlib import Path
from unittest.mock import patch

import pytest
from afterpath.config import (
    AfterpathConfig,
    ImagesConfig,
    load_config,
    merge_cli_overrides,
)
from pydantic import ValidationError


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path):
    """Hide env vars and the user's global config from every test."""
    for key in ("AFTERPATH_DATA_DIR", "AFTERPATH_IMAGE_WIDTH", "AFTERPATH_SUBMIT_DELAY"):
        monkeypatch.delenv(key, raising=False)
    with patch("afterpath.config.GLOBAL_CONFIG_PATH", tmp_path / "no-global.toml"):
        yield


class TestAfterpathConfigDefaults:
    """Test that AfterpathConfig has sensible defaults."""

    def test_default_storage(self):
        cfg = AfterpathConfig()
        assert cfg.storage.directory == "./.afterpath-data"
        assert cfg.storage.key_prefix == "after_"

    def test_default_images(self):
        cfg = AfterpathConfig()
        assert cfg.images.target_width == 1200
        assert cfg.images.quality == 85
        assert cfg.images.background == "#FDFBF7"
        assert cfg.images.preview_width == 400

    def test_default_submissions(self):
        assert AfterpathConfig().submissions.submit_delay == 0.0

    def test_data_dir_expands_home(self):
        cfg = AfterpathConfig(storage={"directory": "~/after"})
        assert cfg.data_dir == Path.home() / "after"

    @pytest.mark.parametrize("width", [0, -10])
    def test_non_positive_width_rejected(self, width):
        with pytest.raises(ValidationError):
            ImagesConfig(target_width=width)


class TestLoadConfig:
    """Test load_config with TOML files."""

    def test_load_from_explicit_path(self, tmp_path):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text('[images]\ntarget_width = 800\nquality = 70\n')
        cfg = load_config(toml_path)
        assert cfg.images.target_width == 800
        assert cfg.images.quality == 70
        assert cfg.images.preview_width == 400  # other defaults preserved

    def test_load_missing_path_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg == AfterpathConfig()

    def test_load_searches_cwd(self, tmp_path):
        (tmp_path / ".afterpath.toml").write_text('[storage]\ndirectory = "/srv/after"\n')
        with patch("afterpath.config.CONFIG_SEARCH_PATHS", [tmp_path]):
            cfg = load_config()
        assert cfg.storage.directory == "/srv/after"

    def test_falls_back_to_global(self, tmp_path):
        global_path = tmp_path / "global.toml"
        global_path.write_text("[submissions]\nsubmit_delay = 1.5\n")
        with (
            patch("afterpath.config.CONFIG_SEARCH_PATHS", []),
            patch("afterpath.config.GLOBAL_CONFIG_PATH", global_path),
        ):
            cfg = load_config()
        assert cfg.submissions.submit_delay == 1.5

    def test_load_empty_toml(self, tmp_path):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text("")
        assert load_config(toml_path) == AfterpathConfig()

    def test_invalid_toml_returns_defaults(self, tmp_path):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text("this is not valid toml {{{")
        assert load_config(toml_path) == AfterpathConfig()

    def test_invalid_values_return_defaults(self, tmp_path):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text("[images]\ntarget_width = 0\n")
        assert load_config(toml_path).images.target_width == 1200


class TestEnvVarOverrides:
    """Test that environment variables override TOML values."""

    def test_data_dir_env(self, tmp_path, monkeypatch):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text('[storage]\ndirectory = "from-toml"\n')
        monkeypatch.setenv("AFTERPATH_DATA_DIR", "from-env")
        assert load_config(toml_path).storage.directory == "from-env"

    def test_numeric_env_vars(self, monkeypatch):
        monkeypatch.setenv("AFTERPATH_IMAGE_WIDTH", "640")
        monkeypatch.setenv("AFTERPATH_SUBMIT_DELAY", "0.25")
        with patch("afterpath.config.CONFIG_SEARCH_PATHS", []):
            cfg = load_config()
        assert cfg.images.target_width == 640
        assert cfg.submissions.submit_delay == 0.25

    def test_malformed_numbers_ignored(self, monkeypatch):
        monkeypatch.setenv("AFTERPATH_IMAGE_WIDTH", "wide")
        monkeypatch.setenv("AFTERPATH_SUBMIT_DELAY", "soon")
        with patch("afterpath.config.CONFIG_SEARCH_PATHS", []):
            cfg = load_config()
        assert cfg.images.target_width == 1200
        assert cfg.submissions.submit_delay == 0.0

    @pytest.mark.parametrize("width", ["0", "-5"])
    def test_non_positive_width_ignored(self, tmp_path, monkeypatch, width):
        toml_path = tmp_path / ".afterpath.toml"
        toml_path.write_text("[images]\ntarget_width = 800\n")
        monkeypatch.setenv("AFTERPATH_IMAGE_WIDTH", width)
        cfg = load_config(toml_path)
        assert cfg.images.target_width == 800


class TestMergeCliOverrides:
    """Test CLI flag override merging."""

    def test_override_data_dir(self, tmp_path):
        merged = merge_cli_overrides(AfterpathConfig(), data_dir=tmp_path)
        assert merged.storage.directory == str(tmp_path)
        assert merged.data_dir == tmp_path

    def test_override_numbers(self):
        merged = merge_cli_overrides(AfterpathConfig(), image_width=300, submit_delay=2.0)
        assert merged.images.target_width == 300
        assert merged.submissions.submit_delay == 2.0

    def test_none_and_unknown_values_ignored(self):
        merged = merge_cli_overrides(AfterpathConfig(), data_dir=None, colour="blue")
        assert merged == AfterpathConfig()
