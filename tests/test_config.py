"""Unit tests for tapbook.config — TapbookConfig and related functions."""

from __future__ import annotations

from pathlib import Path

import pytest

from tapbook.config import TapbookConfig, TapbookConfigError, load_config, resolve_project_dir
from tapbook.models import (
    DEFAULT_SCROLL_ATTEMPTS,
    DEFAULT_SCROLL_TIMEOUT,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_SIMULATOR_NAME,
    MAX_SUGGESTIONS,
)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestTapbookConfigDefaults:
    """TapbookConfig should have sensible defaults for every field."""

    def test_default_bundle_id_is_empty(self):
        cfg = TapbookConfig()
        assert cfg.bundle_id == ""

    def test_default_simulator_is_unset(self):
        cfg = TapbookConfig()
        assert cfg.simulator is None
        assert cfg.device_name == DEFAULT_SIMULATOR_NAME
        assert cfg.os_version is None

    def test_default_retry_budget_matches_models_constants(self):
        cfg = TapbookConfig()
        assert cfg.scroll_attempts == DEFAULT_SCROLL_ATTEMPTS
        assert cfg.scroll_timeout == DEFAULT_SCROLL_TIMEOUT
        assert cfg.settle_delay == DEFAULT_SETTLE_DELAY
        assert cfg.max_suggestions == MAX_SUGGESTIONS

    def test_default_step_timeout_is_disabled(self):
        cfg = TapbookConfig()
        assert cfg.step_timeout is None

    def test_default_dirs(self):
        cfg = TapbookConfig()
        assert cfg.project_dir == Path(".tapbook")
        assert cfg.playbooks_dir == Path(".tapbook/playbooks")
        assert cfg.evidence_dir == Path(".tapbook/evidence")


# ---------------------------------------------------------------------------
# 2. from_file() — happy path
# ---------------------------------------------------------------------------

class TestFromFile:
    """TapbookConfig.from_file() should load and parse valid YAML."""

    def test_from_file_with_valid_yaml(self, tmp_project_dir: Path):
        cfg = TapbookConfig.from_file(tmp_project_dir / "config.yaml")

        assert cfg.bundle_id == "com.example.demo"
        assert cfg.simulator == "iPhone 15"
        assert cfg.scroll_attempts == 4
        assert cfg.settle_delay == 0.0
        # project_dir should be the parent of the config file
        assert cfg.project_dir == tmp_project_dir

    def test_from_file_missing_file_raises_config_error(self, tmp_path: Path):
        with pytest.raises(TapbookConfigError, match="Config file not found"):
            TapbookConfig.from_file(tmp_path / "nonexistent.yaml")

    def test_from_file_empty_yaml_returns_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")

        cfg = TapbookConfig.from_file(config_file)
        assert cfg.bundle_id == ""
        assert cfg.scroll_attempts == DEFAULT_SCROLL_ATTEMPTS

    def test_from_file_invalid_yaml_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("bundle_id: [broken\n", encoding="utf-8")

        with pytest.raises(TapbookConfigError, match="Invalid YAML"):
            TapbookConfig.from_file(config_file)

    def test_from_file_non_mapping_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(TapbookConfigError, match="must be a YAML mapping"):
            TapbookConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 3. _from_dict() — key mapping
# ---------------------------------------------------------------------------

class TestFromDict:
    """_from_dict() should correctly map YAML keys to config attributes."""

    def test_maps_directory_keys(self, tmp_path: Path):
        cfg = TapbookConfig._from_dict({"playbooks_dir": "flows", "evidence_dir": "out"}, tmp_path)
        assert cfg.playbooks_dir == tmp_path / "flows"
        assert cfg.evidence_dir == tmp_path / "out"

    def test_default_dirs_when_keys_missing(self, tmp_path: Path):
        cfg = TapbookConfig._from_dict({}, tmp_path)
        assert cfg.playbooks_dir == tmp_path / "playbooks"
        assert cfg.evidence_dir == tmp_path / "evidence"

    def test_numeric_strings_are_converted(self, tmp_path: Path):
        data = {"step_timeout": "30", "scroll_attempts": "5", "scroll_timeout": "2.5", "max_suggestions": 3}
        cfg = TapbookConfig._from_dict(data, tmp_path)
        assert cfg.step_timeout == 30.0
        assert cfg.scroll_attempts == 5
        assert cfg.scroll_timeout == 2.5
        assert cfg.max_suggestions == 3

    def test_invalid_number_raises(self, tmp_path: Path):
        with pytest.raises(TapbookConfigError, match="Invalid numeric value"):
            TapbookConfig._from_dict({"scroll_attempts": "lots"}, tmp_path)

    def test_scroll_attempts_must_be_positive(self, tmp_path: Path):
        with pytest.raises(TapbookConfigError, match="scroll_attempts must be at least 1"):
            TapbookConfig._from_dict({"scroll_attempts": 0}, tmp_path)

    def test_empty_simulator_means_unset(self, tmp_path: Path):
        cfg = TapbookConfig._from_dict({"simulator": "", "os_version": 17.2}, tmp_path)
        assert cfg.simulator is None
        assert cfg.os_version == "17.2"


# ---------------------------------------------------------------------------
# 4. resolve_playbook() / project discovery
# ---------------------------------------------------------------------------

class TestResolvePlaybook:
    """resolve_playbook() should accept paths or names inside playbooks_dir."""

    def test_resolves_name_in_playbooks_dir(self, tmp_project_dir: Path, sample_playbook_yaml: str):
        path = tmp_project_dir / "playbooks" / "login.yml"
        path.write_text(sample_playbook_yaml, encoding="utf-8")

        cfg = TapbookConfig.from_file(tmp_project_dir / "config.yaml")
        assert cfg.resolve_playbook("login") == path

    def test_resolves_explicit_path(self, tmp_path: Path, sample_playbook_yaml: str):
        path = tmp_path / "flow.yaml"
        path.write_text(sample_playbook_yaml, encoding="utf-8")
        assert TapbookConfig().resolve_playbook(str(path)) == path

    def test_missing_playbook_raises(self, tmp_project_dir: Path):
        cfg = TapbookConfig.from_file(tmp_project_dir / "config.yaml")
        with pytest.raises(TapbookConfigError, match="Playbook not found"):
            cfg.resolve_playbook("nonexistent")


class TestProjectDiscovery:

    def test_finds_project_dir_in_parent(self, tmp_project_dir: Path, monkeypatch: pytest.MonkeyPatch):
        nested = tmp_project_dir.parent / "app" / "src"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert resolve_project_dir() == tmp_project_dir

    def test_load_config_without_file_uses_defaults(self, tmp_path: Path):
        cfg = load_config(tmp_path / ".tapbook")
        assert cfg.project_dir == tmp_path / ".tapbook"
        assert cfg.bundle_id == ""

    def test_load_config_reads_file(self, tmp_project_dir: Path):
        assert load_config(tmp_project_dir).bundle_id == "com.example.demo"
