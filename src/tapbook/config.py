"""tapbook configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tapbook.models import (
    DEFAULT_SCROLL_ATTEMPTS,
    DEFAULT_SCROLL_TIMEOUT,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_SIMULATOR_NAME,
    DEFAULT_STEP_TIMEOUT,
    MAX_SUGGESTIONS,
)


class TapbookConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class TapbookConfig:
    """Configuration for a tapbook run."""

    # Target app
    bundle_id: str = ""
    simulator: str | None = None
    device_name: str = DEFAULT_SIMULATOR_NAME
    os_version: str | None = None
    idb_path: str = "idb"

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".tapbook"))
    playbooks_dir: Path = field(default_factory=lambda: Path(".tapbook/playbooks"))
    evidence_dir: Path = field(default_factory=lambda: Path(".tapbook/evidence"))

    # Behavior
    step_timeout: float | None = DEFAULT_STEP_TIMEOUT
    scroll_attempts: int = DEFAULT_SCROLL_ATTEMPTS
    scroll_timeout: float = DEFAULT_SCROLL_TIMEOUT
    settle_delay: float = DEFAULT_SETTLE_DELAY
    max_suggestions: int = MAX_SUGGESTIONS

    @classmethod
    def from_file(cls, config_path: Path) -> TapbookConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise TapbookConfigError(f"Config file not found: {config_path}\n\nTo fix: create {config_path}")
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise TapbookConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TapbookConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> TapbookConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        config.playbooks_dir = project_dir / data.get("playbooks_dir", "playbooks")
        config.evidence_dir = project_dir / data.get("evidence_dir", "evidence")

        if "bundle_id" in data:
            config.bundle_id = str(data["bundle_id"])
        if "simulator" in data:
            config.simulator = str(data["simulator"]) if data["simulator"] else None
        if "device_name" in data:
            config.device_name = str(data["device_name"])
        if "os_version" in data:
            config.os_version = str(data["os_version"]) if data["os_version"] else None
        if "idb_path" in data:
            config.idb_path = str(data["idb_path"])

        try:
            if data.get("step_timeout") is not None:
                config.step_timeout = float(data["step_timeout"])
            if "scroll_attempts" in data:
                config.scroll_attempts = int(data["scroll_attempts"])
            if "scroll_timeout" in data:
                config.scroll_timeout = float(data["scroll_timeout"])
            if "settle_delay" in data:
                config.settle_delay = float(data["settle_delay"])
            if "max_suggestions" in data:
                config.max_suggestions = int(data["max_suggestions"])
        except (TypeError, ValueError) as exc:
            raise TapbookConfigError(f"Invalid numeric value in config: {exc}") from exc

        if config.scroll_attempts < 1:
            raise TapbookConfigError(
                f"scroll_attempts must be at least 1, got: {config.scroll_attempts}"
            )

        return config

    def resolve_playbook(self, name: str) -> Path:
        """Resolve a playbook name or path to an existing file."""
        candidate = Path(name)
        if candidate.is_file():
            return candidate
        for suffix in (".yaml", ".yml"):
            path = self.playbooks_dir / f"{name}{suffix}"
            if path.is_file():
                return path
        raise TapbookConfigError(
            f"Playbook not found: {name}\n\n"
            f"Looked in: {self.playbooks_dir}\n"
            "To fix: pass a path to a playbook file"
        )


def resolve_project_dir() -> Path:
    """Find the .tapbook/ project directory, searching upward from cwd."""
    current = Path.cwd()
    candidate = current / ".tapbook"
    if candidate.is_dir():
        return candidate
    for parent in current.parents:
        candidate = parent / ".tapbook"
        if candidate.is_dir():
            return candidate
    return current / ".tapbook"


def load_config(project_dir: Path | None = None) -> TapbookConfig:
    """Load ``config.yaml`` from *project_dir* if present, else defaults rooted there."""
    project_dir = project_dir or resolve_project_dir()
    config_path = project_dir / "config.yaml"
    if config_path.is_file():
        return TapbookConfig.from_file(config_path)
    return TapbookConfig._from_dict({}, project_dir)
