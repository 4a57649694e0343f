"""Configuration loader for the Carthage step."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from step.errors import ConfigError

DEFAULT_CACHE_DIR = "~/.cache/carthage-step"
VERBOSE_CHOICES = ("yes", "no")


class Secret(str):
    """String that never shows its value in logs or reprs."""

    def __repr__(self) -> str:
        return "'*****'" if self else "''"

    def redacted(self) -> str:
        return "*****" if self else ""


@dataclass(frozen=True)
class StepConfig:
    carthage_command: str
    github_access_token: Secret = Secret("")
    carthage_options: str = ""
    source_dir: str = ""
    xcconfig: str = ""
    xcconfig_from_env: str = ""
    verbose_log: bool = False
    cache_dir: str = DEFAULT_CACHE_DIR
    state_db: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepConfig":
        command = str(data.get("carthage_command") or "").strip()
        if not command:
            raise ConfigError("carthage_command is required")

        verbose = data.get("verbose_log") or "no"
        if isinstance(verbose, bool):  # YAML reads a bare yes/no as a bool
            verbose = "yes" if verbose else "no"
        verbose = str(verbose).strip().lower()
        if verbose not in VERBOSE_CHOICES:
            raise ConfigError(f"verbose_log must be one of {', '.join(VERBOSE_CHOICES)}, got {verbose!r}")

        cache_dir = str(Path(str(data.get("cache_dir") or DEFAULT_CACHE_DIR)).expanduser())
        state_db = str(data.get("state_db") or "") or str(Path(cache_dir) / "state.db")

        return cls(
            carthage_command=command,
            github_access_token=Secret(data.get("github_access_token") or ""),
            carthage_options=str(data.get("carthage_options") or ""),
            source_dir=str(data.get("source_dir") or os.getcwd()),
            xcconfig=str(data.get("xcconfig") or ""),
            xcconfig_from_env=str(data.get("xcconfig_from_env") or ""),
            verbose_log=verbose == "yes",
            cache_dir=cache_dir,
            state_db=state_db,
        )

    def describe(self) -> List[str]:
        """One '- key: value' line per field, secrets redacted."""
        lines = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Secret):
                value = value.redacted()
            lines.append(f"- {f.name}: {value}")
        return lines


ENV_MAP = {
    "github_access_token": "github_access_token",
    "carthage_command": "carthage_command",
    "carthage_options": "carthage_options",
    "source_dir": "BITRISE_SOURCE_DIR",
    "xcconfig": "xcconfig",
    "xcconfig_from_env": "XCODE_XCCONFIG_FILE",
    "verbose_log": "verbose_log",
    "cache_dir": "CARTHAGE_CACHE_DIR",
    "state_db": "CARTHAGE_STATE_DB",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return data


def merge_env_overrides(config_data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        value = environ.get(env_name)
        if value in (None, ""):
            continue
        merged[key] = value

    return merged


def load_config(config_path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> StepConfig:
    data: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            data = load_yaml(path)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {path}: {exc}") from exc

    data = merge_env_overrides(data, environ)
    return StepConfig.from_dict(data)
