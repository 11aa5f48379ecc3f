"""Locate and read ``beaconjobs.yaml``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

CONFIG_PATH_ENV = "BEACONJOBS_CONFIG"


class ConfigLoadError(ValueError):
    """The config file exists but is not a usable YAML mapping."""


def _describe(target: Path, exc: yaml.YAMLError) -> str:
    mark = getattr(exc, "problem_mark", None)
    if mark is None:
        return f"Invalid YAML at {target}"
    return f"Invalid YAML at {target}:{mark.line + 1}:{mark.column + 1}"


class YAMLConfigLoader:
    """Finds the config file and returns its top-level mapping."""

    DEFAULT_FILENAME = "beaconjobs.yaml"

    @classmethod
    def resolve_path(cls, cli_path: str | None = None) -> Path:
        """``BEACONJOBS_CONFIG`` beats ``--config``, which beats ``./beaconjobs.yaml``."""
        for candidate in (os.environ.get(CONFIG_PATH_ENV), cli_path):
            if candidate and candidate.strip():
                return Path(candidate.strip())
        return Path.cwd() / cls.DEFAULT_FILENAME

    @classmethod
    def load_dict(cls, path: str | Path | None = None) -> dict[str, Any]:
        """An absent or blank file is an empty config, not an error."""
        target = Path(path) if path is not None else cls.resolve_path()
        try:
            text = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = yaml.safe_load(text) if text.strip() else None
        except yaml.YAMLError as exc:
            raise ConfigLoadError(_describe(target, exc)) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Config root must be mapping: {target}")
        return data
