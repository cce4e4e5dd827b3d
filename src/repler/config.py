# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Filesystem discovery, configuration loading and data root resolution.

Handles:
- Data root resolution (REPLER_DATA_HOME, ~/.local/share)
- Project anchoring via the nearest Python project manifest
- Packaged YAML defaults loading (repler/defaults/*.yaml)
- Project overrides ([tool.repler] in pyproject.toml, or .repler.yaml)
- Log file wiring
- ANSI coloring constants + UI_CLEAR semantic sentinel
"""

from __future__ import annotations

import logging
import os
import tomllib
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml

# -----------------------
# UI constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "yellow": "\033[38;5;226;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

# Semantic UI intent for clear screen operations
UI_CLEAR = "__UI_CLEAR__"

PROJECT_MANIFESTS = ("pyproject.toml", "setup.cfg", "setup.py")
PROJECT_CONFIG_FILE = ".repler.yaml"


def colorize(text: str, color: str) -> str:
    """Wrap text in an ANSI color from ANSI_COLORS."""
    code = ANSI_COLORS.get(color)
    if not code:
        return text
    return f"{code}{text}{ANSI_COLORS['reset']}"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Simple config wrapper that implements ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def system(self) -> dict[str, Any]:
        return self._config.get("system", {})

    @property
    def watch(self) -> dict[str, Any]:
        return self._config.get("watch", {})

    @property
    def transform(self) -> dict[str, Any]:
        return self._config.get("transform", {})

    @property
    def ui(self) -> dict[str, Any]:
        ui_cfg = self._config.get("ui", {})
        return ui_cfg if isinstance(ui_cfg, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("ui.theme.style", {}) -> dict style mapping
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with override merged into base, recursively."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


# -----------------------
# Data root
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory for repler.

    Resolution order:
    1. REPLER_DATA_HOME environment variable (if set)
    2. ~/.local/share (default, XDG_DATA_HOME is ignored)
    """
    repler_data_home = os.getenv("REPLER_DATA_HOME")
    if repler_data_home:
        root = Path(repler_data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def logs_dir(data_root: Path) -> Path:
    """<data_root>/repler/logs"""
    return data_root / "repler" / "logs"


def history_path(data_root: Path) -> Path:
    """<data_root>/repler/history"""
    return data_root / "repler" / "history"


# -----------------------
# Project discovery
# -----------------------


def find_project_root(cwd: Path) -> Path | None:
    """Walk up from cwd to the nearest directory holding a project manifest."""
    current = cwd.resolve()

    while True:
        for manifest in PROJECT_MANIFESTS:
            if (current / manifest).exists():
                return current

        parent = current.parent
        if parent == current:
            return None

        current = parent


def load_project_config(project_root: Path) -> dict[str, Any]:
    """Load project overrides.

    [tool.repler] in pyproject.toml wins; otherwise .repler.yaml next to
    the manifest is used. Missing both yields an empty mapping.
    """
    pyproject = project_root / "pyproject.toml"
    if pyproject.exists():
        with pyproject.open("rb") as f:
            data = tomllib.load(f)
        tool_cfg = data.get("tool", {}).get("repler")
        if isinstance(tool_cfg, dict):
            return tool_cfg

    repler_file = project_root / PROJECT_CONFIG_FILE
    if repler_file.exists():
        with repler_file.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{repler_file} must load to a mapping/dict.")
        return data

    return {}


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("repler") / "defaults"
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from repler/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config() -> YAMLConfig:
    """
    Load system.yaml from packaged defaults and return a YAMLConfig wrapper.
    """
    return YAMLConfig(load_defaults_yaml("system.yaml"))


def load_config(project_root: Path | None) -> YAMLConfig:
    """Packaged defaults with the project's overrides merged on top."""
    data = load_defaults_yaml("system.yaml")
    if project_root is not None:
        data = deep_merge(data, load_project_config(project_root))
    return YAMLConfig(data)


# -----------------------
# Logging
# -----------------------


def configure_logging(cfg: YAMLConfig, data_root: Path) -> Path:
    """Attach a file handler for the repler logger.

    The terminal belongs to the REPL, so diagnostics only go to
    <data_root>/repler/logs/repler.log.
    """
    directory = logs_dir(data_root)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / "repler.log"

    level_name = str(cfg.get_path("logging.level", "WARNING")).upper()
    level = getattr(logging, level_name, logging.WARNING)

    logger = logging.getLogger("repler")
    logger.setLevel(level)
    logger.propagate = False
    if not any(
        isinstance(h, logging.FileHandler)
        and Path(h.baseFilename) == log_file
        for h in logger.handlers
    ):
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s: %(message)s"
            )
        )
        logger.addHandler(handler)
    return log_file
