"""YAML configuration loader.

A single YAML file replaces the CODEX_EYES_* env vars when present.

Example YAML (``.codex-eyes/config.yaml``):
    wrapper:
      command: codex
      max_restarts: 5
      restart_window_seconds: 300
      resume_args: [resume, --last]
      attach_flag: -i
      nudge_message: Requested image attached
      log_level: DEBUG
"""
from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path

import yaml

from .config import WrapperConfig

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = Path(".codex-eyes") / "config.yaml"

_INT_FIELDS = {"max_restarts", "tail_factor"}
_FLOAT_FIELDS = {"restart_window_seconds"}


def discover_config_file(cwd: str | Path) -> Path | None:
    """Return the config file to use, if any.

    CODEX_EYES_CONFIG_FILE wins; otherwise ``.codex-eyes/config.yaml``
    under *cwd* is used when it exists.
    """
    explicit = os.getenv("CODEX_EYES_CONFIG_FILE")
    if explicit:
        logger.info("Using explicit config path: %s", explicit)
        return Path(explicit)
    candidate = Path(cwd) / CONFIG_RELATIVE_PATH
    if candidate.exists():
        logger.info("Auto-discovered config: %s", candidate)
        return candidate
    logger.debug("No config file found (tried %s); using env vars / defaults", candidate)
    return None


def load_yaml_config(path: str | Path) -> WrapperConfig:
    """Load a WrapperConfig from the ``wrapper`` section of a YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    section = raw.get("wrapper") or {}
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'wrapper' must be a mapping")

    known = {f.name for f in fields(WrapperConfig)}
    kwargs: dict = {}
    for key, value in section.items():
        if key not in known:
            logger.warning("Ignoring unknown wrapper option %r in %s", key, path)
            continue
        if value is None:
            continue
        if key == "resume_args":
            if isinstance(value, str):
                value = value.split()
            value = tuple(str(v) for v in value)
        elif key in _INT_FIELDS:
            value = int(value)
        elif key in _FLOAT_FIELDS:
            value = float(value)
        else:
            value = str(value)
        kwargs[key] = value

    config = WrapperConfig(**kwargs)
    logger.info(
        "Loaded YAML config %s (command=%s, max_restarts=%d, window=%gs)",
        path, config.command, config.max_restarts, config.restart_window_seconds,
    )
    return config


def load_config(cwd: str | Path = ".") -> WrapperConfig:
    """Resolve configuration: YAML file when one is found, else env vars."""
    config_file = discover_config_file(cwd)
    if config_file is not None:
        config = load_yaml_config(config_file)
    else:
        config = WrapperConfig.from_env()
    if config.cwd == ".":
        config.cwd = str(Path(cwd).resolve())
    return config
