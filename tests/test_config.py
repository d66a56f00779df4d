from __future__ import annotations

from pathlib import Path

import pytest

from codex_eyes.wrapper.config import WrapperConfig
from codex_eyes.wrapper.yaml_config import (
    discover_config_file,
    load_config,
    load_yaml_config,
)


def test_defaults() -> None:
    config = WrapperConfig()
    assert config.command == "codex"
    assert config.marker == "<<WAITING_FOR_IMAGE>>"
    assert config.nudge_message == "Requested image attached"
    assert config.max_restarts == 5
    assert config.restart_window_seconds == 300.0
    assert config.resume_args == ("--continue",)
    assert config.attach_flag == "-i"


def test_request_log_path_defaults_under_root(tmp_path: Path) -> None:
    config = WrapperConfig(cwd=str(tmp_path))
    assert config.request_log_path == tmp_path.resolve() / ".codex-eyes" / "requests.jsonl"


def test_relative_requests_file_is_resolved_against_root(tmp_path: Path) -> None:
    config = WrapperConfig(cwd=str(tmp_path), requests_file="queue/r.jsonl")
    assert config.request_log_path == tmp_path.resolve() / "queue" / "r.jsonl"


def test_from_env(monkeypatch) -> None:
    monkeypatch.setenv("CODEX_EYES_COMMAND", "codex-dev")
    monkeypatch.setenv("CODEX_EYES_MAX_RESTARTS", "2")
    monkeypatch.setenv("CODEX_EYES_RESTART_WINDOW_SECONDS", "30.5")
    monkeypatch.setenv("CODEX_EYES_RESUME_ARGS", "resume --last")
    config = WrapperConfig.from_env()
    assert config.command == "codex-dev"
    assert config.max_restarts == 2
    assert config.restart_window_seconds == 30.5
    assert config.resume_args == ("resume", "--last")


def test_load_yaml_config(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "wrapper:\n"
        "  command: my-codex\n"
        "  max_restarts: '3'\n"
        "  resume_args: [resume, abc123]\n"
        "  nudge_message: Go on\n"
        "  bogus: 1\n",
        encoding="utf-8",
    )
    config = load_yaml_config(path)
    assert config.command == "my-codex"
    assert config.max_restarts == 3
    assert config.resume_args == ("resume", "abc123")
    assert config.nudge_message == "Go on"


def test_load_yaml_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml_config(path)


def test_discovery_prefers_env_then_project_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("CODEX_EYES_CONFIG_FILE", raising=False)
    assert discover_config_file(tmp_path) is None

    project = tmp_path / ".codex-eyes" / "config.yaml"
    project.parent.mkdir()
    project.write_text("wrapper:\n  command: from-file\n", encoding="utf-8")
    assert discover_config_file(tmp_path) == project

    explicit = tmp_path / "other.yaml"
    monkeypatch.setenv("CODEX_EYES_CONFIG_FILE", str(explicit))
    assert discover_config_file(tmp_path) == explicit


def test_load_config_binds_cwd(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("CODEX_EYES_CONFIG_FILE", raising=False)
    monkeypatch.delenv("CODEX_EYES_CWD", raising=False)
    config = load_config(tmp_path)
    assert Path(config.cwd) == tmp_path.resolve()
