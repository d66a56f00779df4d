"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CODEX_EYES_* env vars,
or with a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "<<WAITING_FOR_IMAGE>>"
DEFAULT_NUDGE = "Requested image attached"


@dataclass
class WrapperConfig:
    """Supervisor configuration."""

    # Supervised executable, resolved through PATH at each spawn.
    command: str = "codex"
    cwd: str = "."

    # In-band restart request and the message that resumes work after it.
    marker: str = DEFAULT_MARKER
    nudge_message: str = DEFAULT_NUDGE

    # Restart budget
    max_restarts: int = 5
    restart_window_seconds: float = 300.0

    # Restart argv is: launch args + resume_args + [attach_flag, path].
    # The default resumes the most recent conversation; set an explicit
    # target (e.g. ["resume", "<session-id>"]) when several exist.
    resume_args: tuple[str, ...] = ("--continue",)
    attach_flag: str = "-i"

    # Output tail kept for marker detection, as a multiple of len(marker).
    tail_factor: int = 8
    term_name: str = "xterm-color"

    # None means <cwd>/.codex-eyes/requests.jsonl
    requests_file: str | None = None

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def root(self) -> Path:
        return Path(self.cwd).resolve()

    @property
    def request_log_path(self) -> Path:
        from codex_eyes.shared.request_queue import default_request_log

        if self.requests_file:
            path = Path(self.requests_file)
            return path if path.is_absolute() else self.root / path
        return default_request_log(self.root)

    @classmethod
    def from_env(cls) -> WrapperConfig:
        """Load configuration from CODEX_EYES_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("CODEX_EYES_")
        }
        if overrides:
            logger.info(
                "WrapperConfig.from_env: CODEX_EYES_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("WrapperConfig.from_env: no CODEX_EYES_* env vars set, using defaults")

        resume_env = os.getenv("CODEX_EYES_RESUME_ARGS")
        return cls(
            command=os.getenv("CODEX_EYES_COMMAND", cls.command),
            cwd=os.getenv("CODEX_EYES_CWD", cls.cwd),
            marker=os.getenv("CODEX_EYES_MARKER", cls.marker),
            nudge_message=os.getenv("CODEX_EYES_NUDGE", cls.nudge_message),
            max_restarts=int(os.getenv(
                "CODEX_EYES_MAX_RESTARTS", str(cls.max_restarts)
            )),
            restart_window_seconds=float(os.getenv(
                "CODEX_EYES_RESTART_WINDOW_SECONDS",
                str(cls.restart_window_seconds),
            )),
            resume_args=(
                tuple(shlex.split(resume_env))
                if resume_env is not None
                else cls.resume_args
            ),
            attach_flag=os.getenv("CODEX_EYES_ATTACH_FLAG", cls.attach_flag),
            tail_factor=int(os.getenv(
                "CODEX_EYES_TAIL_FACTOR", str(cls.tail_factor)
            )),
            term_name=os.getenv("CODEX_EYES_TERM", cls.term_name),
            requests_file=os.getenv("CODEX_EYES_REQUESTS_FILE"),
            log_level=os.getenv("CODEX_EYES_LOG_LEVEL", cls.log_level),
            log_file=os.getenv("CODEX_EYES_LOG_FILE"),
        )
