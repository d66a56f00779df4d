"""Orchestrator state and result types."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .pty_session import TerminalSession


class OrchestratorState(str, Enum):
    """Restart lifecycle.

    RUNNING -> RESTART_TRIGGERED -> RESTARTING -> RUNNING; any step may
    divert to FATAL.
    """
    RUNNING = "running"
    RESTART_TRIGGERED = "restart_triggered"
    RESTARTING = "restarting"
    FATAL = "fatal"


@dataclass
class RestartOutcome:
    """Result of one restart cycle."""
    ok: bool
    session: TerminalSession | None = None
    image_path: str | None = None
    error: Exception | None = None
