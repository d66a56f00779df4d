"""Exception hierarchy for the supervisor.

One class per failure mode. The orchestrator treats every subclass of
CodexEyesError raised during a restart as fatal.
"""
from __future__ import annotations

from enum import Enum


class InvalidPathReason(str, Enum):
    """Why a requested image path was rejected."""
    NOT_A_STRING = "not_a_string"
    ABSOLUTE = "absolute"
    TRAVERSAL = "traversal"
    BAD_EXTENSION = "bad_extension"
    MISSING_FILE = "missing_file"


class CodexEyesError(Exception):
    """Base exception for all supervisor errors."""


class LaunchError(CodexEyesError):
    """The supervised executable could not be located or started."""
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(
            f"Failed to start `{command}`: {reason}. "
            f"Install Codex CLI or adjust PATH before running wrapper."
        )


class InvalidPathError(CodexEyesError):
    """A requested image path failed validation."""
    def __init__(self, reason: InvalidPathReason, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(detail)


class NoRequestError(CodexEyesError):
    """The request log holds no usable image request."""
    def __init__(self, log_path: str):
        self.log_path = log_path
        super().__init__(f"No valid image request found in {log_path}.")


class TooManyRestarts(CodexEyesError):
    """Restart budget for the trailing window is exhausted."""
    def __init__(self, max_restarts: int, window_seconds: float):
        self.max_restarts = max_restarts
        self.window_seconds = window_seconds
        super().__init__(
            f"Too many restarts ({max_restarts} in {window_seconds:g}s)."
        )
