"""Restart orchestration: marker -> validated image -> resumed session.

RestartOrchestrator is the single owner of the mutable supervisor
state (active session, output tail, restart window). Everything that
replaces the active session goes through it.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import BinaryIO, Protocol

from codex_eyes.shared.paths import validate_image_path
from codex_eyes.shared.request_queue import last_valid_request

from .config import WrapperConfig
from .errors import CodexEyesError
from .models import OrchestratorState, RestartOutcome
from .output_monitor import OutputMonitor
from .pty_session import TerminalSession
from .rate_limiter import RestartRateLimiter

logger = logging.getLogger(__name__)


class SessionBackend(Protocol):
    """What the orchestrator needs from a session manager."""

    async def spawn(
        self, args: list[str], *, cols: int = 80, rows: int = 24,
    ) -> TerminalSession: ...

    def write(self, session: TerminalSession, data: bytes) -> None: ...

    def resize(self, session: TerminalSession, cols: int, rows: int) -> None: ...

    def kill(self, session: TerminalSession) -> None: ...


class RestartOrchestrator:
    """State machine driving kill/respawn/nudge on marker detection.

    on_fatal(message) is called once when a restart fails; the host is
    expected to tear down and exit. on_child_exit(code) is called when
    the active session exits on its own.
    """

    def __init__(
        self,
        config: WrapperConfig,
        sessions: SessionBackend,
        *,
        sink: BinaryIO,
        terminal_size: Callable[[], tuple[int, int]],
        on_fatal: Callable[[str], None],
        on_child_exit: Callable[[int], None],
        limiter: RestartRateLimiter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._terminal_size = terminal_size
        self._on_fatal = on_fatal
        self._on_child_exit = on_child_exit
        self._clock = clock
        self._limiter = limiter or RestartRateLimiter(
            config.max_restarts, config.restart_window_seconds,
        )
        self._monitor = OutputMonitor(
            config.marker,
            sink,
            on_marker=self.trigger,
            is_busy=lambda: self._restart_in_flight,
            tail_factor=config.tail_factor,
        )
        self._root = config.root
        self._request_log = config.request_log_path
        self._initial_args: list[str] = []
        self._active: TerminalSession | None = None
        self._state = OrchestratorState.RUNNING
        self._restart_in_flight = False
        self._restart_task: asyncio.Task | None = None
        self.restart_count = 0

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def active_session(self) -> TerminalSession | None:
        return self._active

    @property
    def restart_in_flight(self) -> bool:
        return self._restart_in_flight

    @property
    def restart_task(self) -> asyncio.Task | None:
        return self._restart_task

    @property
    def monitor(self) -> OutputMonitor:
        return self._monitor

    @property
    def limiter(self) -> RestartRateLimiter:
        return self._limiter

    async def start(self, initial_args: list[str]) -> TerminalSession:
        """Launch the first session with the host's arguments unchanged."""
        self._initial_args = list(initial_args)
        cols, rows = self._terminal_size()
        self._active = await self._sessions.spawn(
            self._initial_args, cols=cols, rows=rows,
        )
        return self._active

    def handle_output(self, session: TerminalSession, chunk: bytes) -> None:
        if session is not self._active:
            return
        self._monitor.feed(chunk)

    def handle_exit(self, session: TerminalSession, code: int) -> None:
        if session is not self._active:
            logger.info(
                "Ignoring exit of stale session %s (code=%s)",
                session.session_id, code,
            )
            return
        if self._restart_in_flight or self._state == OrchestratorState.FATAL:
            return
        logger.info("Active session %s exited with code %s", session.session_id, code)
        self._on_child_exit(code)

    def trigger(self) -> None:
        """Marker seen: engage the guard and schedule a restart."""
        if self._restart_in_flight or self._state == OrchestratorState.FATAL:
            return
        self._restart_in_flight = True
        self._state = OrchestratorState.RESTART_TRIGGERED
        self._monitor.clear()
        logger.info("Restart marker detected; restarting with requested image")
        self._restart_task = asyncio.get_running_loop().create_task(
            self._run_restart(), name="codex-eyes-restart",
        )

    async def _run_restart(self) -> None:
        outcome = await self.restart()
        if not outcome.ok:
            self._on_fatal(str(outcome.error))

    def _restart_args(self, image_path: str) -> list[str]:
        return [
            *self._initial_args,
            *self._config.resume_args,
            self._config.attach_flag,
            image_path,
        ]

    async def restart(self) -> RestartOutcome:
        """Run one restart cycle; failures come back in the outcome."""
        self._restart_in_flight = True
        self._state = OrchestratorState.RESTARTING
        try:
            self._limiter.admit(self._clock())
            request = last_valid_request(self._request_log)
            image_path = validate_image_path(request.path, self._root)

            cols, rows = self._terminal_size()
            new_session = await self._sessions.spawn(
                self._restart_args(image_path), cols=cols, rows=rows,
            )
            old_session, self._active = self._active, new_session
            self._monitor.clear()
            if old_session is not None:
                self._sessions.kill(old_session)

            # Resume restores the conversation but leaves the agent idle.
            nudge = f"{self._config.nudge_message}\r".encode("utf-8")
            self._sessions.write(new_session, nudge)
        except (CodexEyesError, OSError) as exc:
            self._state = OrchestratorState.FATAL
            logger.error("Restart failed: %s: %s", type(exc).__name__, exc)
            return RestartOutcome(ok=False, error=exc)
        except Exception as exc:
            self._state = OrchestratorState.FATAL
            logger.exception("Unexpected error during restart")
            return RestartOutcome(ok=False, error=exc)
        finally:
            self._restart_in_flight = False

        self._state = OrchestratorState.RUNNING
        self.restart_count += 1
        logger.info(
            "Restart %d complete: session %s with image %s",
            self.restart_count, new_session.session_id, image_path,
        )
        return RestartOutcome(ok=True, session=new_session, image_path=image_path)
