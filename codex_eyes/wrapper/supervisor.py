"""Host process: one event loop, one supervised session at a time.

Child output, local input, resize and child-exit notifications are all
callbacks on the same asyncio loop, so nothing mutates the active
session concurrently.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from typing import BinaryIO, TextIO

from rich.console import Console
from rich.text import Text

from codex_eyes.shared.request_queue import ensure_request_log

from .config import WrapperConfig
from .errors import LaunchError
from .orchestrator import RestartOrchestrator
from .passthrough import Passthrough, local_terminal_size
from .pty_session import TerminalSession, TerminalSessionManager

logger = logging.getLogger(__name__)

EXIT_FATAL = 1
EXIT_SIGINT = 130
EXIT_SIGTERM = 143

_SIGNAL_EXIT_CODES = {
    signal.SIGINT: EXIT_SIGINT,
    signal.SIGTERM: EXIT_SIGTERM,
}

LOG_PREFIX = "[codex-eyes]"


class Supervisor:
    """Wires the session manager, orchestrator and passthrough together."""

    def __init__(
        self,
        config: WrapperConfig,
        *,
        stdin_fd: int | None = None,
        stdout: BinaryIO | None = None,
        stderr: TextIO | None = None,
        terminal_size: Callable[[], tuple[int, int]] = local_terminal_size,
    ) -> None:
        self._config = config
        self._stdin_fd = stdin_fd
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._console = Console(
            file=stderr if stderr is not None else sys.stderr,
            highlight=False,
            soft_wrap=True,
        )
        self._terminal_size = terminal_size
        self._done: asyncio.Future[int] | None = None
        self._signals_installed: list[signal.Signals] = []

        self.sessions = TerminalSessionManager(
            config.command,
            on_output=self._on_output,
            on_exit=self._on_exit,
            cwd=str(config.root),
            term_name=config.term_name,
        )
        self.orchestrator = RestartOrchestrator(
            config,
            self.sessions,
            sink=self._stdout,
            terminal_size=terminal_size,
            on_fatal=self._fatal,
            on_child_exit=self._finish,
        )
        self.passthrough = Passthrough(
            lambda: self.orchestrator.active_session,
            self.sessions.write,
            self.sessions.resize,
            stdin_fd=stdin_fd,
            terminal_size=terminal_size,
        )

    async def run(self, initial_args: list[str]) -> int:
        """Supervise until the child exits, a signal arrives or a restart fails.

        Returns the host exit code.
        """
        loop = asyncio.get_running_loop()
        self._done = loop.create_future()
        ensure_request_log(self._config.request_log_path)
        self._install_signal_handlers(loop)
        self.passthrough.start()
        try:
            try:
                await self.orchestrator.start(initial_args)
            except LaunchError as exc:
                self._fatal(str(exc))
            return await self._done
        finally:
            self._remove_signal_handlers(loop)
            self.passthrough.stop()

    def _on_output(self, session: TerminalSession, chunk: bytes) -> None:
        self.orchestrator.handle_output(session, chunk)

    def _on_exit(self, session: TerminalSession, code: int) -> None:
        self.orchestrator.handle_exit(session, code)

    def _finish(self, code: int) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(code)

    def _kill_active(self) -> None:
        session = self.orchestrator.active_session
        if session is not None:
            self.sessions.kill(session)

    def _fatal(self, message: str) -> None:
        logger.error("Fatal: %s", message)
        self._kill_active()
        self._console.print(Text.assemble(("\r" + LOG_PREFIX, "bold red"), " ", message))
        self.passthrough.restore_terminal()
        self._finish(EXIT_FATAL)

    def _on_signal(self, signum: signal.Signals) -> None:
        code = _SIGNAL_EXIT_CODES[signum]
        logger.info("Received %s; exiting with %d", signum.name, code)
        self._kill_active()
        self.passthrough.restore_terminal()
        self._finish(code)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in _SIGNAL_EXIT_CODES:
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                logger.debug("Cannot install handler for %s", signum.name)
                continue
            self._signals_installed.append(signum)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in self._signals_installed:
            loop.remove_signal_handler(signum)
        self._signals_installed.clear()
