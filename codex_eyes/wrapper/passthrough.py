"""Forward local keystrokes and window-size changes to the active session."""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import termios
import tty
from collections.abc import Callable

from .pty_session import TerminalSession

logger = logging.getLogger(__name__)

_READ_SIZE = 4096


def local_terminal_size() -> tuple[int, int]:
    """(cols, rows) of the controlling terminal, 80x24 when unknown."""
    size = shutil.get_terminal_size((80, 24))
    return size.columns or 80, size.lines or 24


class Passthrough:
    """Raw-mode stdin relay plus SIGWINCH relay.

    Input that arrives while there is no active session is dropped; the
    child cannot consume it before it exists.
    """

    def __init__(
        self,
        get_active: Callable[[], TerminalSession | None],
        write: Callable[[TerminalSession, bytes], None],
        resize: Callable[[TerminalSession, int, int], None],
        *,
        stdin_fd: int | None = None,
        terminal_size: Callable[[], tuple[int, int]] = local_terminal_size,
    ) -> None:
        self._get_active = get_active
        self._write = write
        self._resize = resize
        self._stdin_fd = stdin_fd
        self._terminal_size = terminal_size
        self._saved_attrs: list | None = None
        self._reading = False
        self._winch_installed = False

    @property
    def raw_mode(self) -> bool:
        return self._saved_attrs is not None

    def forward_input(self, data: bytes) -> bool:
        session = self._get_active()
        if session is None:
            logger.debug("Dropped %d input bytes: no active session", len(data))
            return False
        try:
            self._write(session, data)
        except OSError as exc:
            logger.debug("Input write to session %s failed: %s", session.session_id, exc)
            return False
        return True

    def forward_resize(self) -> bool:
        session = self._get_active()
        if session is None:
            return False
        cols, rows = self._terminal_size()
        self._resize(session, cols, rows)
        return True

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self._stdin_fd is not None:
            if os.isatty(self._stdin_fd):
                self._saved_attrs = termios.tcgetattr(self._stdin_fd)
                tty.setraw(self._stdin_fd)
            try:
                loop.add_reader(self._stdin_fd, self._on_stdin)
                self._reading = True
            except (OSError, ValueError) as exc:
                # Regular files cannot be polled.
                logger.debug("stdin not pollable; input passthrough disabled: %s", exc)
        try:
            loop.add_signal_handler(signal.SIGWINCH, self.forward_resize)
            self._winch_installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGWINCH handler unavailable; resize passthrough disabled")

    def _on_stdin(self) -> None:
        try:
            data = os.read(self._stdin_fd, _READ_SIZE)
        except OSError:
            data = b""
        if not data:
            self._stop_reading()
            return
        self.forward_input(data)

    def _stop_reading(self) -> None:
        if not self._reading:
            return
        self._reading = False
        try:
            asyncio.get_running_loop().remove_reader(self._stdin_fd)
        except RuntimeError:
            pass

    def restore_terminal(self) -> None:
        """Put stdin back into the mode it had before start()."""
        if self._saved_attrs is None:
            return
        try:
            termios.tcsetattr(self._stdin_fd, termios.TCSADRAIN, self._saved_attrs)
        except termios.error as exc:
            logger.warning("Failed to restore terminal mode: %s", exc)
        self._saved_attrs = None

    def stop(self) -> None:
        self._stop_reading()
        if self._winch_installed:
            try:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGWINCH)
            except RuntimeError:
                pass
            self._winch_installed = False
        self.restore_terminal()
