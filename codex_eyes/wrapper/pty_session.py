"""PTY-backed child sessions.

Each TerminalSession is one child process whose stdio is the slave end
of a fresh pseudo-terminal. Output and exit are delivered as callbacks
on the running asyncio loop, tagged with the originating session so the
caller can tell a stale child from the active one.

POSIX only.
"""
from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import pty
import shutil
import signal
import struct
import subprocess
import termios
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .errors import LaunchError

logger = logging.getLogger(__name__)

OutputCallback = Callable[["TerminalSession", bytes], None]
ExitCallback = Callable[["TerminalSession", int], None]

_READ_SIZE = 65536


@dataclass(eq=False)
class TerminalSession:
    """One live child bound to a pseudo-terminal."""

    session_id: str
    proc: asyncio.subprocess.Process
    master_fd: int
    cols: int
    rows: int
    alive: bool = True
    exit_code: int | None = None
    _reader_open: bool = field(default=True, repr=False)
    _exit_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.proc.pid


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _claim_controlling_tty() -> None:
    """Runs in the child after setsid(): make stdin its controlling TTY."""
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def _normalize_returncode(returncode: int) -> int:
    # asyncio reports death by signal N as -N; shells report 128+N.
    return 128 - returncode if returncode < 0 else returncode


class TerminalSessionManager:
    """Spawns, drives and tears down PTY sessions."""

    def __init__(
        self,
        command: str,
        *,
        on_output: OutputCallback,
        on_exit: ExitCallback,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        term_name: str = "xterm-color",
    ) -> None:
        self._command = command
        self._on_output = on_output
        self._on_exit = on_exit
        self._cwd = cwd
        self._env = env
        self._term_name = term_name

    @property
    def command(self) -> str:
        return self._command

    def _build_env(self, env: Mapping[str, str] | None) -> dict[str, str]:
        merged = dict(os.environ)
        base = env if env is not None else self._env
        if base:
            merged.update({str(k): str(v) for k, v in base.items()})
        merged["TERM"] = self._term_name
        return merged

    async def spawn(
        self,
        args: list[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        cols: int = 80,
        rows: int = 24,
    ) -> TerminalSession:
        """Start the command with ``args`` on a new PTY.

        Raises LaunchError if the executable is not on PATH or cannot be
        executed.
        """
        executable = shutil.which(self._command)
        if executable is None:
            raise LaunchError(self._command, "not found on PATH")

        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(slave_fd, cols, rows)
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd or self._cwd,
                env=self._build_env(env),
                start_new_session=True,
                preexec_fn=_claim_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            os.close(master_fd)
            raise LaunchError(self._command, f"{type(exc).__name__}: {exc}") from exc
        finally:
            os.close(slave_fd)

        session = TerminalSession(
            session_id=uuid.uuid4().hex[:8],
            proc=proc,
            master_fd=master_fd,
            cols=cols,
            rows=rows,
        )
        loop = asyncio.get_running_loop()
        loop.add_reader(master_fd, self._on_readable, session)
        session._exit_task = asyncio.create_task(
            self._watch_exit(session), name=f"pty-exit-{session.session_id}",
        )
        logger.info(
            "Spawned session %s pid=%s argv=%s size=%dx%d",
            session.session_id, proc.pid, [self._command, *args], cols, rows,
        )
        return session

    def write(self, session: TerminalSession, data: bytes) -> None:
        """Write ``data`` to the session's input. No-op once it has exited."""
        if not session.alive:
            return
        view = memoryview(data)
        while view:
            written = os.write(session.master_fd, view)
            view = view[written:]

    def resize(self, session: TerminalSession, cols: int, rows: int) -> None:
        """Set the PTY window size; the kernel signals the child."""
        if not session.alive:
            return
        try:
            _set_winsize(session.master_fd, cols, rows)
        except OSError as exc:
            logger.debug("Resize of session %s failed: %s", session.session_id, exc)
            return
        session.cols, session.rows = cols, rows

    def kill(self, session: TerminalSession) -> None:
        """Best-effort SIGHUP to the session's process group. Never waits."""
        if session.proc.returncode is not None:
            return
        try:
            os.killpg(session.proc.pid, signal.SIGHUP)
        except ProcessLookupError:
            return
        except OSError as exc:
            logger.debug("Kill of session %s failed: %s", session.session_id, exc)
            try:
                session.proc.kill()
            except ProcessLookupError:
                pass
        logger.info("Sent SIGHUP to session %s pid=%s", session.session_id, session.pid)

    def _on_readable(self, session: TerminalSession) -> None:
        try:
            data = os.read(session.master_fd, _READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave descriptor is closed.
            data = b""
        if not data:
            self._close_reader(session)
            return
        self._on_output(session, data)

    def _close_reader(self, session: TerminalSession) -> None:
        if not session._reader_open:
            return
        session._reader_open = False
        try:
            asyncio.get_running_loop().remove_reader(session.master_fd)
        except RuntimeError:
            pass

    def _drain(self, session: TerminalSession) -> None:
        """Deliver output the child wrote before exiting."""
        try:
            os.set_blocking(session.master_fd, False)
        except OSError:
            return
        while True:
            try:
                data = os.read(session.master_fd, _READ_SIZE)
            except OSError:
                return
            if not data:
                return
            self._on_output(session, data)

    async def _watch_exit(self, session: TerminalSession) -> None:
        returncode = await session.proc.wait()
        code = _normalize_returncode(returncode)
        if session._reader_open:
            self._drain(session)
        self._close_reader(session)
        session.alive = False
        session.exit_code = code
        try:
            os.close(session.master_fd)
        except OSError:
            pass
        logger.info("Session %s exited with code %s", session.session_id, code)
        self._on_exit(session, code)
