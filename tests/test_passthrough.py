from __future__ import annotations

import asyncio
import os
from types import SimpleNamespace

import pytest

from codex_eyes.wrapper.passthrough import Passthrough, local_terminal_size


class _Target:
    def __init__(self) -> None:
        self.active = SimpleNamespace(session_id="s0")
        self.writes: list[tuple[str, bytes]] = []
        self.resizes: list[tuple[str, int, int]] = []

    def write(self, session, data: bytes) -> None:
        self.writes.append((session.session_id, data))

    def resize(self, session, cols: int, rows: int) -> None:
        self.resizes.append((session.session_id, cols, rows))


@pytest.fixture
def target() -> _Target:
    return _Target()


@pytest.fixture
def passthrough(target: _Target) -> Passthrough:
    return Passthrough(
        lambda: target.active,
        target.write,
        target.resize,
        terminal_size=lambda: (150, 45),
    )


def test_input_goes_to_active_session(passthrough, target) -> None:
    assert passthrough.forward_input(b"ls\r") is True
    target.active = SimpleNamespace(session_id="s1")
    passthrough.forward_input(b"q")
    assert target.writes == [("s0", b"ls\r"), ("s1", b"q")]


def test_input_without_active_session_is_dropped(passthrough, target) -> None:
    target.active = None
    assert passthrough.forward_input(b"lost") is False
    assert target.writes == []


def test_write_errors_do_not_propagate(target) -> None:
    def _broken(session, data):
        raise OSError("EIO")

    passthrough = Passthrough(lambda: target.active, _broken, target.resize)
    assert passthrough.forward_input(b"x") is False


def test_resize_uses_local_terminal_size(passthrough, target) -> None:
    assert passthrough.forward_resize() is True
    assert target.resizes == [("s0", 150, 45)]
    target.active = None
    assert passthrough.forward_resize() is False


def test_local_terminal_size_has_fallback() -> None:
    cols, rows = local_terminal_size()
    assert cols > 0 and rows > 0


@pytest.mark.asyncio
async def test_reads_stdin_pipe_until_eof(target) -> None:
    read_fd, write_fd = os.pipe()
    passthrough = Passthrough(
        lambda: target.active, target.write, target.resize, stdin_fd=read_fd,
    )
    passthrough.start()
    try:
        assert passthrough.raw_mode is False
        os.write(write_fd, b"hello")
        for _ in range(50):
            if target.writes:
                break
            await asyncio.sleep(0.01)
        assert target.writes == [("s0", b"hello")]

        os.close(write_fd)
        for _ in range(50):
            if not passthrough._reading:
                break
            await asyncio.sleep(0.01)
        assert passthrough._reading is False
    finally:
        passthrough.stop()
        os.close(read_fd)
