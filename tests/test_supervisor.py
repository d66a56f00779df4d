from __future__ import annotations

import asyncio
import io
import signal
import sys
from pathlib import Path

import pytest

from codex_eyes.shared.request_queue import append_request, default_request_log
from codex_eyes.wrapper.config import WrapperConfig
from codex_eyes.wrapper.models import OrchestratorState
from codex_eyes.wrapper.supervisor import (
    EXIT_FATAL,
    EXIT_SIGINT,
    EXIT_SIGTERM,
    Supervisor,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX PTY only")

MARKER = "<<WAITING_FOR_IMAGE>>"


def _supervisor(repo: Path, **overrides) -> tuple[Supervisor, io.BytesIO, io.StringIO]:
    stdout = io.BytesIO()
    stderr = io.StringIO()
    config = WrapperConfig(**{"command": "sh", "cwd": str(repo), **overrides})
    supervisor = Supervisor(
        config, stdout=stdout, stderr=stderr, terminal_size=lambda: (80, 24),
    )
    return supervisor, stdout, stderr


async def _wait_for_session(supervisor: Supervisor) -> None:
    for _ in range(200):
        if supervisor.orchestrator.active_session is not None:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("session never started")


@pytest.mark.asyncio
async def test_child_exit_code_is_propagated(tmp_path: Path) -> None:
    supervisor, stdout, _ = _supervisor(tmp_path)
    code = await asyncio.wait_for(
        supervisor.run(["-c", "printf 'hi there'; exit 7"]), timeout=10,
    )
    assert code == 7
    assert b"hi there" in stdout.getvalue()


@pytest.mark.asyncio
async def test_request_log_is_created_on_startup(tmp_path: Path) -> None:
    supervisor, _, _ = _supervisor(tmp_path)
    await asyncio.wait_for(supervisor.run(["-c", "exit 0"]), timeout=10)
    assert default_request_log(tmp_path).exists()


@pytest.mark.asyncio
async def test_launch_failure_exits_with_fatal_code(tmp_path: Path) -> None:
    supervisor, _, stderr = _supervisor(tmp_path, command="codex-eyes-no-such-binary")
    code = await asyncio.wait_for(supervisor.run([]), timeout=10)
    assert code == EXIT_FATAL
    assert "[codex-eyes]" in stderr.getvalue()
    assert "codex-eyes-no-such-binary" in stderr.getvalue()


@pytest.mark.asyncio
async def test_restart_loop_stops_at_budget(tmp_path: Path) -> None:
    (tmp_path / "shot.png").write_bytes(b"\x89PNG")
    append_request(default_request_log(tmp_path), "./shot.png", now_ms=1)
    supervisor, stdout, stderr = _supervisor(tmp_path, max_restarts=1)

    # Every incarnation (the restarted one gets extra args) asks again.
    script = f"printf '%s' '{MARKER}'; sleep 10"
    code = await asyncio.wait_for(supervisor.run(["-c", script]), timeout=20)

    assert code == EXIT_FATAL
    assert supervisor.orchestrator.restart_count == 1
    assert supervisor.orchestrator.state == OrchestratorState.FATAL
    assert "Too many restarts" in stderr.getvalue()
    assert stdout.getvalue().count(MARKER.encode()) >= 2


@pytest.mark.asyncio
async def test_missing_request_is_fatal(tmp_path: Path) -> None:
    supervisor, _, stderr = _supervisor(tmp_path)
    code = await asyncio.wait_for(
        supervisor.run(["-c", f"printf '%s' '{MARKER}'; sleep 10"]), timeout=20,
    )
    assert code == EXIT_FATAL
    assert "No valid image request" in stderr.getvalue()


@pytest.mark.asyncio
@pytest.mark.parametrize("signum, expected", [
    (signal.SIGINT, EXIT_SIGINT),
    (signal.SIGTERM, EXIT_SIGTERM),
])
async def test_signal_kills_child_and_exits_with_fixed_code(
    tmp_path: Path, signum, expected,
) -> None:
    supervisor, _, _ = _supervisor(tmp_path)
    run = asyncio.create_task(supervisor.run(["-c", "sleep 30"]))
    await _wait_for_session(supervisor)
    session = supervisor.orchestrator.active_session

    supervisor._on_signal(signum)

    assert await asyncio.wait_for(run, timeout=10) == expected
    await asyncio.wait_for(session.proc.wait(), timeout=10)
