"""codex-eyes: main application entry point.

Every command-line argument is passed to the supervised Codex CLI
unchanged; the wrapper itself is configured via CODEX_EYES_* env vars
or ``.codex-eyes/config.yaml``.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from codex_eyes.wrapper.config import WrapperConfig


def _configure_logging(config: WrapperConfig) -> Path | None:
    """Log to a rotating file only: stdout/stderr belong to the child."""
    log_file = (
        Path(config.log_file)
        if config.log_file
        else Path.home() / ".codex-eyes" / "logs" / "codex-eyes.log"
    )
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    root.handlers.clear()
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
    except OSError:
        root.addHandler(logging.NullHandler())
        return None
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
        )
    )
    root.addHandler(file_handler)
    return log_file


def main() -> None:
    from codex_eyes.wrapper.supervisor import Supervisor
    from codex_eyes.wrapper.yaml_config import load_config

    config = load_config(Path.cwd())
    log_file = _configure_logging(config)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting codex-eyes cwd=%s command=%s argv=%s log=%s",
        config.root,
        config.command,
        sys.argv[1:],
        log_file or "<none>",
    )

    stdin_fd = sys.stdin.fileno() if sys.stdin is not None else None
    supervisor = Supervisor(config, stdin_fd=stdin_fd)
    code = asyncio.run(supervisor.run(sys.argv[1:]))
    logger.info("codex-eyes exiting with code %s", code)
    sys.exit(code)


if __name__ == "__main__":
    main()
