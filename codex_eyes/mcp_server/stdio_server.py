"""Stdio MCP server that queues image requests for codex-eyes.

Exposes one tool, ``request_image``. It only validates the path and
appends a line to ``.codex-eyes/requests.jsonl``; the wrapper performs
the restart once the agent prints the marker.

Usage:
    # Register in ~/.codex/config.toml, or run manually:
    python -m codex_eyes.mcp_server.stdio_server
    python -m codex_eyes.mcp_server.stdio_server --cwd /path/to/repo
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from codex_eyes.shared.paths import validate_image_path
from codex_eyes.shared.request_queue import append_request, default_request_log
from codex_eyes.wrapper.config import DEFAULT_MARKER
from codex_eyes.wrapper.errors import InvalidPathError, InvalidPathReason

logger = logging.getLogger(__name__)

SERVER_NAME = "image-request-mcp"

ACK_MESSAGE = (
    f"Queued. Now print {DEFAULT_MARKER} exactly and wait for wrapper "
    f"restart with image attachment."
)

# Tool-facing wording for each rejection reason.
_REASON_MESSAGES = {
    InvalidPathReason.NOT_A_STRING: "path must be a non-empty string",
    InvalidPathReason.ABSOLUTE: "path must be relative to repository root",
    InvalidPathReason.TRAVERSAL: "path traversal is not allowed",
    InvalidPathReason.BAD_EXTENSION: (
        "unsupported extension; allowed: .png, .jpg, .jpeg, .webp"
    ),
}

# Parsed CLI args, set in main() before server starts
_parsed_args: argparse.Namespace | None = None


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args for the MCP server process."""
    parser = argparse.ArgumentParser(
        prog="codex-eyes-mcp",
        description="Image request MCP server for codex-eyes",
    )
    parser.add_argument(
        "--cwd",
        default=None,
        help="Repository root (default: current directory)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def _repo_root() -> Path:
    if _parsed_args is not None and _parsed_args.cwd:
        return Path(_parsed_args.cwd).resolve()
    return Path.cwd().resolve()


def log_event(event: str, details: dict[str, Any] | None = None) -> None:
    """One structured line per server event."""
    if details is None:
        logger.info("%s", event)
        return
    try:
        payload = json.dumps(details, default=str)
    except (TypeError, ValueError):
        payload = "[unserializable-details]"
    logger.info("%s %s", event, payload)


def queue_image_request(path: Any, root: Path, log_path: Path) -> str:
    """Validate ``path`` and append it to the request log.

    Returns the acknowledgement text. Raises ValueError with a
    caller-facing message when the path is rejected.
    """
    try:
        safe_path = validate_image_path(path, root)
    except InvalidPathError as exc:
        message = _REASON_MESSAGES.get(exc.reason)
        if message is None:
            message = f"file does not exist: {path}"
        log_event("rejected_request", {"path": path, "reason": exc.reason.value})
        raise ValueError(message) from exc

    append_request(log_path, safe_path)
    log_event("queued_request", {"path": safe_path})
    return ACK_MESSAGE


mcp = FastMCP(
    name=SERVER_NAME,
    instructions=(
        "Use request_image when you need to look at a local image. "
        f"After it succeeds, print {DEFAULT_MARKER} exactly and stop; "
        "the wrapper restarts the session with the image attached."
    ),
)


@mcp.tool(
    name="request_image",
    description=(
        "For agent use: call this when you need to inspect a local image. "
        "It queues the path for codex-eyes, which restarts Codex with "
        "'resume --last -i <path>' so the image is added to context. "
        "path: repository-relative image path (for example './screen.png'). "
        f"After calling, print {DEFAULT_MARKER} and stop until restart."
    ),
)
def request_image(path: str) -> str:
    root = _repo_root()
    log_event("call_tool", {"name": "request_image", "arguments": {"path": path}})
    return queue_image_request(path, root, default_request_log(root))


def main(argv: list[str] | None = None) -> None:
    """Entry point for the MCP server."""
    global _parsed_args
    _parsed_args = _parse_args(argv)

    # Logging must go to stderr (stdout is the stdio transport)
    level = logging.DEBUG if _parsed_args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # Best-effort persistent log; stderr is often swallowed by the host CLI.
    try:
        log_dir = Path.home() / ".codex-eyes" / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            log_dir / f"mcp-stdio-{os.getpid()}.log", encoding="utf-8",
        )
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logging.getLogger().addHandler(file_handler)
    except OSError:
        pass

    root = _repo_root()
    log_event("server_start", {
        "repoRoot": str(root),
        "requestsFile": str(default_request_log(root)),
    })
    try:
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal stdio MCP server error (pid=%s)", os.getpid())
        raise


if __name__ == "__main__":
    main()
