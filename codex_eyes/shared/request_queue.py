"""Append-only JSONL log of image requests.

The MCP tool endpoint appends one line per accepted request; the
supervisor only ever needs the most recent well-formed line.

Line format::

    {"ts": 1718000000000, "path": "./screens/login.png"}
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from codex_eyes.wrapper.errors import NoRequestError

logger = logging.getLogger(__name__)

REQUESTS_DIRNAME = ".codex-eyes"
REQUESTS_FILENAME = "requests.jsonl"


@dataclass(frozen=True)
class ImageRequest:
    """One parsed request line."""
    timestamp: int
    path: str


def default_request_log(root: str | Path) -> Path:
    """Location of the request log under a repository root."""
    return Path(root) / REQUESTS_DIRNAME / REQUESTS_FILENAME


def ensure_request_log(log_path: Path) -> None:
    """Create the log directory and an empty log if missing."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    if not log_path.exists():
        log_path.write_text("", encoding="utf-8")


def _parse_line(line: str) -> ImageRequest | None:
    try:
        row = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(row, dict):
        return None
    path = row.get("path")
    if not isinstance(path, str) or not path.strip():
        return None
    ts = row.get("ts")
    if not isinstance(ts, int) or isinstance(ts, bool):
        ts = 0
    return ImageRequest(timestamp=ts, path=path)


def last_valid_request(log_path: Path) -> ImageRequest:
    """Return the most recent parseable request in ``log_path``.

    Malformed lines are skipped. Raises NoRequestError when the file is
    missing or no line qualifies.
    """
    try:
        contents = log_path.read_bytes()
    except FileNotFoundError:
        raise NoRequestError(str(log_path)) from None

    # Split on newlines only; JSON strings may legally hold U+2028 etc.
    lines = [line.removesuffix(b"\r") for line in contents.split(b"\n")]
    for raw in reversed(lines):
        if not raw.strip():
            continue
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping undecodable request line: %.120r", raw)
            continue
        request = _parse_line(line)
        if request is not None:
            return request
        logger.debug("Skipping malformed request line: %.120s", line)
    raise NoRequestError(str(log_path))


def append_request(
    log_path: Path,
    validated_path: str,
    *,
    now_ms: int | None = None,
) -> ImageRequest:
    """Append one request line and return what was written."""
    request = ImageRequest(
        timestamp=int(time.time() * 1000) if now_ms is None else now_ms,
        path=validated_path,
    )
    log_path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps({"ts": request.timestamp, "path": request.path})
    with log_path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")
        f.flush()
    return request
