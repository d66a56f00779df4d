"""Validation of repository-relative image paths.

Shared by the supervisor (before a restart) and the MCP tool endpoint
(before a request is queued), so both apply identical rules.
"""
from __future__ import annotations

import os
from pathlib import Path

from codex_eyes.wrapper.errors import InvalidPathError, InvalidPathReason

ALLOWED_IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp"})


def validate_image_path(candidate: object, root: str | os.PathLike[str]) -> str:
    """Return ``candidate`` as a ``./``-prefixed path relative to ``root``.

    Raises InvalidPathError tagged with the first rule the candidate
    breaks: non-string or blank, absolute, resolving outside ``root``,
    extension outside the allow-list, or no such file.
    """
    if not isinstance(candidate, str) or not candidate.strip():
        raise InvalidPathError(
            InvalidPathReason.NOT_A_STRING,
            "path must be a non-empty string",
        )
    if "\x00" in candidate:
        raise InvalidPathError(
            InvalidPathReason.NOT_A_STRING,
            "path must not contain NUL bytes",
        )
    if os.path.isabs(candidate):
        raise InvalidPathError(
            InvalidPathReason.ABSOLUTE,
            "Image path must be relative to repository root.",
        )

    root_path = Path(root).resolve()
    # resolve() follows symlinks, so a link whose target climbs out of
    # the root is caught by the containment check below.
    try:
        resolved = (root_path / candidate).resolve()
    except (OSError, ValueError) as exc:
        raise InvalidPathError(
            InvalidPathReason.NOT_A_STRING,
            f"path cannot be resolved: {exc}",
        ) from exc
    if resolved != root_path and root_path not in resolved.parents:
        raise InvalidPathError(
            InvalidPathReason.TRAVERSAL,
            "Path traversal rejected: image path escapes repository root.",
        )

    ext = resolved.suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))
        raise InvalidPathError(
            InvalidPathReason.BAD_EXTENSION,
            f"Unsupported image extension: {ext or '<none>'} (allowed: {allowed})",
        )
    if not resolved.is_file():
        raise InvalidPathError(
            InvalidPathReason.MISSING_FILE,
            f"Requested image does not exist: {candidate}",
        )

    rel = resolved.relative_to(root_path).as_posix()
    return rel if rel.startswith("./") else f"./{rel}"
