"""Mirror child output to the local terminal and watch for the marker."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import BinaryIO

logger = logging.getLogger(__name__)


class OutputMonitor:
    """Tap on the active session's output stream.

    Keeps a bounded tail of recent bytes so a marker split across two
    chunks is still found, provided both halves fit in the tail.
    """

    def __init__(
        self,
        marker: str,
        sink: BinaryIO,
        on_marker: Callable[[], None],
        is_busy: Callable[[], bool],
        *,
        tail_factor: int = 8,
    ) -> None:
        if not marker:
            raise ValueError("marker must be non-empty")
        if tail_factor < 2:
            raise ValueError("tail_factor must be >= 2")
        self._marker = marker.encode("utf-8")
        self._sink = sink
        self._on_marker = on_marker
        self._is_busy = is_busy
        self._capacity = len(self._marker) * tail_factor
        self._tail = b""

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def tail(self) -> bytes:
        return self._tail

    def clear(self) -> None:
        self._tail = b""

    def feed(self, chunk: bytes) -> bool:
        """Mirror ``chunk``; return True if it triggered a restart."""
        self._sink.write(chunk)
        self._sink.flush()

        self._tail += chunk
        if len(self._tail) > self._capacity:
            self._tail = self._tail[-self._capacity:]

        if self._marker not in self._tail:
            return False
        if self._is_busy():
            logger.debug("Marker seen while a restart is in flight; ignored")
            # A stale match must not fire again once the restart settles.
            self.clear()
            return False
        self.clear()
        self._on_marker()
        return True
