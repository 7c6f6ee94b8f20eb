"""Capture-to-file recorder for sessions started with save-to-file."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TextIO

from dlogstream.transport.base import TransportKind

logger = logging.getLogger(__name__)


def capture_filename(kind: TransportKind, now: datetime | None = None) -> str:
    """``sdb_2024-05-01T10-20-30-123456.txt`` style name for a new capture."""
    now = now or datetime.now()
    prefix = "sdb" if kind is TransportKind.LOCAL else "ssh"
    stamp = now.isoformat().replace(":", "-").replace(".", "-")
    return f"{prefix}_{stamp}.txt"


class CaptureRecorder:
    """Appends captured text to a file until closed.

    A failed write disables the recorder instead of breaking the capture.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        self._file: TextIO | None = path.open("a", encoding="utf-8")
        logger.info("Saving capture to %s", path)

    @classmethod
    def for_session(cls, directory: Path, kind: TransportKind) -> CaptureRecorder:
        return cls(directory / capture_filename(kind))

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def write(self, text: str) -> None:
        if self._file is None:
            return
        try:
            self._file.write(text)
            self._file.flush()
        except OSError:
            logger.warning("Failed to write capture file %s", self.path, exc_info=True)
            self.close()

    def close(self) -> None:
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError:
            logger.debug("Error closing capture file %s", self.path, exc_info=True)
        self._file = None
