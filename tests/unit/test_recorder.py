"""Tests for the capture-to-file recorder."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

from dlogstream.recorder import CaptureRecorder, capture_filename
from dlogstream.transport.base import TransportKind


def test_capture_filename_is_filesystem_safe():
    now = datetime(2024, 5, 1, 10, 20, 30, 123456)
    assert capture_filename(TransportKind.LOCAL, now) == "sdb_2024-05-01T10-20-30-123456.txt"
    assert capture_filename(TransportKind.REMOTE, now).startswith("ssh_2024-05-01T10-20-30")


def test_recorder_appends_and_creates_directory(tmp_path: Path):
    path = tmp_path / "nested" / "capture.txt"
    recorder = CaptureRecorder(path)
    recorder.write("one\n")
    recorder.write("two\n")
    recorder.close()

    assert path.read_text() == "one\ntwo\n"
    assert not recorder.is_open


def test_write_after_close_is_ignored(tmp_path: Path):
    recorder = CaptureRecorder(tmp_path / "c.txt")
    recorder.close()
    recorder.write("dropped")
    recorder.close()

    assert (tmp_path / "c.txt").read_text() == ""


def test_failed_write_disables_recorder(tmp_path: Path):
    recorder = CaptureRecorder(tmp_path / "c.txt")
    recorder._file.close()
    broken = MagicMock()
    broken.write.side_effect = OSError("disk full")
    recorder._file = broken

    recorder.write("x")

    assert not recorder.is_open
    recorder.write("y")


def test_for_session_names_by_transport(tmp_path: Path):
    recorder = CaptureRecorder.for_session(tmp_path, TransportKind.REMOTE)
    recorder.close()

    assert recorder.path.parent == tmp_path
    assert recorder.path.name.startswith("ssh_")
    assert recorder.path.exists()
