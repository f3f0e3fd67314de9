"""Unit tests for FileMonitor."""

import os

from blockwise.services.file_monitor import FileMonitor


def touch_later(path, text):
    path.write_text(text)
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))


class TestFileMonitor:
    """Test FileMonitor class."""

    def test_record_and_check_unmodified(self, tmp_path):
        """Test a freshly recorded file is not modified."""
        monitor = FileMonitor()
        test_file = tmp_path / "notes.md"
        test_file.write_text("Initial content")

        monitor.record(test_file)

        assert not monitor.is_modified(test_file)

    def test_detect_modification(self, tmp_path):
        """Test an external write is detected."""
        monitor = FileMonitor()
        test_file = tmp_path / "notes.md"
        test_file.write_text("Initial content")
        monitor.record(test_file)

        touch_later(test_file, "Modified content")

        assert monitor.is_modified(test_file)

    def test_refresh(self, tmp_path):
        """Test refresh accepts the current state."""
        monitor = FileMonitor()
        test_file = tmp_path / "notes.md"
        test_file.write_text("Initial content")
        monitor.record(test_file)
        touch_later(test_file, "Modified content")

        monitor.refresh(test_file)

        assert not monitor.is_modified(test_file)

    def test_untracked_file_counts_as_modified(self, tmp_path):
        """Test files never recorded are treated as modified."""
        test_file = tmp_path / "notes.md"
        test_file.write_text("x")

        assert FileMonitor().is_modified(test_file)

    def test_deleted_file_counts_as_modified(self, tmp_path):
        """Test a recorded file that disappeared is modified."""
        monitor = FileMonitor()
        test_file = tmp_path / "notes.md"
        test_file.write_text("x")
        monitor.record(test_file)

        test_file.unlink()

        assert monitor.is_modified(test_file)
