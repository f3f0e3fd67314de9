"""Modification-time tracking for document files."""

from pathlib import Path
from typing import Dict


class FileMonitor:
    """
    Remember when each document was last read or written.

    A CLI run loads a document, spends a while talking to the model and
    then saves. If an editor touched the file in between, the save must
    not silently overwrite that change.

    Example:
        >>> monitor = FileMonitor()
        >>> monitor.record(path)
        >>> monitor.is_modified(path)
        False
    """

    def __init__(self) -> None:
        self._mtimes: Dict[Path, float] = {}

    def record(self, path: Path) -> None:
        """
        Record current modification time for a file.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        self._mtimes[path] = path.stat().st_mtime

    def is_modified(self, path: Path) -> bool:
        """
        Check if file has changed since it was recorded.

        Returns:
            True if modified, never recorded, or deleted since recording
        """
        if path not in self._mtimes:
            return True
        if not path.exists():
            return True
        return path.stat().st_mtime != self._mtimes[path]

    def refresh(self, path: Path) -> None:
        """Track the file's current state after our own write."""
        self._mtimes[path] = path.stat().st_mtime
