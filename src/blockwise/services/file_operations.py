"""Loading and safely saving documents on disk.

Markdown files (.md) go through the block grammar, with block IDs kept
as {#id} lines so they survive a save/load cycle. JSON files (.json)
hold the full node tree.
"""

import os
from pathlib import Path
from typing import Optional

from richtext_tree import Document

from blockwise.services.exceptions import FileModifiedError
from blockwise.services.file_monitor import FileMonitor
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".md", ".markdown", ".json")


def atomic_write(
    path: Path,
    content: str,
    file_monitor: Optional[FileMonitor] = None
) -> None:
    """
    Atomically write content to file with temp-file-rename pattern.

    1. Early modification check (before write)
    2. Write to temporary file and fsync
    3. Late modification check (before rename)
    4. Atomic rename to replace original file

    Args:
        path: Target file path
        content: Content to write
        file_monitor: Optional FileMonitor for concurrent modification detection

    Raises:
        FileModifiedError: If file was modified during write operation
        OSError: On file I/O errors
    """
    if file_monitor and path.exists() and file_monitor.is_modified(path):
        raise FileModifiedError(
            str(path),
            "File was modified before write (early check)"
        )

    # Same directory keeps the rename on one filesystem
    temp_path = path.parent / f".{path.name}.tmp.{os.getpid()}"

    try:
        with open(temp_path, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if file_monitor and path.exists() and file_monitor.is_modified(path):
            raise FileModifiedError(
                str(path),
                "File was modified during write (late check)"
            )

        temp_path.replace(path)

        if file_monitor:
            file_monitor.refresh(path)

        logger.debug(
            "atomic_write_success",
            path=str(path),
            size=len(content)
        )

    except FileModifiedError:
        if temp_path.exists():
            temp_path.unlink()
        raise

    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        logger.error(
            "atomic_write_failed",
            path=str(path),
            error=str(e)
        )
        raise


def _check_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported document type '{path.suffix}' "
            f"(expected one of: {', '.join(SUPPORTED_SUFFIXES)})"
        )
    return suffix


def load_document(path: Path, file_monitor: Optional[FileMonitor] = None) -> Document:
    """
    Read a document from .md or .json.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: Unsupported suffix or invalid JSON
    """
    suffix = _check_suffix(path)
    text = path.read_text(encoding='utf-8')
    if suffix == ".json":
        document = Document.from_json(text)
    else:
        document = Document.parse(text)

    if file_monitor:
        file_monitor.record(path)

    logger.debug("document_loaded", path=str(path), blocks=len(document.blocks))
    return document


def render_document(document: Document, path: Path) -> str:
    """Serialize a document in the format its path implies."""
    if _check_suffix(path) == ".json":
        return document.to_json()
    return document.render(include_ids=True) + "\n"


def save_document(
    path: Path,
    document: Document,
    file_monitor: Optional[FileMonitor] = None
) -> None:
    """Write a document atomically, refusing if it changed on disk since load."""
    atomic_write(path, render_document(document, path), file_monitor)
    logger.info("document_saved", path=str(path), version=document.version)
